"""
Generative Evaluation Gateway
=============================

Scenario generation, response evaluation, speech and report summaries are
delegated to Gemini. Every operation degrades to a deterministic local
result when Gemini reports quota exhaustion, so an assessment never blocks
on the external quota:

- scenarios: cycled from a fixed bank of templates per language
- evaluation: word-count heuristic plus template IDP items
- voice: empty audio (the caller plays nothing)
- consolidated summary: templated sentence built from the mean score

Any other Gemini failure is raised as the operation's own error type.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from .competencies import difficulty_tier, language_name
from .errors import EvaluationFailedError, UpstreamGenerationError, VoiceGenerationError
from .gemini_client import GeminiClient, GeminiError, GeminiQuotaError

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response"

VOICE_NAMES: Dict[str, str] = {"th": "Kore", "en": "Zephyr"}

# Total word count -> score. Scanned in order, the last threshold reached wins.
WORD_COUNT_SCORES: List[tuple] = [(0, 1.2), (40, 2.0), (90, 2.8), (150, 3.4), (220, 3.8)]

MIN_SCORE = 0.0
MAX_SCORE = 4.0

_FALLBACK_SCENARIOS: Dict[str, List[str]] = {
	"th": [
		"ผู้ป่วยมีอาการแย่ลงหลังได้รับยาใหม่ คุณจะประเมินและจัดการอย่างไร?",
		"ระหว่างเวรมีผู้ป่วยหลายรายต้องการการดูแลพร้อมกัน คุณจะจัดลำดับความสำคัญอย่างไร?",
		"ญาติผู้ป่วยกังวลและตั้งคำถามต่อแผนการรักษา คุณจะสื่อสารอย่างไร?",
		"เกิดความคลาดเคลื่อนในการสื่อสารระหว่างทีม คุณจะป้องกันและแก้ไขอย่างไร?",
		"ผู้ป่วยปฏิเสธการรักษาบางอย่าง คุณจะดูแลอย่างไรโดยเคารพสิทธิผู้ป่วย?",
	],
	"en": [
		"A patient deteriorates shortly after receiving a new medication. How would you assess and manage the situation?",
		"During a busy shift, multiple patients need urgent attention at the same time. How would you prioritize care?",
		"A family member is anxious and challenges the treatment plan. How would you communicate and respond?",
		"A communication gap occurs during handoff between team members. How would you prevent and address this?",
		"A patient refuses part of the recommended treatment. How would you provide safe care while respecting autonomy?",
	],
}

_TEXTS: Dict[str, Dict[str, str]] = {
	"th": {
		"topic": "หัวข้อ",
		"fallback_context": "คำถามสำรองจากระบบเมื่อโควตา AI เต็ม",
		"fallback_feedback": (
			"ระบบประเมินแบบสำรองถูกใช้งานสำหรับหัวข้อ {competency} เนื่องจากโควตา AI เต็ม "
			"ผลลัพธ์ประเมินจากความครบถ้วนและความชัดเจนของคำตอบ "
			"กรุณาทบทวนคำตอบให้มีเหตุผลเชิงคลินิกชัดเจนยิ่งขึ้นในรอบถัดไป"
		),
		"training_1": "เวิร์กช็อป: การตัดสินใจเชิงคลินิกในหัวข้อ {competency}",
		"training_2": "หลักสูตร: การสื่อสารทางการพยาบาลและการประเมินอาการอย่างเป็นระบบ",
		"non_training_1": "โค้ชชิ่งรายสัปดาห์กับหัวหน้าหอผู้ป่วย",
		"non_training_2": "ทบทวนเคสย้อนหลังและรับ feedback จากพี่เลี้ยง",
		"above_standard": "ผลลัพธ์สูงกว่ามาตรฐาน: เน้นโค้ชชิ่งและมอบหมายบทบาทผู้นำในสถานการณ์จริง",
		"below_standard": "ผลลัพธ์ยังไม่ถึงมาตรฐาน: เน้นการอบรมแบบเป็นทางการร่วมกับการโค้ชชิ่งต่อเนื่อง",
		"fallback_summary": (
			"สรุปแบบสำรอง: จาก {count} หัวข้อ คะแนนเฉลี่ยอยู่ที่ {avg:.1f} จาก 4.0 สำหรับประสบการณ์ {years} ปี "
			"แนะนำให้พัฒนาอย่างต่อเนื่องโดยเน้นหัวข้อที่มีคะแนนต่ำและติดตามผลทุกเดือน"
		),
	},
	"en": {
		"topic": "Topic",
		"fallback_context": "System fallback question when AI quota is exceeded",
		"fallback_feedback": (
			"Fallback evaluation was used for {competency} because AI quota is currently exhausted. "
			"The score is estimated from response completeness and clarity. "
			"Add clearer clinical reasoning and prioritization in your next attempt."
		),
		"training_1": "Workshop: Clinical decision-making for {competency}",
		"training_2": "Course: Structured nursing assessment and communication",
		"non_training_1": "Weekly coaching with charge nurse",
		"non_training_2": "Case reflection with mentor feedback",
		"above_standard": "Score is above standard: prioritize coaching and stretch leadership assignments.",
		"below_standard": "Score is below standard: prioritize formal training with ongoing coaching support.",
		"fallback_summary": (
			"Fallback summary: Across {count} competencies, the average score is {avg:.1f} out of 4.0 "
			"for a nurse with {years} years of experience. "
			"Continue targeted development on lower-scoring competencies and review progress monthly."
		),
	},
}

SCENARIOS_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"scenarios": {
			"type": "ARRAY",
			"items": {
				"type": "OBJECT",
				"properties": {
					"id": {"type": "STRING"},
					"text": {"type": "STRING"},
					"context": {"type": "STRING"},
				},
				"required": ["id", "text", "context"],
			},
		},
	},
	"required": ["scenarios"],
}

EVALUATION_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"score": {"type": "NUMBER"},
		"feedback": {"type": "STRING"},
		"idp": {
			"type": "OBJECT",
			"properties": {
				"trainingCourses": {"type": "ARRAY", "items": {"type": "STRING"}},
				"nonTrainingCourses": {"type": "ARRAY", "items": {"type": "STRING"}},
				"recommendation": {"type": "STRING"},
			},
		},
	},
	"required": ["score", "feedback", "idp"],
}


def _texts(language: str) -> Dict[str, str]:
	return _TEXTS["th" if language == "th" else "en"]


def clamp_score(value: Any) -> float:
	"""Coerce an untrusted score to a float in [0, 4]."""
	if isinstance(value, bool):
		raise ValueError("score must be a number")
	score = float(value)
	if score != score:
		raise ValueError("score must be a number")
	return max(MIN_SCORE, min(MAX_SCORE, score))


def count_words(responses: Sequence[Optional[str]]) -> int:
	return sum(len(text.split()) for text in responses if text)


def score_from_word_count(total_words: int) -> float:
	score = WORD_COUNT_SCORES[0][1]
	for threshold, value in WORD_COUNT_SCORES:
		if total_words >= threshold:
			score = value
	return clamp_score(round(score, 1))


# ============================================================================
# FALLBACKS
# ============================================================================

def fallback_scenarios(competency_name: str, language: str, count: int) -> List[Dict[str, str]]:
	texts = _texts(language)
	bank = _FALLBACK_SCENARIOS["th" if language == "th" else "en"]
	return [
		{
			"id": f"fallback-{index + 1}",
			"text": f"{texts['topic']}: {competency_name}. {bank[index % len(bank)]}",
			"context": texts["fallback_context"],
		}
		for index in range(count)
	]


def fallback_evaluation(
	responses: Sequence[Optional[str]],
	standard_score: float,
	competency_name: str,
	language: str,
) -> Dict[str, Any]:
	texts = _texts(language)
	score = score_from_word_count(count_words(responses))
	is_positive_gap = score > standard_score

	training = [texts["training_1"].format(competency=competency_name), texts["training_2"]]
	non_training = [texts["non_training_1"], texts["non_training_2"]]
	if is_positive_gap:
		training = training[:1]
	else:
		non_training = non_training[:1]

	return {
		"score": score,
		"feedback": texts["fallback_feedback"].format(competency=competency_name),
		"idp": {
			"trainingCourses": training,
			"nonTrainingCourses": non_training,
			"recommendation": texts["above_standard"] if is_positive_gap else texts["below_standard"],
		},
	}


def fallback_consolidated_summary(experience_years: float, results: Sequence[Dict[str, Any]], language: str) -> str:
	count = len(results)
	total = sum(float(r.get("score") or 0) for r in results)
	avg = total / count if count else 0.0
	return _texts(language)["fallback_summary"].format(count=count, avg=avg, years=experience_years)


# ============================================================================
# PROMPTS
# ============================================================================

def build_scenarios_prompt(competency_name: str, language: str, experience_years: float, count: int) -> str:
	tier, question_length = difficulty_tier(experience_years)
	return f"""
Generate {count} different realistic nursing scenarios for: {competency_name}.
Target Difficulty: {tier}.
Question Length: {question_length}.
Language: {language_name(language)}.

Each scenario should end with a clear open-ended question. Make scenarios diverse and varied.
""".strip()


def build_evaluation_prompt(
	scenarios: Sequence[Dict[str, Any]],
	responses: Sequence[Optional[str]],
	competency_name: str,
	standard_score: float,
	language: str,
) -> str:
	pairs = []
	for idx, scenario in enumerate(scenarios):
		answer = responses[idx] if idx < len(responses) and responses[idx] else NO_RESPONSE
		pairs.append(f'Q{idx + 1}: {scenario.get("text", "")}\nA{idx + 1}: "{answer}"')
	scenario_responses = "\n\n".join(pairs)
	return f"""
Competency: {competency_name}
Target Standard Score: {standard_score}

Evaluate all responses for this competency:
{scenario_responses}

1. Calculate an average score (0.0 to 4.0) based on all responses.
2. Provide brief constructive feedback (2-3 sentences max).
3. Generate a Topic-Specific Individual Development Plan (IDP).
   Rule: If score > {standard_score} (Positive Gap), prioritize Non-Training (Coaching, Mentoring).
   Rule: If score <= {standard_score} (Negative Gap), prioritize Formal Training (Workshops, Courses).

Output everything in {language_name(language)}. Keep feedback concise.
""".strip()


def build_summary_prompt(experience_years: float, results: Sequence[Dict[str, Any]], language: str) -> str:
	summary = "\n".join(
		f"Topic: {r.get('competencyId')}, Score: {r.get('score')}, Gap: {r.get('gap')}" for r in results
	)
	return f"""
Acting as a Nursing Director, write a 3-sentence high-level summary for this nurse's global performance based on {len(results)} topic IDPs.
Experience: {experience_years}y.
Summary Data:
{summary}
Language: {language_name(language)}.
""".strip()


def decode_evaluation(data: Any) -> Dict[str, Any]:
	"""Validate a model-produced evaluation before it reaches persistence."""
	if not isinstance(data, dict):
		raise ValueError("evaluation must be an object")
	score = clamp_score(data.get("score"))
	idp = data.get("idp") if isinstance(data.get("idp"), dict) else {}

	def _strings(value: Any) -> List[str]:
		if not isinstance(value, list):
			return []
		return [str(item).strip() for item in value if str(item).strip()]

	return {
		"score": score,
		"feedback": str(data.get("feedback") or "").strip(),
		"idp": {
			"trainingCourses": _strings(idp.get("trainingCourses")),
			"nonTrainingCourses": _strings(idp.get("nonTrainingCourses")),
			"recommendation": str(idp.get("recommendation") or "").strip(),
		},
	}


# ============================================================================
# GATEWAY
# ============================================================================

class EvaluationGateway:
	def __init__(self, client_factory: Callable[[], GeminiClient] = GeminiClient) -> None:
		self._client_factory = client_factory

	@asynccontextmanager
	async def _client(self) -> AsyncIterator[GeminiClient]:
		try:
			client = self._client_factory()
		except ValueError as e:
			raise GeminiError(str(e)) from e
		try:
			yield client
		finally:
			await client.aclose()

	async def generate_scenarios(
		self,
		competency_name: str,
		language: str,
		experience_years: float,
		count: int,
	) -> List[Dict[str, Any]]:
		prompt = build_scenarios_prompt(competency_name, language, experience_years, count)
		try:
			async with self._client() as client:
				data = await client.generate_json(prompt, SCENARIOS_SCHEMA)
		except GeminiQuotaError:
			logger.warning("Gemini quota exceeded during scenario generation, using fallback scenarios")
			return fallback_scenarios(competency_name, language, count)
		except GeminiError as e:
			logger.error("Scenario generation failed for %s: %s", competency_name, e)
			raise UpstreamGenerationError("Failed to generate scenarios") from e
		scenarios = data.get("scenarios") if isinstance(data, dict) else None
		return scenarios or []

	async def evaluate_responses(
		self,
		scenarios: Sequence[Dict[str, Any]],
		responses: Sequence[Optional[str]],
		competency_name: str,
		standard_score: float,
		language: str,
	) -> Dict[str, Any]:
		prompt = build_evaluation_prompt(scenarios, responses, competency_name, standard_score, language)
		try:
			async with self._client() as client:
				data = await client.generate_json(prompt, EVALUATION_SCHEMA)
		except GeminiQuotaError:
			logger.warning("Gemini quota exceeded during evaluation, using fallback evaluation")
			return fallback_evaluation(responses, standard_score, competency_name, language)
		except GeminiError as e:
			logger.error("Evaluation failed for %s: %s", competency_name, e)
			raise EvaluationFailedError("Evaluation failed") from e
		try:
			return decode_evaluation(data)
		except (TypeError, ValueError) as e:
			logger.error("Rejected evaluation for %s: %s", competency_name, e)
			raise EvaluationFailedError("Evaluation failed") from e

	async def generate_voice_audio(self, text: str, language: str) -> str:
		voice_name = VOICE_NAMES.get(language, VOICE_NAMES["en"])
		try:
			async with self._client() as client:
				return await client.generate_speech(text, voice_name=voice_name)
		except GeminiQuotaError:
			logger.warning("Gemini quota exceeded during voice generation, returning no audio")
			return ""
		except GeminiError as e:
			logger.error("Voice generation failed: %s", e)
			raise VoiceGenerationError("Voice generation failed") from e

	async def generate_consolidated_summary(
		self,
		experience_years: float,
		results: Sequence[Dict[str, Any]],
		language: str,
	) -> str:
		prompt = build_summary_prompt(experience_years, results, language)
		try:
			async with self._client() as client:
				return await client.generate(prompt)
		except GeminiQuotaError:
			logger.warning("Gemini quota exceeded during consolidated summary, using fallback summary")
			return fallback_consolidated_summary(experience_years, results, language)
		except GeminiError as e:
			logger.error("Consolidated summary failed: %s", e)
			raise UpstreamGenerationError("Failed to generate summary") from e


def get_gateway() -> EvaluationGateway:
	return EvaluationGateway()
