import httpx
import pytest

from compasses.errors import EvaluationFailedError, UpstreamGenerationError, VoiceGenerationError
from compasses.gateway import (
	EvaluationGateway,
	clamp_score,
	count_words,
	decode_evaluation,
	fallback_evaluation,
	fallback_scenarios,
	score_from_word_count,
)
from compasses.gemini_client import is_quota_failure
from compasses.settings import settings

from conftest import gemini_json, gemini_text


def words(n):
	return " ".join(["word"] * n)


@pytest.mark.parametrize(
	"total,expected",
	[(0, 1.2), (39, 1.2), (40, 2.0), (89, 2.0), (90, 2.8), (95, 2.8), (149, 2.8), (150, 3.4), (219, 3.4), (220, 3.8), (1000, 3.8)],
)
def test_score_from_word_count(total, expected):
	assert score_from_word_count(total) == expected


def test_word_count_score_is_monotonic():
	scores = [score_from_word_count(n) for n in range(0, 300)]
	assert scores == sorted(scores)


def test_count_words_skips_empty_responses():
	assert count_words(["one two", "", None, "  three\nfour  "]) == 4


def test_fallback_evaluation_positive_gap():
	result = fallback_evaluation([words(95)], 2, "Leadership", "en")
	assert result["score"] == 2.8
	idp = result["idp"]
	assert len(idp["trainingCourses"]) == 1
	assert len(idp["nonTrainingCourses"]) == 2
	assert idp["trainingCourses"][0] == "Workshop: Clinical decision-making for Leadership"
	assert idp["recommendation"].startswith("Score is above standard")
	assert "Leadership" in result["feedback"]


def test_fallback_evaluation_negative_gap():
	result = fallback_evaluation([words(10)], 2, "Leadership", "en")
	assert result["score"] == 1.2
	idp = result["idp"]
	assert len(idp["trainingCourses"]) == 2
	assert len(idp["nonTrainingCourses"]) == 1
	assert idp["recommendation"].startswith("Score is below standard")


def test_fallback_evaluation_equal_score_is_not_positive():
	result = fallback_evaluation([words(40)], 2, "Leadership", "en")
	assert result["score"] == 2.0
	assert len(result["idp"]["trainingCourses"]) == 2


def test_fallback_evaluation_thai():
	result = fallback_evaluation([words(300)], 1, "ความเป็นผู้นำ", "th")
	assert result["score"] == 3.8
	assert result["idp"]["recommendation"].startswith("ผลลัพธ์สูงกว่ามาตรฐาน")


def test_fallback_scenarios_cycle_templates():
	scenarios = fallback_scenarios("Leadership", "en", 7)
	assert [s["id"] for s in scenarios] == [f"fallback-{n}" for n in range(1, 8)]
	assert scenarios[0]["text"].startswith("Topic: Leadership. ")
	assert scenarios[5]["text"] == scenarios[0]["text"]
	assert all(s["context"] == "System fallback question when AI quota is exceeded" for s in scenarios)


def test_fallback_scenarios_exact_count():
	scenarios = fallback_scenarios("Leadership", "en", 5)
	assert len(scenarios) == 5
	assert len({s["text"] for s in scenarios}) == 5


def test_clamp_score():
	assert clamp_score(5.7) == 4.0
	assert clamp_score(-1) == 0.0
	assert clamp_score("3.2") == 3.2
	with pytest.raises(ValueError):
		clamp_score(True)
	with pytest.raises(ValueError):
		clamp_score(float("nan"))


def test_decode_evaluation_clamps_and_normalizes():
	data = decode_evaluation({"score": 9, "feedback": " ok ", "idp": {"trainingCourses": ["A", ""], "nonTrainingCourses": "x"}})
	assert data["score"] == 4.0
	assert data["feedback"] == "ok"
	assert data["idp"] == {"trainingCourses": ["A"], "nonTrainingCourses": [], "recommendation": ""}


def test_quota_detection():
	assert is_quota_failure(429, "")
	assert is_quota_failure(400, "RESOURCE_EXHAUSTED")
	assert is_quota_failure(403, "daily quota reached")
	assert not is_quota_failure(500, "internal")


@pytest.mark.asyncio
async def test_generate_scenarios_returns_model_output(gemini):
	scenarios = [{"id": "a", "text": "What would you do?", "context": "ICU"}]
	gemini.handler = lambda request: gemini_json({"scenarios": scenarios})
	result = await gemini.gateway().generate_scenarios("Leadership", "en", 7, 1)
	assert result == scenarios
	body = gemini.requests[0]
	assert body["generationConfig"]["responseMimeType"] == "application/json"
	prompt = body["contents"][0]["parts"][0]["text"]
	assert "Advanced (Highly Competent)" in prompt
	assert "Language: English" in prompt


@pytest.mark.asyncio
async def test_generate_scenarios_quota_fallback(gemini):
	result = await gemini.gateway().generate_scenarios("Leadership", "en", 3, 5)
	assert [s["id"] for s in result] == [f"fallback-{n}" for n in range(1, 6)]


@pytest.mark.asyncio
async def test_generate_scenarios_other_failure(gemini):
	gemini.handler = lambda request: httpx.Response(500, text="boom")
	with pytest.raises(UpstreamGenerationError):
		await gemini.gateway().generate_scenarios("Leadership", "en", 3, 1)


@pytest.mark.asyncio
async def test_evaluate_responses_clamps_model_score(gemini):
	gemini.handler = lambda request: gemini_json(
		{"score": 6.5, "feedback": "Strong.", "idp": {"trainingCourses": [], "nonTrainingCourses": ["Mentor"], "recommendation": "Coach"}}
	)
	result = await gemini.gateway().evaluate_responses(
		[{"text": "Q1"}, {"text": "Q2"}], ["answer"], "Leadership", 2, "en"
	)
	assert result["score"] == 4.0
	assert result["idp"]["nonTrainingCourses"] == ["Mentor"]
	prompt = gemini.requests[0]["contents"][0]["parts"][0]["text"]
	assert 'A2: "No response"' in prompt
	assert "If score > 2" in prompt


@pytest.mark.asyncio
async def test_evaluate_responses_quota_fallback(gemini):
	result = await gemini.gateway().evaluate_responses([{"text": "Q1"}], [words(150)], "Leadership", 3, "en")
	assert result["score"] == 3.4
	assert len(result["idp"]["trainingCourses"]) == 1


@pytest.mark.asyncio
async def test_evaluate_responses_other_failure_is_not_silent(gemini):
	gemini.handler = lambda request: httpx.Response(400, text="bad request")
	with pytest.raises(EvaluationFailedError):
		await gemini.gateway().evaluate_responses([{"text": "Q1"}], ["a"], "Leadership", 3, "en")


@pytest.mark.asyncio
async def test_evaluate_responses_rejects_non_numeric_score(gemini):
	gemini.handler = lambda request: gemini_json({"score": "excellent", "feedback": "", "idp": {}})
	with pytest.raises(EvaluationFailedError):
		await gemini.gateway().evaluate_responses([{"text": "Q1"}], ["a"], "Leadership", 3, "en")


@pytest.mark.asyncio
async def test_voice_uses_language_voice(gemini):
	gemini.handler = lambda request: httpx.Response(
		200, json={"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "audio/pcm", "data": "AAA="}}]}}]}
	)
	audio = await gemini.gateway().generate_voice_audio("Hello", "th")
	assert audio == "AAA="
	config = gemini.requests[0]["generationConfig"]
	assert config["responseModalities"] == ["AUDIO"]
	assert config["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"] == "Kore"


@pytest.mark.asyncio
async def test_voice_quota_returns_empty(gemini):
	assert await gemini.gateway().generate_voice_audio("Hello", "en") == ""


@pytest.mark.asyncio
async def test_voice_other_failure(gemini):
	gemini.handler = lambda request: httpx.Response(503, text="unavailable")
	with pytest.raises(VoiceGenerationError):
		await gemini.gateway().generate_voice_audio("Hello", "en")


@pytest.mark.asyncio
async def test_consolidated_summary_from_model(gemini):
	gemini.handler = lambda request: gemini_text("A fine nurse.")
	summary = await gemini.gateway().generate_consolidated_summary(4, [{"competencyId": "f1", "score": 3, "gap": 0}], "en")
	assert summary == "A fine nurse."


@pytest.mark.asyncio
async def test_consolidated_summary_quota_fallback(gemini):
	results = [{"competencyId": "f1", "score": 3.0, "gap": 1}, {"competencyId": "m1", "score": 2.0, "gap": 0}]
	summary = await gemini.gateway().generate_consolidated_summary(4, results, "en")
	assert summary.startswith("Fallback summary: Across 2 competencies, the average score is 2.5 out of 4.0")


@pytest.mark.asyncio
async def test_missing_api_key_is_an_upstream_failure(monkeypatch):
	monkeypatch.setattr(settings, "gemini_api_key", None)
	with pytest.raises(UpstreamGenerationError):
		await EvaluationGateway().generate_scenarios("Leadership", "en", 1, 1)
