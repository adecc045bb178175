"""
Assessment Flow Controller
==========================

Client-side state machine that walks a nurse through one assessment set:

    LOGIN -> [per competency: LOADING -> QUESTIONING -> EVALUATING -> RESULT_SHOWN]
          -> DASHBOARD -> REPORT

ADMIN is reached only through :meth:`AssessmentFlow.admin_login`. Logout
returns to LOGIN from anywhere and clears all in-memory state.

Topics are strictly sequential: scenarios for topic i+1 are never requested
before topic i has been evaluated. Each topic load takes a fresh generation
token; results arriving for a superseded token are dropped.

Speech capture and audio playback are injected so the flow runs without
a browser (see :class:`SpeechCaptureService`, :class:`AudioPlaybackService`).
"""

from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .audio import SAMPLE_RATE, decode_pcm16
from .competencies import CompetencyItem, build_assessment_competencies

logger = logging.getLogger(__name__)

QUESTIONS_PER_COMPETENCY = 1


class FlowView(enum.Enum):
	LOGIN = "login"
	LOADING = "loading"
	QUESTIONING = "questioning"
	EVALUATING = "evaluating"
	RESULT_SHOWN = "result_shown"
	DASHBOARD = "dashboard"
	REPORT = "report"
	ADMIN = "admin"


class FlowError(RuntimeError):
	"""A transition was requested from a state that does not allow it."""


class AssessmentApi(Protocol):
	async def start_session(self, language: str, total_competencies: int) -> str: ...

	async def generate_scenarios(self, competency_name: str, language: str, experience_years: float, count: int) -> List[Dict[str, Any]]: ...

	async def evaluate(
		self,
		session_id: str,
		competency_id: str,
		competency_name: str,
		scenarios: Sequence[Dict[str, Any]],
		responses: Sequence[str],
		language: str,
		standard_score: float,
	) -> Dict[str, Any]: ...

	async def voice(self, text: str, language: str) -> str: ...

	async def consolidated_summary(self, experience_years: float, results: Sequence[Dict[str, Any]], language: str) -> str: ...

	async def complete_session(self, session_id: str) -> None: ...


class SpeechCaptureService(Protocol):
	def start(self, language: str, on_transcript: Callable[[str], None]) -> None: ...

	def stop(self) -> None: ...


class AudioPlaybackService(Protocol):
	def play(self, samples: Sequence[float], sample_rate: int) -> None: ...

	def stop(self) -> None: ...


@dataclass
class NurseProfile:
	username: str
	experience_years: int
	level: int
	standard_score: float


@dataclass
class TopicResult:
	competency_id: str
	score: float
	gap: float
	user_response: str
	feedback: str
	idp: Dict[str, Any]

	def summary_item(self) -> Dict[str, Any]:
		return {"competencyId": self.competency_id, "score": self.score, "gap": self.gap}


@dataclass
class _TopicState:
	scenarios: List[Dict[str, Any]] = field(default_factory=list)
	responses: List[str] = field(default_factory=list)
	question_index: int = 0
	evaluation: Optional[Dict[str, Any]] = None


def short_summary(score: float, standard_score: float, language: str) -> str:
	"""One spoken line after each evaluation."""
	gap = score - standard_score
	if language == "th":
		relation = "สูงกว่า" if gap > 0 else "ต่ำกว่า" if gap < 0 else "เท่ากับ"
		return f"คะแนน {score:.1f} จาก 4.0 {relation}มาตรฐาน"
	performance = "exceeded" if gap > 0 else "below" if gap < 0 else "met"
	return f"Score {score:.1f} out of 4.0, {performance} standard"


class AssessmentFlow:
	def __init__(
		self,
		api: AssessmentApi,
		*,
		speech: Optional[SpeechCaptureService] = None,
		playback: Optional[AudioPlaybackService] = None,
		language: str = "th",
		questions_per_competency: int = QUESTIONS_PER_COMPETENCY,
		rng: Optional[random.Random] = None,
	) -> None:
		self.api = api
		self.speech = speech
		self.playback = playback
		self.language = language
		self.questions_per_competency = questions_per_competency
		self._rng = rng
		self.view = FlowView.LOGIN
		self.user: Optional[NurseProfile] = None
		self.admin_username: Optional[str] = None
		self.competencies: List[CompetencyItem] = []
		self.topic_index = 0
		self.session_id: Optional[str] = None
		self.results: Dict[str, TopicResult] = {}
		self.topic = _TopicState()
		self.pending_response = ""
		self.report_summary: Optional[str] = None
		self.is_capturing = False
		self._token = 0

	# ------------------------------------------------------------------
	# Global transitions
	# ------------------------------------------------------------------

	def login(self, user: NurseProfile) -> None:
		self._teardown()
		self.admin_username = None
		self.user = user
		self.competencies = build_assessment_competencies(self._rng)
		self.topic_index = 0
		self.session_id = None
		self.results = {}
		self.report_summary = None
		self.topic = _TopicState()
		self.view = FlowView.LOADING

	def admin_login(self, username: str) -> None:
		self._teardown()
		self.user = None
		self.admin_username = username
		self.competencies = []
		self.results = {}
		self.session_id = None
		self.view = FlowView.ADMIN

	def logout(self) -> None:
		# The server-side session record is left as is
		self._teardown()
		self.user = None
		self.admin_username = None
		self.competencies = []
		self.topic_index = 0
		self.session_id = None
		self.results = {}
		self.report_summary = None
		self.topic = _TopicState()
		self.view = FlowView.LOGIN

	@property
	def current_competency(self) -> Optional[CompetencyItem]:
		if 0 <= self.topic_index < len(self.competencies):
			return self.competencies[self.topic_index]
		return None

	@property
	def current_scenario(self) -> Optional[Dict[str, Any]]:
		if self.view != FlowView.QUESTIONING:
			return None
		scenarios = self.topic.scenarios
		if 0 <= self.topic.question_index < len(scenarios):
			return scenarios[self.topic.question_index]
		return None

	@property
	def all_completed(self) -> bool:
		return bool(self.competencies) and all(c.id in self.results for c in self.competencies)

	@property
	def has_next_topic(self) -> bool:
		"""Whether finishing the current topic leads to another topic rather than the dashboard."""
		current = self.current_competency
		remaining = [c for c in self.competencies if c.id not in self.results and c is not current]
		return self.topic_index < len(self.competencies) - 1 and bool(remaining)

	# ------------------------------------------------------------------
	# Per-topic flow
	# ------------------------------------------------------------------

	async def start_topic(self) -> None:
		"""Load scenarios for the current topic and speak the first one."""
		user, competency = self._require_user(), self.current_competency
		if competency is None:
			raise FlowError("No competency selected")
		self._teardown()
		token = self._token
		self.topic = _TopicState()
		self.pending_response = ""
		self.view = FlowView.LOADING

		# A failure leaves the view in LOADING; calling start_topic again retries
		if not self.session_id:
			session_id = await self.api.start_session(self.language, len(self.competencies))
			# The session belongs to the login, so a superseded topic still keeps it
			if self.user is user:
				self.session_id = session_id
			if token != self._token:
				return
		scenarios = await self.api.generate_scenarios(
			competency.name(self.language),
			self.language,
			user.experience_years,
			self.questions_per_competency,
		)
		if token != self._token:
			logger.debug("Dropping scenarios for superseded topic %s", competency.id)
			return
		if not scenarios:
			raise FlowError(f"No scenarios were generated for {competency.id}")

		self.topic.scenarios = list(scenarios)
		self.topic.responses = [""] * len(self.topic.scenarios)
		self.view = FlowView.QUESTIONING
		if self.topic.scenarios and self.topic.scenarios[0].get("text"):
			await self.speak(self.topic.scenarios[0]["text"])

	async def submit_response(self, text: Optional[str] = None) -> None:
		if self.view != FlowView.QUESTIONING:
			raise FlowError(f"Cannot submit a response while {self.view.value}")
		answer = (text if text is not None else self.pending_response).strip()
		if not answer:
			return
		self._stop_playback()
		self.stop_capture()
		topic = self.topic
		if topic.question_index >= len(topic.scenarios):
			raise FlowError("No scenario is awaiting a response")
		topic.responses[topic.question_index] = answer
		self.pending_response = ""

		if topic.question_index < len(topic.scenarios) - 1:
			topic.question_index += 1
			await self.speak(topic.scenarios[topic.question_index]["text"])
			return
		await self._evaluate()

	async def _evaluate(self) -> None:
		user, competency = self._require_user(), self.current_competency
		if not self.session_id:
			raise FlowError("Session not initialized. Please restart the assessment.")
		token = self._token
		topic = self.topic
		self.view = FlowView.EVALUATING
		try:
			evaluation = await self.api.evaluate(
				self.session_id,
				competency.id,
				competency.name(self.language),
				topic.scenarios,
				topic.responses,
				self.language,
				user.standard_score,
			)
		except Exception:
			if token == self._token:
				self.view = FlowView.QUESTIONING
			raise
		if token != self._token:
			return
		topic.evaluation = evaluation
		self.view = FlowView.RESULT_SHOWN
		await self.speak(short_summary(float(evaluation["score"]), user.standard_score, self.language))

	async def advance(self) -> None:
		"""Record the shown result and move to the next topic or the dashboard."""
		if self.view != FlowView.RESULT_SHOWN or self.topic.evaluation is None:
			raise FlowError("No evaluated result to record")
		user, competency = self._require_user(), self.current_competency
		evaluation = self.topic.evaluation
		score = float(evaluation["score"])
		self.results[competency.id] = TopicResult(
			competency_id=competency.id,
			score=score,
			gap=score - user.standard_score,
			user_response="\n\n".join(self.topic.responses),
			feedback=evaluation.get("feedback", ""),
			idp=evaluation.get("idp") or {},
		)
		self._teardown()

		if self.has_next_topic:
			self.topic_index += 1
			await self.start_topic()
			return
		self.view = FlowView.DASHBOARD
		if self.all_completed and self.session_id:
			await self.api.complete_session(self.session_id)

	async def select_competency(self, competency_id: str) -> None:
		"""Re-enter a topic from the dashboard, including already completed ones."""
		if self.view != FlowView.DASHBOARD:
			raise FlowError("Topics can only be selected from the dashboard")
		for index, item in enumerate(self.competencies):
			if item.id == competency_id:
				self.topic_index = index
				await self.start_topic()
				return
		raise FlowError(f"Unknown competency {competency_id}")

	async def show_report(self) -> str:
		if self.view != FlowView.DASHBOARD:
			raise FlowError("The report is opened from the dashboard")
		if not self.all_completed:
			raise FlowError("Complete every competency before opening the report")
		user = self._require_user()
		token = self._token
		items = [self.results[c.id].summary_item() for c in self.competencies]
		# The view only changes once a summary exists to show
		summary = await self.api.consolidated_summary(user.experience_years, items, self.language)
		if token != self._token or self.view != FlowView.DASHBOARD:
			return summary
		self.report_summary = summary
		self.view = FlowView.REPORT
		return summary

	def close_report(self) -> None:
		if self.view == FlowView.REPORT:
			self.view = FlowView.DASHBOARD

	def leave_topic(self) -> None:
		"""Abandon the topic being loaded, answered or evaluated."""
		if self.view in (FlowView.LOADING, FlowView.QUESTIONING, FlowView.EVALUATING, FlowView.RESULT_SHOWN):
			self._teardown()
			self.view = FlowView.DASHBOARD

	# ------------------------------------------------------------------
	# Voice
	# ------------------------------------------------------------------

	async def speak(self, text: str) -> None:
		"""Play ``text``; missing audio or a voice failure plays nothing."""
		self._stop_playback()
		if self.playback is None:
			return
		token = self._token
		try:
			audio = await self.api.voice(text, self.language)
		except Exception as e:
			logger.warning("Voice unavailable: %s", e)
			return
		if not audio or token != self._token:
			return
		self.playback.play(decode_pcm16(audio), SAMPLE_RATE)

	def start_capture(self) -> None:
		if self.speech is None or self.view != FlowView.QUESTIONING:
			return
		self.stop_capture()
		self.speech.start(self.language, self._on_transcript)
		self.is_capturing = True

	def stop_capture(self) -> None:
		if self.speech is not None and self.is_capturing:
			self.speech.stop()
		self.is_capturing = False

	def _on_transcript(self, chunk: str) -> None:
		chunk = chunk.strip()
		if not chunk:
			return
		self.pending_response = f"{self.pending_response} {chunk}" if self.pending_response else chunk

	# ------------------------------------------------------------------
	# Helpers
	# ------------------------------------------------------------------

	def _require_user(self) -> NurseProfile:
		if self.user is None:
			raise FlowError("Not logged in")
		return self.user

	def _stop_playback(self) -> None:
		if self.playback is not None:
			self.playback.stop()

	def _teardown(self) -> None:
		self._token += 1
		self._stop_playback()
		self.stop_capture()
