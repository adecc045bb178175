"""
Assessment Module
=================

Session lifecycle, scenario generation, evaluation and speech for the
competency self-assessment. Generation and scoring go through the
:class:`~compasses.gateway.EvaluationGateway`; results are persisted through
:mod:`compasses.store`.

API Endpoints:
- POST /assessment/session/start: Begin a new assessment session
- POST /assessment/scenarios/generate: Scenario questions for one competency
- POST /assessment/evaluate: Score a competency's responses and persist the result
- POST /assessment/voice: Spoken audio for a question or feedback line
- POST /assessment/summary/consolidated: Narrative summary across competencies
- POST /assessment/session/complete: Mark a session completed
- GET /assessment/session/{session_id}/results: Latest result per competency
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import store
from ..db import get_db
from ..errors import ValidationError
from ..gateway import EvaluationGateway, get_gateway
from ..models import AssessmentResult, User
from .auth import get_current_user


router = APIRouter(prefix="/assessment", tags=["assessment"])
logger = logging.getLogger(__name__)


# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class Scenario(BaseModel):
	id: str = ""
	text: str = ""
	context: str = ""


class IDP(BaseModel):
	trainingCourses: List[str] = Field(default_factory=list)
	nonTrainingCourses: List[str] = Field(default_factory=list)
	recommendation: str = ""


class EvaluationOut(BaseModel):
	score: float
	feedback: str
	idp: IDP


class StartSessionRequest(BaseModel):
	language: str = "th"
	totalCompetencies: int = 0


class StartSessionResponse(BaseModel):
	sessionId: str


class GenerateScenariosRequest(BaseModel):
	competencyName: str
	language: str = "th"
	experienceYears: float = Field(default=0, ge=0)
	count: int = Field(default=3, ge=1, le=10)


class EvaluateRequest(BaseModel):
	sessionId: Optional[str] = None
	competencyId: str
	competencyName: str
	scenarios: List[Scenario]
	responses: List[Optional[str]] = Field(default_factory=list)
	language: str = "th"
	standardScore: Optional[float] = Field(default=None, ge=0, le=4)


class VoiceRequest(BaseModel):
	text: str
	language: str = "th"


class VoiceResponse(BaseModel):
	audioData: str


class SummaryResultItem(BaseModel):
	competencyId: str
	score: float = 0.0
	gap: float = 0.0


class ConsolidatedSummaryRequest(BaseModel):
	experienceYears: float = Field(default=0, ge=0)
	results: List[SummaryResultItem] = Field(default_factory=list)
	language: str = "th"


class SummaryResponse(BaseModel):
	summary: str


class CompleteSessionRequest(BaseModel):
	sessionId: Optional[str] = None


class QuestionResponseOut(BaseModel):
	questionNumber: int
	scenarioText: str
	userResponse: str


class AssessmentResultOut(BaseModel):
	id: str
	sessionId: str
	competencyId: str
	competencyName: str
	score: float
	gap: float
	feedback: str
	createdAt: datetime
	responses: List[QuestionResponseOut]
	idpPlan: Optional[IDP]


def _validate_language(language: str) -> None:
	if language not in ("th", "en"):
		raise ValidationError("language must be one of th, en")


def result_out(row: AssessmentResult) -> AssessmentResultOut:
	plan = row.idp_plan
	return AssessmentResultOut(
		id=row.id,
		sessionId=row.session_id,
		competencyId=row.competency_id,
		competencyName=row.competency_name,
		score=row.score,
		gap=row.gap,
		feedback=row.feedback,
		createdAt=row.created_at,
		responses=[
			QuestionResponseOut(
				questionNumber=r.question_number,
				scenarioText=r.scenario_text,
				userResponse=r.user_response,
			)
			for r in row.responses
		],
		idpPlan=IDP(
			trainingCourses=plan.training_courses or [],
			nonTrainingCourses=plan.non_training_courses or [],
			recommendation=plan.recommendation,
		) if plan else None,
	)


# ============================================================================
# API ENDPOINTS
# ============================================================================

@router.post("/session/start", response_model=StartSessionResponse)
async def start_session(req: StartSessionRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	session = store.create_session(db, user, req.language, req.totalCompetencies)
	logger.info("Started session %s for %s", session.id, user.username)
	return StartSessionResponse(sessionId=session.id)


@router.post("/scenarios/generate")
async def generate_scenarios(
	req: GenerateScenariosRequest,
	user: User = Depends(get_current_user),
	gateway: EvaluationGateway = Depends(get_gateway),
):
	competency_name = req.competencyName.strip()
	if not competency_name:
		raise ValidationError("competencyName is required")
	_validate_language(req.language)
	return await gateway.generate_scenarios(competency_name, req.language, req.experienceYears, req.count)


@router.post("/evaluate", response_model=EvaluationOut)
async def evaluate(
	req: EvaluateRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	gateway: EvaluationGateway = Depends(get_gateway),
):
	# Ownership is checked before anything is generated or written
	session = store.get_owned_session(db, user, req.sessionId)
	_validate_language(req.language)
	if not req.scenarios:
		raise ValidationError("scenarios must not be empty")
	standard_score = req.standardScore if req.standardScore is not None else user.standard_score
	scenarios: List[Dict[str, Any]] = [s.model_dump() for s in req.scenarios]

	evaluation = await gateway.evaluate_responses(
		scenarios,
		req.responses,
		req.competencyName,
		standard_score,
		req.language,
	)
	store.record_evaluation(
		db,
		user,
		session,
		competency_id=req.competencyId,
		competency_name=req.competencyName,
		scenarios=scenarios,
		responses=req.responses,
		standard_score=standard_score,
		evaluation=evaluation,
	)
	return evaluation


@router.post("/voice", response_model=VoiceResponse)
async def voice(req: VoiceRequest, user: User = Depends(get_current_user), gateway: EvaluationGateway = Depends(get_gateway)):
	if not req.text.strip():
		raise ValidationError("text is required")
	audio = await gateway.generate_voice_audio(req.text, req.language)
	return VoiceResponse(audioData=audio)


@router.post("/summary/consolidated", response_model=SummaryResponse)
async def consolidated_summary(
	req: ConsolidatedSummaryRequest,
	user: User = Depends(get_current_user),
	gateway: EvaluationGateway = Depends(get_gateway),
):
	results = [r.model_dump() for r in req.results]
	summary = await gateway.generate_consolidated_summary(req.experienceYears, results, req.language)
	return SummaryResponse(summary=summary)


@router.post("/session/complete")
async def complete_session(req: CompleteSessionRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	session = store.get_owned_session(db, user, req.sessionId)
	store.complete_session(db, session)
	return {"success": True}


@router.get("/session/{session_id}/results", response_model=List[AssessmentResultOut])
async def session_results(session_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	session = store.get_owned_session(db, user, session_id)
	return [result_out(row) for row in store.list_session_results(db, session)]
