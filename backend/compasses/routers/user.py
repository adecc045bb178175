from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import store
from ..db import get_db
from ..models import AssessmentSession, ProgressTracking, User
from ..reporting import user_dashboard
from .assessment import IDP
from .auth import get_current_user


router = APIRouter(prefix="/user", tags=["user"])


class ProfileOut(BaseModel):
	id: str
	username: str
	email: Optional[str]
	experienceYears: int
	level: int
	standardScore: float
	department: Optional[str]
	createdAt: datetime
	lastLogin: Optional[datetime]


class ProgressOut(BaseModel):
	competencyId: str
	firstScore: float
	latestScore: float
	assessmentCount: int
	improvementTrend: float
	lastAssessedAt: datetime


class HistoryResultOut(BaseModel):
	id: str
	competencyId: str
	competencyName: str
	score: float
	gap: float
	feedback: str
	createdAt: datetime
	idpPlan: Optional[IDP]


class HistorySessionOut(BaseModel):
	id: str
	status: str
	language: str
	totalCompetencies: int
	completedCount: int
	startedAt: datetime
	completedAt: Optional[datetime]
	results: List[HistoryResultOut]


def _progress_out(row: ProgressTracking) -> ProgressOut:
	return ProgressOut(
		competencyId=row.competency_id,
		firstScore=row.first_score,
		latestScore=row.latest_score,
		assessmentCount=row.assessment_count,
		improvementTrend=row.improvement_trend,
		lastAssessedAt=row.last_assessed_at,
	)


def _history_out(session: AssessmentSession) -> HistorySessionOut:
	results = []
	for row in session.results:
		plan = row.idp_plan
		results.append(
			HistoryResultOut(
				id=row.id,
				competencyId=row.competency_id,
				competencyName=row.competency_name,
				score=row.score,
				gap=row.gap,
				feedback=row.feedback,
				createdAt=row.created_at,
				idpPlan=IDP(
					trainingCourses=plan.training_courses or [],
					nonTrainingCourses=plan.non_training_courses or [],
					recommendation=plan.recommendation,
				) if plan else None,
			)
		)
	return HistorySessionOut(
		id=session.id,
		status=session.status,
		language=session.language,
		totalCompetencies=session.total_competencies,
		completedCount=session.completed_count,
		startedAt=session.started_at,
		completedAt=session.completed_at,
		results=results,
	)


@router.get("/profile", response_model=ProfileOut)
async def profile(user: User = Depends(get_current_user)):
	return ProfileOut(
		id=user.id,
		username=user.username,
		email=user.email,
		experienceYears=user.experience_years,
		level=user.level,
		standardScore=user.standard_score,
		department=user.department,
		createdAt=user.created_at,
		lastLogin=user.last_login,
	)


@router.get("/progress", response_model=List[ProgressOut])
async def progress(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return [_progress_out(row) for row in store.list_progress(db, user)]


@router.get("/history", response_model=List[HistorySessionOut])
async def history(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return [_history_out(session) for session in store.list_history(db, user)]


@router.get("/dashboard")
async def dashboard(
	sessionId: Optional[str] = None,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	if sessionId:
		session = store.get_owned_session(db, user, sessionId)
	else:
		session = store.latest_session(db, user)
	return user_dashboard(user, session)
