from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .competencies import LANGUAGES
from .errors import AuthorizationError, NotFoundError, ValidationError
from .gateway import NO_RESPONSE
from .models import (
	AssessmentResult,
	AssessmentSession,
	IDPPlan,
	ProgressTracking,
	QuestionResponse,
	User,
	utcnow,
)

logger = logging.getLogger(__name__)


def create_session(db: Session, user: User, language: str, total_competencies: int) -> AssessmentSession:
	if language not in LANGUAGES:
		raise ValidationError("language must be one of th, en")
	if total_competencies is None or total_competencies < 1:
		raise ValidationError("totalCompetencies must be at least 1")
	row = AssessmentSession(
		user_id=user.id,
		status="in_progress",
		language=language,
		total_competencies=total_competencies,
		completed_count=0,
	)
	db.add(row)
	db.commit()
	db.refresh(row)
	return row


def get_owned_session(db: Session, user: User, session_id: Optional[str]) -> AssessmentSession:
	if not session_id:
		raise ValidationError("Session ID is required")
	row = db.get(AssessmentSession, session_id)
	if row is None:
		logger.error("Session not found: %s", session_id)
		raise NotFoundError("Session not found. Please start a new assessment session.")
	if row.user_id != user.id:
		raise AuthorizationError("Unauthorized access to session")
	return row


def record_evaluation(
	db: Session,
	user: User,
	session: AssessmentSession,
	*,
	competency_id: str,
	competency_name: str,
	scenarios: Sequence[Dict[str, Any]],
	responses: Sequence[Optional[str]],
	standard_score: float,
	evaluation: Dict[str, Any],
) -> AssessmentResult:
	"""Persist one competency evaluation and update the session and progress."""
	score = evaluation["score"]
	already_scored = db.scalar(
		select(AssessmentResult.id)
		.where(AssessmentResult.session_id == session.id, AssessmentResult.competency_id == competency_id)
		.limit(1)
	)

	result = AssessmentResult(
		session_id=session.id,
		user_id=user.id,
		competency_id=competency_id,
		competency_name=competency_name,
		score=score,
		gap=score - standard_score,
		feedback=evaluation.get("feedback") or "",
	)
	db.add(result)
	db.flush()

	for idx, scenario in enumerate(scenarios):
		answer = responses[idx] if idx < len(responses) and responses[idx] else NO_RESPONSE
		db.add(
			QuestionResponse(
				assessment_result_id=result.id,
				question_number=idx + 1,
				scenario_text=str(scenario.get("text", "")),
				user_response=answer,
			)
		)

	idp = evaluation.get("idp") or {}
	db.add(
		IDPPlan(
			assessment_result_id=result.id,
			user_id=user.id,
			training_courses=list(idp.get("trainingCourses") or []),
			non_training_courses=list(idp.get("nonTrainingCourses") or []),
			recommendation=idp.get("recommendation") or "",
		)
	)
	db.commit()

	upsert_progress(db, user, competency_id, score)

	# Re-takes within a session append a result but do not count twice
	if not already_scored:
		increment_completed_count(db, session)

	db.refresh(result)
	return result


def upsert_progress(db: Session, user: User, competency_id: str, score: float) -> None:
	now = utcnow()
	updated = db.execute(
		update(ProgressTracking)
		.where(ProgressTracking.user_id == user.id, ProgressTracking.competency_id == competency_id)
		.values(
			assessment_count=ProgressTracking.assessment_count + 1,
			latest_score=score,
			improvement_trend=score - ProgressTracking.first_score,
			last_assessed_at=now,
		)
	)
	if updated.rowcount:
		db.commit()
		return
	db.add(
		ProgressTracking(
			user_id=user.id,
			competency_id=competency_id,
			first_score=score,
			latest_score=score,
			assessment_count=1,
			improvement_trend=0.0,
			last_assessed_at=now,
		)
	)
	try:
		db.commit()
	except IntegrityError:
		# Another request created the row first; apply this score as an update
		db.rollback()
		upsert_progress(db, user, competency_id, score)


def increment_completed_count(db: Session, session: AssessmentSession) -> None:
	db.execute(
		update(AssessmentSession)
		.where(
			AssessmentSession.id == session.id,
			AssessmentSession.completed_count < AssessmentSession.total_competencies,
		)
		.values(completed_count=AssessmentSession.completed_count + 1)
	)
	db.commit()
	db.refresh(session)


def complete_session(db: Session, session: AssessmentSession) -> AssessmentSession:
	session.status = "completed"
	session.completed_at = utcnow()
	db.add(session)
	db.commit()
	db.refresh(session)
	return session


def latest_results(results: Sequence[AssessmentResult]) -> List[AssessmentResult]:
	"""Keep the most recent result per competency, in first-assessed order."""
	latest: Dict[str, AssessmentResult] = {}
	for row in sorted(results, key=lambda r: r.created_at):
		latest[row.competency_id] = row
	return list(latest.values())


def list_session_results(db: Session, session: AssessmentSession) -> List[AssessmentResult]:
	rows = db.scalars(
		select(AssessmentResult)
		.where(AssessmentResult.session_id == session.id, AssessmentResult.user_id == session.user_id)
		.options(selectinload(AssessmentResult.responses), selectinload(AssessmentResult.idp_plan))
		.order_by(AssessmentResult.created_at)
	).all()
	return latest_results(rows)


def list_progress(db: Session, user: User) -> List[ProgressTracking]:
	return list(
		db.scalars(
			select(ProgressTracking)
			.where(ProgressTracking.user_id == user.id)
			.order_by(ProgressTracking.last_assessed_at.desc())
		).all()
	)


def list_history(db: Session, user: User, limit: int = 10) -> List[AssessmentSession]:
	return list(
		db.scalars(
			select(AssessmentSession)
			.where(AssessmentSession.user_id == user.id)
			.options(selectinload(AssessmentSession.results).selectinload(AssessmentResult.idp_plan))
			.order_by(AssessmentSession.started_at.desc())
			.limit(limit)
		).all()
	)


def latest_session(db: Session, user: User) -> Optional[AssessmentSession]:
	return db.scalars(
		select(AssessmentSession)
		.where(AssessmentSession.user_id == user.id)
		.options(selectinload(AssessmentSession.results))
		.order_by(AssessmentSession.started_at.desc())
		.limit(1)
	).first()
