from __future__ import annotations
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Integer, Float, Text, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


def utcnow() -> datetime:
	# Naive UTC, matching what SQLite hands back
	return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
	return uuid.uuid4().hex


class User(Base):
	__tablename__ = "users"
	id = Column(String(32), primary_key=True, default=_new_id)
	username = Column(String(128), unique=True, index=True, nullable=False)
	email = Column(String(256), nullable=True)
	department = Column(String(128), nullable=True)
	password_hash = Column(String(256), nullable=False)
	experience_years = Column(Integer, default=0, nullable=False)
	level = Column(Integer, default=1, nullable=False)
	standard_score = Column(Float, default=1.0, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	last_login = Column(DateTime, nullable=True)

	sessions = relationship("AssessmentSession", back_populates="user")


class AssessmentSession(Base):
	__tablename__ = "assessment_sessions"
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
	# in_progress | completed
	status = Column(String(16), default="in_progress", nullable=False)
	language = Column(String(2), default="th", nullable=False)
	total_competencies = Column(Integer, default=0, nullable=False)
	completed_count = Column(Integer, default=0, nullable=False)
	started_at = Column(DateTime, default=utcnow, nullable=False)
	completed_at = Column(DateTime, nullable=True)

	user = relationship("User", back_populates="sessions")
	results = relationship(
		"AssessmentResult",
		back_populates="session",
		cascade="all, delete-orphan",
		order_by="AssessmentResult.created_at",
	)


class AssessmentResult(Base):
	__tablename__ = "assessment_results"
	id = Column(String(32), primary_key=True, default=_new_id)
	session_id = Column(String(32), ForeignKey("assessment_sessions.id"), index=True, nullable=False)
	user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
	competency_id = Column(String(16), nullable=False)
	competency_name = Column(String(256), nullable=False)
	score = Column(Float, nullable=False)
	# Always score - standard_score at the time of evaluation
	gap = Column(Float, nullable=False)
	feedback = Column(Text, nullable=False, default="")
	created_at = Column(DateTime, default=utcnow, nullable=False)

	session = relationship("AssessmentSession", back_populates="results")
	responses = relationship(
		"QuestionResponse",
		back_populates="result",
		cascade="all, delete-orphan",
		order_by="QuestionResponse.question_number",
	)
	idp_plan = relationship("IDPPlan", back_populates="result", uselist=False, cascade="all, delete-orphan")


class QuestionResponse(Base):
	__tablename__ = "question_responses"
	id = Column(String(32), primary_key=True, default=_new_id)
	assessment_result_id = Column(String(32), ForeignKey("assessment_results.id"), index=True, nullable=False)
	question_number = Column(Integer, nullable=False)
	scenario_text = Column(Text, nullable=False)
	user_response = Column(Text, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)

	result = relationship("AssessmentResult", back_populates="responses")


class IDPPlan(Base):
	__tablename__ = "idp_plans"
	id = Column(String(32), primary_key=True, default=_new_id)
	assessment_result_id = Column(String(32), ForeignKey("assessment_results.id"), unique=True, nullable=False)
	user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
	training_courses = Column(JSON, nullable=False, default=list)
	non_training_courses = Column(JSON, nullable=False, default=list)
	recommendation = Column(Text, nullable=False, default="")
	created_at = Column(DateTime, default=utcnow, nullable=False)

	result = relationship("AssessmentResult", back_populates="idp_plan")


class ProgressTracking(Base):
	__tablename__ = "progress_tracking"
	__table_args__ = (UniqueConstraint("user_id", "competency_id", name="uq_progress_user_competency"),)
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
	competency_id = Column(String(16), nullable=False)
	# Written once, on the first evaluation of this competency
	first_score = Column(Float, nullable=False)
	latest_score = Column(Float, nullable=False)
	assessment_count = Column(Integer, default=1, nullable=False)
	improvement_trend = Column(Float, default=0.0, nullable=False)
	last_assessed_at = Column(DateTime, default=utcnow, nullable=False)
