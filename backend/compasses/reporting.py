"""Read-only aggregates for the nurse dashboard and the admin roster.

Nothing here is cached; every call recomputes from the stored rows.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .competencies import get_competency
from .models import AssessmentResult, AssessmentSession, User, utcnow
from .store import latest_results

ACTIVE_WINDOW = timedelta(days=30)


def completion_rate(completed: int, total: int) -> float:
	if total <= 0:
		return 0.0
	return round(completed / total * 100, 1)


def is_active(last_login: Optional[datetime], now: datetime) -> bool:
	if last_login is None:
		return False
	return now - last_login <= ACTIVE_WINDOW


def build_roster(
	users: Sequence[User],
	session_counts: Sequence[tuple],
	result_aggregates: Sequence[tuple],
	now: datetime,
) -> Dict[str, Any]:
	"""Assemble the admin roster.

	``session_counts`` holds ``(user_id, status, count)`` rows and
	``result_aggregates`` holds ``(user_id, count, avg_score, avg_gap,
	last_created_at)`` rows, as produced by :func:`nurse_roster`.
	"""
	sessions_by_user: Dict[str, Dict[str, int]] = defaultdict(lambda: {"total": 0, "completed": 0})
	for user_id, status, count in session_counts:
		sessions_by_user[user_id]["total"] += count
		if status == "completed":
			sessions_by_user[user_id]["completed"] += count
	results_by_user = {row[0]: row for row in result_aggregates}

	nurses: List[Dict[str, Any]] = []
	for user in users:
		sessions = sessions_by_user.get(user.id, {"total": 0, "completed": 0})
		_, count, avg_score, avg_gap, last_assessed = results_by_user.get(user.id, (user.id, 0, None, None, None))
		nurses.append(
			{
				"id": user.id,
				"username": user.username,
				"email": user.email,
				"department": user.department,
				"experienceYears": user.experience_years,
				"level": user.level,
				"standardScore": user.standard_score,
				"createdAt": user.created_at,
				"lastLogin": user.last_login,
				"totalSessions": sessions["total"],
				"completedSessions": sessions["completed"],
				"completionRate": completion_rate(sessions["completed"], sessions["total"]),
				"assessmentCount": count or 0,
				"averageScore": round(avg_score or 0.0, 2),
				"averageGap": round(avg_gap or 0.0, 2),
				"lastAssessedAt": last_assessed,
			}
		)

	return {
		"summary": {
			"totalNurses": len(nurses),
			"activeNurses": sum(1 for user in users if is_active(user.last_login, now)),
		},
		"nurses": nurses,
	}


def nurse_roster(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
	users = db.scalars(select(User).order_by(User.created_at.desc())).all()
	session_counts = db.execute(
		select(AssessmentSession.user_id, AssessmentSession.status, func.count(AssessmentSession.id))
		.group_by(AssessmentSession.user_id, AssessmentSession.status)
	).all()
	result_aggregates = db.execute(
		select(
			AssessmentResult.user_id,
			func.count(AssessmentResult.id),
			func.avg(AssessmentResult.score),
			func.avg(AssessmentResult.gap),
			func.max(AssessmentResult.created_at),
		).group_by(AssessmentResult.user_id)
	).all()
	return build_roster(users, [tuple(r) for r in session_counts], [tuple(r) for r in result_aggregates], now or utcnow())


def user_dashboard(user: User, session: Optional[AssessmentSession]) -> Dict[str, Any]:
	"""Per-nurse dashboard for one session (the latest one by default)."""
	if session is None:
		return {
			"sessionId": None,
			"standardScore": user.standard_score,
			"totalCompetencies": 0,
			"completedCount": 0,
			"completionRate": 0.0,
			"averageScore": 0.0,
			"averageGap": 0.0,
			"competencies": [],
			"belowStandard": [],
			"atOrAboveStandard": [],
			"reportUnlocked": False,
		}

	rows = latest_results(session.results)
	competencies = []
	for row in rows:
		item = get_competency(row.competency_id)
		competencies.append(
			{
				"competencyId": row.competency_id,
				"competencyName": row.competency_name,
				"category": item.category if item else None,
				"score": row.score,
				"gap": row.gap,
			}
		)
	below = [c["competencyId"] for c in competencies if c["gap"] < 0]
	at_or_above = [c["competencyId"] for c in competencies if c["gap"] >= 0]
	count = len(competencies)
	return {
		"sessionId": session.id,
		"standardScore": user.standard_score,
		"totalCompetencies": session.total_competencies,
		"completedCount": session.completed_count,
		"completionRate": completion_rate(session.completed_count, session.total_competencies),
		"averageScore": round(sum(c["score"] for c in competencies) / count, 2) if count else 0.0,
		"averageGap": round(sum(c["gap"] for c in competencies) / count, 2) if count else 0.0,
		"competencies": competencies,
		"belowStandard": below,
		"atOrAboveStandard": at_or_above,
		"reportUnlocked": session.completed_count == session.total_competencies,
	}
