from datetime import timedelta

from compasses.models import AssessmentResult, AssessmentSession, User, utcnow
from compasses.reporting import build_roster, completion_rate, is_active, nurse_roster, user_dashboard


def make_user(db, username, last_login=None, standard_score=2.0):
	user = User(
		username=username,
		password_hash="x",
		experience_years=3,
		level=3,
		standard_score=standard_score,
		last_login=last_login,
	)
	db.add(user)
	db.commit()
	return user


def make_session(db, user, status="in_progress", total=6, completed=0):
	session = AssessmentSession(user_id=user.id, status=status, language="en", total_competencies=total, completed_count=completed)
	db.add(session)
	db.commit()
	return session


def add_result(db, session, competency_id, score, standard=2.0, created_at=None):
	row = AssessmentResult(
		session_id=session.id,
		user_id=session.user_id,
		competency_id=competency_id,
		competency_name=competency_id,
		score=score,
		gap=score - standard,
		feedback="",
	)
	if created_at is not None:
		row.created_at = created_at
	db.add(row)
	db.commit()
	return row


def test_completion_rate():
	assert completion_rate(2, 3) == 66.7
	assert completion_rate(0, 0) == 0.0
	assert completion_rate(6, 6) == 100.0


def test_is_active_window():
	now = utcnow()
	assert is_active(now - timedelta(days=5), now)
	assert not is_active(now - timedelta(days=45), now)
	assert not is_active(None, now)


def test_nurse_roster(db):
	now = utcnow()
	busy = make_user(db, "busy", last_login=now - timedelta(days=5))
	idle = make_user(db, "idle", last_login=now - timedelta(days=45))
	first = make_session(db, busy, status="completed")
	make_session(db, busy, status="completed")
	make_session(db, busy)
	add_result(db, first, "f1", 3.0)
	add_result(db, first, "m1", 1.5)

	roster = nurse_roster(db, now=now)
	assert roster["summary"] == {"totalNurses": 2, "activeNurses": 1}

	by_name = {n["username"]: n for n in roster["nurses"]}
	assert by_name["busy"]["totalSessions"] == 3
	assert by_name["busy"]["completedSessions"] == 2
	assert by_name["busy"]["completionRate"] == 66.7
	assert by_name["busy"]["assessmentCount"] == 2
	assert by_name["busy"]["averageScore"] == 2.25
	assert by_name["busy"]["averageGap"] == 0.25
	assert by_name["idle"]["completionRate"] == 0.0
	assert by_name["idle"]["assessmentCount"] == 0
	assert by_name["idle"]["lastAssessedAt"] is None
	assert idle.id in {n["id"] for n in roster["nurses"]}


def test_build_roster_without_rows():
	assert build_roster([], [], [], utcnow()) == {"summary": {"totalNurses": 0, "activeNurses": 0}, "nurses": []}


def test_user_dashboard_uses_latest_result_per_competency(db):
	user = make_user(db, "nurse")
	session = make_session(db, user, total=2, completed=2)
	now = utcnow()
	add_result(db, session, "f1", 1.0, created_at=now - timedelta(minutes=2))
	add_result(db, session, "f1", 3.0, created_at=now - timedelta(minutes=1))
	add_result(db, session, "m1", 1.5, created_at=now)
	db.refresh(session)

	dashboard = user_dashboard(user, session)
	assert [c["competencyId"] for c in dashboard["competencies"]] == ["f1", "m1"]
	assert dashboard["averageScore"] == 2.25
	assert dashboard["belowStandard"] == ["m1"]
	assert dashboard["atOrAboveStandard"] == ["f1"]
	assert dashboard["completionRate"] == 100.0
	assert dashboard["reportUnlocked"] is True
	assert dashboard["competencies"][0]["category"] == "Functional"


def test_user_dashboard_without_session(db):
	user = make_user(db, "fresh")
	dashboard = user_dashboard(user, None)
	assert dashboard["sessionId"] is None
	assert dashboard["reportUnlocked"] is False
