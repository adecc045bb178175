import random

import httpx
import pytest

from compasses.audio import decode_pcm16
from compasses.client import ApiError, CompAssesClient
from compasses.flow import AssessmentFlow, FlowView, NurseProfile
from compasses.main import app


@pytest.fixture
def api(client):
	# ``client`` installs the database and Gemini overrides on the app
	return CompAssesClient("http://testserver/api", transport=httpx.ASGITransport(app=app))


@pytest.mark.asyncio
async def test_error_body_becomes_api_error():
	transport = httpx.MockTransport(lambda request: httpx.Response(404, json={"error": "Session not found"}))
	api = CompAssesClient(transport=transport, token="t")
	with pytest.raises(ApiError) as exc:
		await api.session_results("missing")
	assert exc.value.status_code == 404
	assert exc.value.message == "Session not found"
	await api.aclose()


@pytest.mark.asyncio
async def test_flow_against_api_with_quota_exhausted(api):
	user = await api.login("ward-nurse", "secret", experience_years=3)
	profile = NurseProfile(
		username=user["username"],
		experience_years=user["experienceYears"],
		level=user["level"],
		standard_score=user["standardScore"],
	)
	flow = AssessmentFlow(api, language="en", rng=random.Random(3))
	flow.login(profile)

	await flow.start_topic()
	while flow.view != FlowView.DASHBOARD:
		await flow.submit_response(" ".join(["monitor"] * 95))
		await flow.advance()

	assert {r.score for r in flow.results.values()} == {2.8}
	summary = await flow.show_report()
	assert summary.startswith("Fallback summary")

	results = await api.session_results(flow.session_id)
	assert len(results) == 6
	progress = await api.progress()
	assert {p["assessmentCount"] for p in progress} == {1}

	api.logout()
	with pytest.raises(ApiError) as exc:
		await api.progress()
	assert exc.value.status_code == 401
	await api.aclose()


def test_decode_pcm16():
	assert decode_pcm16("") == []
	# bytes 00 01 read little-endian are 256; the trailing odd byte is dropped
	assert decode_pcm16("AAEA") == [256 / 32768.0]
