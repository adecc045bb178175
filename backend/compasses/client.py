from __future__ import annotations
import httpx
from typing import Any, Dict, List, Optional, Sequence


class ApiError(RuntimeError):
	def __init__(self, status_code: int, message: str) -> None:
		super().__init__(message)
		self.status_code = status_code
		self.message = message


class CompAssesClient:
	"""Async client for the CompAsses HTTP API."""

	def __init__(
		self,
		base_url: str = "http://localhost:8000/api",
		*,
		token: Optional[str] = None,
		timeout: float = 90,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.token = token
		self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

	def _headers(self) -> Dict[str, str]:
		return {"Authorization": f"Bearer {self.token}"} if self.token else {}

	async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
		r = await self._client.request(method, path, json=json, headers=self._headers())
		if r.is_error:
			try:
				message = r.json().get("error") or r.text
			except ValueError:
				message = r.text
			raise ApiError(r.status_code, message)
		return r.json()

	async def login(
		self,
		username: str,
		password: Optional[str] = None,
		*,
		experience_years: Optional[int] = None,
	) -> Dict[str, Any]:
		data = await self._request(
			"POST",
			"/auth/login",
			{"username": username, "password": password, "experienceYears": experience_years},
		)
		self.token = data["token"]
		return data["user"]

	async def register(self, username: str, password: str, *, email: Optional[str] = None, experience_years: int = 0, department: Optional[str] = None) -> Dict[str, Any]:
		data = await self._request(
			"POST",
			"/auth/register",
			{
				"username": username,
				"password": password,
				"email": email,
				"experienceYears": experience_years,
				"department": department,
			},
		)
		self.token = data["token"]
		return data["user"]

	async def admin_login(self, username: str, password: str) -> Dict[str, Any]:
		data = await self._request("POST", "/auth/admin/login", {"username": username, "password": password})
		self.token = data["token"]
		return data["admin"]

	def logout(self) -> None:
		# Tokens are not revoked server-side
		self.token = None

	async def start_session(self, language: str, total_competencies: int) -> str:
		data = await self._request(
			"POST",
			"/assessment/session/start",
			{"language": language, "totalCompetencies": total_competencies},
		)
		return data["sessionId"]

	async def generate_scenarios(self, competency_name: str, language: str, experience_years: float, count: int) -> List[Dict[str, Any]]:
		return await self._request(
			"POST",
			"/assessment/scenarios/generate",
			{
				"competencyName": competency_name,
				"language": language,
				"experienceYears": experience_years,
				"count": count,
			},
		)

	async def evaluate(
		self,
		session_id: str,
		competency_id: str,
		competency_name: str,
		scenarios: Sequence[Dict[str, Any]],
		responses: Sequence[str],
		language: str,
		standard_score: float,
	) -> Dict[str, Any]:
		return await self._request(
			"POST",
			"/assessment/evaluate",
			{
				"sessionId": session_id,
				"competencyId": competency_id,
				"competencyName": competency_name,
				"scenarios": list(scenarios),
				"responses": list(responses),
				"language": language,
				"standardScore": standard_score,
			},
		)

	async def voice(self, text: str, language: str) -> str:
		data = await self._request("POST", "/assessment/voice", {"text": text, "language": language})
		return data.get("audioData") or ""

	async def consolidated_summary(self, experience_years: float, results: Sequence[Dict[str, Any]], language: str) -> str:
		data = await self._request(
			"POST",
			"/assessment/summary/consolidated",
			{"experienceYears": experience_years, "results": list(results), "language": language},
		)
		return data["summary"]

	async def complete_session(self, session_id: str) -> None:
		await self._request("POST", "/assessment/session/complete", {"sessionId": session_id})

	async def session_results(self, session_id: str) -> List[Dict[str, Any]]:
		return await self._request("GET", f"/assessment/session/{session_id}/results")

	async def progress(self) -> List[Dict[str, Any]]:
		return await self._request("GET", "/user/progress")

	async def nurses(self) -> Dict[str, Any]:
		return await self._request("GET", "/admin/nurses")

	async def aclose(self) -> None:
		await self._client.aclose()
