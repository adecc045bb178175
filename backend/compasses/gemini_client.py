from __future__ import annotations
import json
import httpx
from typing import Any, Dict, Optional
from .settings import settings


class GeminiError(RuntimeError):
	def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
		super().__init__(message)
		self.status_code = status_code


class GeminiQuotaError(GeminiError):
	"""The API reported resource exhaustion (HTTP 429, RESOURCE_EXHAUSTED, quota)."""


def is_quota_failure(status_code: Optional[int], message: str) -> bool:
	return status_code == 429 or "RESOURCE_EXHAUSTED" in message or "quota" in message


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		tts_model: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.tts_model = tts_model or settings.gemini_tts_model
		self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
		self._client = httpx.AsyncClient(timeout=settings.gemini_timeout_seconds, transport=transport)

	async def generate(self, prompt: str, *, response_schema: Optional[Dict[str, Any]] = None) -> str:
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		if response_schema is not None:
			payload["generationConfig"] = {
				"responseMimeType": "application/json",
				"responseSchema": response_schema,
			}
		data = await self._post_payload(self.model, payload)
		try:
			text = data["candidates"][0]["content"]["parts"][0]["text"]
		except (KeyError, IndexError, TypeError):
			raise GeminiError(f"Unexpected Gemini response: {json.dumps(data)[:500]}")
		if not text:
			raise GeminiError("Invalid response from AI model")
		return text

	async def generate_json(self, prompt: str, response_schema: Dict[str, Any]) -> Any:
		raw = await self.generate(prompt, response_schema=response_schema)
		try:
			return json.loads(raw)
		except ValueError:
			raise GeminiError("Failed to parse JSON from Gemini output")

	async def generate_speech(self, text: str, *, voice_name: str) -> str:
		"""Return base64 PCM16 audio for ``text``, or "" when the model sent none."""
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": text}]}],
			"generationConfig": {
				"responseModalities": ["AUDIO"],
				"speechConfig": {
					"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice_name}},
				},
			},
		}
		data = await self._post_payload(self.tts_model, payload)
		try:
			return data["candidates"][0]["content"]["parts"][0]["inlineData"]["data"] or ""
		except (KeyError, IndexError, TypeError):
			return ""

	async def _post_payload(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
		url = f"{self.base_url}/models/{model}:generateContent"
		headers = {"x-goog-api-key": self.api_key}
		try:
			r = await self._client.post(url, headers=headers, json=payload)
		except httpx.RequestError as net_err:
			raise GeminiError(f"Gemini request failed: {net_err}") from net_err
		if r.is_error:
			message = r.text
			if is_quota_failure(r.status_code, message):
				raise GeminiQuotaError(message or "RESOURCE_EXHAUSTED", status_code=r.status_code)
			raise GeminiError(f"Gemini returned HTTP {r.status_code}: {message[:500]}", status_code=r.status_code)
		try:
			return r.json()
		except ValueError:
			raise GeminiError(f"Unexpected Gemini response: {r.text[:500]}")

	async def aclose(self) -> None:
		await self._client.aclose()
