"""Async HTTP client for the health tracker backend used by voice sessions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from services.realtime.errors import CredentialError, PersistenceError
from services.realtime.settings import RealtimeSettings

LOGGER = logging.getLogger(__name__)


class BackendClient:
	"""Fetch ephemeral credentials and patient context, and persist conversations."""

	def __init__(
		self,
		settings: RealtimeSettings,
		*,
		token: Optional[str] = None,
		http_client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.settings = settings
		self.token = token
		self._owns_client = http_client is None
		self.http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_s)

	def _url(self, path: str) -> str:
		return f"{self.settings.api_url.rstrip('/')}/{path.lstrip('/')}"

	def _auth_headers(self) -> Dict[str, str]:
		return {"Authorization": f"Bearer {self.token}"} if self.token else {}

	async def fetch_credential(self, path: Optional[str] = None) -> str:
		"""Return the ephemeral realtime credential from the token endpoint.

		Raises:
			CredentialError: On transport failure, a non-200 status, or a body
				without `client_secret.value`.
		"""
		url = self._url(path or self.settings.token_path)
		try:
			response = await self.http.get(url, headers=self._auth_headers())
		except httpx.HTTPError as exc:
			raise CredentialError(f"Token request failed: {exc}") from exc
		if response.status_code != 200:
			raise CredentialError(f"Invalid token response: HTTP {response.status_code}")
		try:
			body = response.json()
		except ValueError as exc:
			raise CredentialError("Invalid token response: body is not JSON") from exc
		secret = body.get("client_secret") if isinstance(body, dict) else None
		value = secret.get("value") if isinstance(secret, dict) else None
		if not value or not isinstance(value, str):
			raise CredentialError("Invalid token response: missing client_secret.value")
		return value

	async def save_conversation(self, messages: List[Dict[str, str]], reason: str) -> Dict[str, Any]:
		"""POST a conversation to the persistence endpoint.

		Raises:
			PersistenceError: On transport failure or a non-2xx status.
		"""
		try:
			response = await self.http.post(
				self._url("/conversations"),
				json={"messages": messages, "reason": reason},
				headers=self._auth_headers(),
			)
		except httpx.HTTPError as exc:
			raise PersistenceError(f"Conversation save failed: {exc}") from exc
		if not response.is_success:
			raise PersistenceError(f"Conversation save failed: HTTP {response.status_code} - {response.text}")
		LOGGER.info("Conversation saved (%d messages, reason=%s)", len(messages), reason)
		return response.json() if response.content else {}

	async def fetch_patient_window(self, patient_id: str, window_days: int) -> Dict[str, Any]:
		"""Return the patient's recent data window for context priming."""
		response = await self.http.get(
			self._url("/voice-agent/provider-report/patient-data"),
			params={"patientId": patient_id, "windowDays": window_days},
			headers=self._auth_headers(),
		)
		response.raise_for_status()
		return response.json() or {}

	async def aclose(self) -> None:
		if self._owns_client:
			await self.http.aclose()
