"""Ephemeral realtime credential minting built on the OpenAI client secrets API."""
from __future__ import annotations

import os
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

DEFAULT_REALTIME_MODEL = "gpt-realtime"
DEFAULT_VOICE = "alloy"
TRANSCRIPTION_MODEL = "whisper-1"


class RealtimeSessionMinter:
	"""Mint short-lived realtime credentials so browsers and devices never see the API key."""

	def __init__(self, client: AsyncOpenAI, *, model: Optional[str] = None, voice: Optional[str] = None) -> None:
		if client is None:
			raise ValueError("AsyncOpenAI client is required.")
		self.client = client
		self.model = model or os.getenv("REALTIME_MODEL", DEFAULT_REALTIME_MODEL)
		self.voice = voice or os.getenv("REALTIME_VOICE", DEFAULT_VOICE)

	async def mint(self, instructions: str) -> Dict[str, Any]:
		"""Return `{client_secret: {value, expires_at}}` for a session with `instructions`."""
		secret = await self.client.realtime.client_secrets.create(
			session={
				"type": "realtime",
				"model": self.model,
				"instructions": instructions,
				"audio": {
					"input": {"transcription": {"model": TRANSCRIPTION_MODEL}},
					"output": {"voice": self.voice},
				},
			},
		)
		return {"client_secret": {"value": secret.value, "expires_at": secret.expires_at}}
