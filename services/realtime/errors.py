"""Error kinds raised or surfaced by the realtime voice session engine."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class SessionConnectionError(ConnectionError):
	"""Session start aborted; the user sees the message and may retry manually."""


class CredentialError(SessionConnectionError):
	"""The token endpoint did not return a usable ephemeral credential."""


class MediaPermissionError(SessionConnectionError):
	"""Microphone capture was denied or no audio track is available."""


class SignalingError(SessionConnectionError):
	"""The SDP offer/answer exchange failed."""

	def __init__(self, message: str, status_code: Optional[int] = None) -> None:
		super().__init__(message)
		self.status_code = status_code


class TranscriptionErrorKind(str, Enum):
	RATE_LIMITED = "rate_limited"
	GENERIC = "generic"


class TranscriptionError(Exception):
	"""Input audio transcription failed on the remote side."""

	def __init__(self, message: str, kind: TranscriptionErrorKind = TranscriptionErrorKind.GENERIC) -> None:
		super().__init__(message)
		self.kind = kind


class ChannelError(Exception):
	"""The data channel reported an error or refused a send."""


class PersistenceError(Exception):
	"""Saving the conversation failed; logged only, never propagated by the guard."""
