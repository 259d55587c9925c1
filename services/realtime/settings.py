"""Environment-driven settings for the realtime voice session engine."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Optional

DEFAULT_GREETING = "Hello, I'm ready to talk. Please help me get started."


def _default_mic_format() -> str:
	"""Return the ffmpeg capture format for the current platform."""
	if sys.platform == "darwin":
		return "avfoundation"
	if sys.platform.startswith("win"):
		return "dshow"
	return "pulse"


def _default_mic_device() -> str:
	if sys.platform == "darwin":
		return "none:0"
	if sys.platform.startswith("win"):
		return "audio=Microphone"
	return "default"


@dataclass
class RealtimeSettings:
	"""Connection endpoints and tuning knobs for one voice session.

	Attributes:
		api_url: Base URL of the health tracker backend (token, persistence, patient data).
		token_path: Backend path returning the ephemeral realtime credential.
		realtime_url: Signaling endpoint receiving the SDP offer; the model comes from the minted credential.
		ice_server: STUN server used by the peer connection.
		http_timeout_s: Upper bound for every HTTP round-trip.
		rate_limit_cooldown_ms: Send suppression window after a throttled transcription.
		speaking_threshold: Smoothed level above which the assistant counts as speaking.
		greeting_delay_s: Delay between channel open and the greeting prompt.
		greeting: First user message sent once the channel opens; None disables it.
		context_window_days: Window of saved data fetched by the context primer.
		mic_device: ffmpeg capture device for the microphone.
		mic_format: ffmpeg capture format for the microphone.
		audio_sink: Optional file/device receiving assistant audio.
	"""

	api_url: str = "http://localhost:8800/api"
	token_path: str = "/voice-agent/symptom-recorder/token"
	realtime_url: str = "https://api.openai.com/v1/realtime/calls"
	ice_server: str = "stun:stun.l.google.com:19302"
	http_timeout_s: float = 10.0
	rate_limit_cooldown_ms: int = 15000
	speaking_threshold: float = 0.06
	greeting_delay_s: float = 0.6
	greeting: Optional[str] = DEFAULT_GREETING
	context_window_days: int = 7
	mic_device: str = ""
	mic_format: str = ""
	audio_sink: Optional[str] = None

	def __post_init__(self) -> None:
		self.mic_device = self.mic_device or _default_mic_device()
		self.mic_format = self.mic_format or _default_mic_format()

	@classmethod
	def from_env(cls) -> "RealtimeSettings":
		"""Build settings from environment variables, falling back to defaults."""
		defaults = cls()
		return cls(
			api_url=os.getenv("HEALTHTRACKER_API_URL", defaults.api_url),
			token_path=os.getenv("VOICE_AGENT_TOKEN_PATH", defaults.token_path),
			realtime_url=os.getenv("REALTIME_URL", defaults.realtime_url),
			ice_server=os.getenv("REALTIME_ICE_SERVER", defaults.ice_server),
			http_timeout_s=float(os.getenv("REALTIME_HTTP_TIMEOUT_S", str(defaults.http_timeout_s))),
			rate_limit_cooldown_ms=int(os.getenv("RATE_LIMIT_COOLDOWN_MS", str(defaults.rate_limit_cooldown_ms))),
			speaking_threshold=float(os.getenv("SPEAKING_THRESHOLD", str(defaults.speaking_threshold))),
			greeting_delay_s=float(os.getenv("GREETING_DELAY_S", str(defaults.greeting_delay_s))),
			context_window_days=int(os.getenv("CONTEXT_WINDOW_DAYS", str(defaults.context_window_days))),
			mic_device=os.getenv("MIC_DEVICE", ""),
			mic_format=os.getenv("MIC_FORMAT", ""),
			audio_sink=os.getenv("AUDIO_SINK") or None,
		)
