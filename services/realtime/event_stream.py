"""Send and dispatch Realtime protocol events over the session data channel."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

from models.session_models import Session, TranscriptEvent
from services.realtime import response_parser as protocol
from services.realtime.errors import ChannelError, TranscriptionError, TranscriptionErrorKind
from services.realtime.events import (
	AssistantMessage,
	ChannelClosed,
	ChannelFailed,
	ChannelOpened,
	DiagnosticSink,
	DomainEvent,
	EventListener,
	NullDiagnosticSink,
	PatientTranscript,
	RateLimited,
	RealtimeError,
	ResponseDone,
	TranscriptionFailed,
)
from services.realtime.settings import RealtimeSettings

LOGGER = logging.getLogger(__name__)

RATE_LIMIT_RE = re.compile(r"\b429\b|rate[ _-]?limit", re.IGNORECASE)

TranscriptHandler = Callable[[str], Any]


def _display_time(now: float) -> str:
	return time.strftime("%H:%M:%S", time.localtime(now))


def classify_transcription_failure(message: str) -> TranscriptionError:
	"""Tell HTTP 429-style throttling apart from other transcription failures."""
	kind = TranscriptionErrorKind.RATE_LIMITED if RATE_LIMIT_RE.search(message) else TranscriptionErrorKind.GENERIC
	return TranscriptionError(message, kind)


class EventStream:
	"""Own the data channel traffic of one session.

	Every event sent or received is appended to `log` in send/receipt order.
	Outbound sends are gated on the channel being open and on the rate-limit
	window stored in the shared `Session`.
	"""

	def __init__(
		self,
		settings: RealtimeSettings,
		*,
		session: Optional[Session] = None,
		on_transcript: Optional[TranscriptHandler] = None,
		listener: Optional[EventListener] = None,
		sink: Optional[DiagnosticSink] = None,
		clock: Callable[[], float] = time.time,
	) -> None:
		self.settings = settings
		self.session = session or Session()
		self.on_transcript = on_transcript
		self.listener = listener
		self.sink = sink or NullDiagnosticSink()
		self.clock = clock
		self.channel: Any = None
		self.log: List[Dict[str, Any]] = []
		self.transcript: List[TranscriptEvent] = []
		self.current_message = ""
		self._greeting_handle: Optional[asyncio.TimerHandle] = None
		self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
			protocol.ITEM_CREATED: self._on_item_created,
			protocol.TRANSCRIPTION_COMPLETED: self._on_transcription_completed,
			protocol.TRANSCRIPTION_FAILED: self._on_transcription_failed,
			protocol.ERROR: self._on_error_event,
			protocol.RESPONSE_DONE: self._on_response_done,
		}

	@property
	def rate_limited_until(self) -> Optional[float]:
		return self.session.rate_limited_until

	@property
	def is_open(self) -> bool:
		return self.channel is not None and getattr(self.channel, "readyState", None) == "open"

	def is_rate_limited(self, now: Optional[float] = None) -> bool:
		until = self.session.rate_limited_until
		return until is not None and (self.clock() if now is None else now) < until

	def reset(self, session: Session) -> None:
		"""Forget the previous channel, log and transcript before a new session."""
		self._cancel_greeting()
		self.session = session
		self.channel = None
		self.log = []
		self.transcript = []
		self.current_message = ""

	def attach(self, channel: Any) -> None:
		"""Wire the data channel's lifecycle and message events to this stream."""
		self.channel = channel
		channel.on("open", self.handle_open)
		channel.on("message", self.dispatch)
		channel.on("close", self.handle_close)
		channel.on("error", self.handle_error)
		if getattr(channel, "readyState", None) == "open":
			self.handle_open()

	# -- outbound -------------------------------------------------------------

	def send(self, event: Dict[str, Any]) -> bool:
		"""Transmit one client event; return False when gated or refused."""
		now = self.clock()
		if not self.is_open:
			LOGGER.debug("Dropping %s: data channel not open", event.get("type"))
			return False
		if self.is_rate_limited(now):
			LOGGER.debug("Dropping %s: rate limited until %s", event.get("type"), self.session.rate_limited_until)
			return False

		wire = dict(event)
		wire["event_id"] = wire.get("event_id") or uuid4().hex
		payload = json.dumps(wire)
		try:
			self.channel.send(payload)
		except Exception as exc:
			LOGGER.warning("Data channel refused %s: %s", wire.get("type"), exc)
			self._emit(RealtimeError(message=f"Send failed: {exc}"))
			return False
		logged = dict(wire)
		logged.setdefault("timestamp", _display_time(now))
		self._append(logged)
		return True

	def send_user_text(self, text: str) -> bool:
		"""Create a user message item, then explicitly ask for a response."""
		created = self.send(
			{
				"type": protocol.ITEM_CREATE,
				"item": {"type": "message", "role": "user", "content": [{"type": "input_text", "text": text}]},
			}
		)
		if not created:
			return False
		return self.send({"type": protocol.RESPONSE_CREATE})

	# -- inbound --------------------------------------------------------------

	def dispatch(self, raw: Union[str, bytes, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
		"""Parse one inbound frame, log it, and route it by message kind."""
		if isinstance(raw, dict):
			event = dict(raw)
		else:
			try:
				event = json.loads(raw)
			except (TypeError, ValueError) as exc:
				LOGGER.warning("Error parsing data channel message: %s", exc)
				return None
		if not isinstance(event, dict):
			LOGGER.warning("Ignoring non-object data channel message: %r", event)
			return None
		if not event.get("timestamp"):
			event["timestamp"] = _display_time(self.clock())

		self._append(event)
		handler = self._handlers.get(str(event.get("type")))
		if handler is not None:
			handler(event)
		return event

	def _on_item_created(self, event: Dict[str, Any]) -> None:
		if (event.get("item") or {}).get("role") != "assistant":
			return
		text = protocol.item_text(event)
		if text:
			self.current_message = text
			self._emit(AssistantMessage(text=text))

	def _on_transcription_completed(self, event: Dict[str, Any]) -> None:
		said = str(event.get("transcript") or "").strip()
		self._emit(PatientTranscript(text=said))
		if self.on_transcript is not None:
			self.on_transcript(said)

	def _on_transcription_failed(self, event: Dict[str, Any]) -> None:
		message = protocol.error_message(event, "Audio transcription failed")
		if classify_transcription_failure(message).kind is TranscriptionErrorKind.RATE_LIMITED:
			until = self.clock() + self.settings.rate_limit_cooldown_ms / 1000.0
			self.session.rate_limited_until = until
			LOGGER.warning(
				"Speech-to-text rate limited; pausing sends for %ds", self.settings.rate_limit_cooldown_ms // 1000
			)
			self._emit(RateLimited(until=until, message=message))
		else:
			LOGGER.warning("Transcription failed: %s", message)
			self._emit(TranscriptionFailed(message=message))

	def _on_error_event(self, event: Dict[str, Any]) -> None:
		message = protocol.error_message(event, "Realtime error")
		LOGGER.warning("Realtime error: %s", message)
		self._emit(RealtimeError(message=message))

	def _on_response_done(self, event: Dict[str, Any]) -> None:
		self._emit(ResponseDone(event=event))

	# -- lifecycle ------------------------------------------------------------

	def handle_open(self) -> None:
		LOGGER.info("Data channel open")
		self.log = []
		self.transcript = []
		self._emit(ChannelOpened())
		if self.settings.greeting:
			loop = asyncio.get_running_loop()
			self._greeting_handle = loop.call_later(self.settings.greeting_delay_s, self._send_greeting)

	def handle_close(self) -> None:
		LOGGER.info("Data channel closed")
		self._cancel_greeting()
		self._emit(ChannelClosed())

	def handle_error(self, error: Any = None) -> None:
		failure = error if isinstance(error, ChannelError) else ChannelError(str(error or "Communication error occurred"))
		message = str(failure)
		LOGGER.warning("Data channel error: %s", message)
		self._emit(ChannelFailed(message=message))

	def _send_greeting(self) -> None:
		self._greeting_handle = None
		if self.settings.greeting:
			self.send_user_text(self.settings.greeting)

	def _cancel_greeting(self) -> None:
		if self._greeting_handle is not None:
			self._greeting_handle.cancel()
			self._greeting_handle = None

	# -- helpers --------------------------------------------------------------

	def _append(self, event: Dict[str, Any]) -> None:
		self.log.append(event)
		turn = protocol.to_transcript_event(event)
		if turn is not None:
			self.transcript.append(turn)
		self.sink.emit(event)

	def _emit(self, event: DomainEvent) -> None:
		if self.listener is not None:
			self.listener(event)
