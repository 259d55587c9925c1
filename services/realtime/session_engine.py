"""Finite-state orchestration of one realtime voice session.

The engine wires SessionTransport, EventStream, SlotExtractor, PersistenceGuard
and AudioLevelMonitor together. All lifecycle moves go through `TRANSITIONS`;
a (state, trigger) pair missing from the table is ignored.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import httpx

from models.session_models import ExtractionState, Session, SessionStatus, SessionSummary
from services.realtime.audio_level import AudioLevelMonitor
from services.realtime.backend_client import BackendClient
from services.realtime.context_primer import ContextPrimer
from services.realtime.errors import SessionConnectionError
from services.realtime.event_stream import EventStream
from services.realtime.events import (
	ChannelClosed,
	ChannelFailed,
	ChannelOpened,
	DiagnosticSink,
	DomainEvent,
	EventListener,
	RealtimeError,
	SessionEnded,
	SessionFailed,
	SlotsUpdated,
	StateChanged,
)
from services.realtime.persistence_guard import PersistenceGuard
from services.realtime.settings import RealtimeSettings
from services.realtime.slot_extractor import SlotExtractor
from services.realtime.summary_builder import build_summary
from services.realtime.transport import SessionTransport

LOGGER = logging.getLogger(__name__)

REASON_USER = "ended-by-user"
REASON_CHANNEL_CLOSED = "channel-closed"
REASON_CHANNEL_ERROR = "channel-error"
REASON_TEARDOWN = "teardown"
PROVIDER_REPORT_TOKEN_PATH = "/voice-agent/provider-report/token"


class Trigger(str, Enum):
	START_REQUESTED = "start_requested"
	CONNECT_FAILED = "connect_failed"
	CHANNEL_OPENED = "channel_opened"
	CHANNEL_CLOSED = "channel_closed"
	CHANNEL_FAILED = "channel_failed"
	STOP_REQUESTED = "stop_requested"


S = SessionStatus
TRANSITIONS: Dict[Tuple[SessionStatus, Trigger], SessionStatus] = {
	(S.IDLE, Trigger.START_REQUESTED): S.CONNECTING,
	(S.ENDED, Trigger.START_REQUESTED): S.CONNECTING,
	(S.ERROR, Trigger.START_REQUESTED): S.CONNECTING,
	(S.CONNECTING, Trigger.CHANNEL_OPENED): S.ACTIVE,
	(S.CONNECTING, Trigger.CONNECT_FAILED): S.ERROR,
	(S.CONNECTING, Trigger.CHANNEL_CLOSED): S.ENDED,
	(S.CONNECTING, Trigger.CHANNEL_FAILED): S.ERROR,
	(S.CONNECTING, Trigger.STOP_REQUESTED): S.ENDED,
	(S.ACTIVE, Trigger.CHANNEL_CLOSED): S.ENDED,
	(S.ACTIVE, Trigger.CHANNEL_FAILED): S.ERROR,
	(S.ACTIVE, Trigger.STOP_REQUESTED): S.ENDED,
	(S.ERROR, Trigger.STOP_REQUESTED): S.ENDED,
}


def next_state(state: SessionStatus, trigger: Trigger) -> Optional[SessionStatus]:
	"""Return the state reached from `state` on `trigger`, or None if ignored."""
	return TRANSITIONS.get((state, trigger))


class VoiceSessionEngine:
	"""Run one voice session at a time and publish domain events to subscribers."""

	def __init__(
		self,
		settings: RealtimeSettings,
		transport: SessionTransport,
		*,
		backend: Optional[BackendClient] = None,
		extractor: Optional[SlotExtractor] = None,
		persist: bool = True,
		primer: Optional[ContextPrimer] = None,
		sink: Optional[DiagnosticSink] = None,
		clock: Callable[[], float] = time.time,
	) -> None:
		if persist and backend is None:
			raise ValueError("A backend client is required to persist conversations.")
		self.settings = settings
		self.transport = transport
		self.backend = backend
		self.primer = primer
		self.clock = clock
		self.session = Session()
		self.listeners: List[EventListener] = []
		self.last_summary: Optional[SessionSummary] = None

		self.extractor = extractor or SlotExtractor()
		self.extractor.on_update = self._on_slots
		stream_settings = dataclasses.replace(settings, greeting=None) if primer is not None else settings
		self.stream = EventStream(
			stream_settings,
			session=self.session,
			on_transcript=self.extractor.handle_transcript,
			listener=self._on_stream_event,
			sink=sink,
			clock=clock,
		)
		self.guard = (
			PersistenceGuard(backend.save_conversation, lambda: self.stream.log, self.session) if persist else None
		)
		self.transport.on_channel = self.stream.attach
		self._start_task: Optional[asyncio.Future] = None
		self._tasks: Set[asyncio.Future] = set()
		self._stopping = False

	# -- read-only views ------------------------------------------------------

	@property
	def state(self) -> SessionStatus:
		return self.session.state

	@property
	def slots(self) -> ExtractionState:
		return self.extractor.snapshot

	@property
	def has_saved(self) -> bool:
		return self.session.has_saved

	@property
	def rate_limited_until(self) -> Optional[float]:
		return self.session.rate_limited_until

	@property
	def current_message(self) -> str:
		return self.stream.current_message

	def summary(self) -> SessionSummary:
		return build_summary(self.stream.transcript)

	def subscribe(self, listener: EventListener) -> Callable[[], None]:
		"""Register a domain event listener; return a callable that removes it."""
		self.listeners.append(listener)
		return lambda: self.listeners.remove(listener)

	# -- commands -------------------------------------------------------------

	async def start(self) -> None:
		"""Reset session state and connect.

		Raises:
			RuntimeError: A session is already connecting or active.
			CredentialError, MediaPermissionError, SignalingError: connection aborted.
			Any other start failure is re-raised after the session moves to Error.
		"""
		if self.session.state in (S.CONNECTING, S.ACTIVE):
			raise RuntimeError("A voice session is already running.")
		self._reset()
		self._stopping = False
		self._fire(Trigger.START_REQUESTED)
		self._start_task = asyncio.ensure_future(self.transport.start_session())
		try:
			await self._start_task
		except asyncio.CancelledError:
			if not self._stopping:
				self._fire(Trigger.CONNECT_FAILED)
				raise
			LOGGER.info("Session start cancelled by stop")
			return
		except Exception as exc:
			if self._stopping and isinstance(exc, SessionConnectionError):
				LOGGER.info("Session start abandoned: %s", exc)
				return
			self.session.error = str(exc)
			self._fire(Trigger.CONNECT_FAILED)
			LOGGER.error("Session start error: %s", exc)
			self._emit(SessionFailed(message=f"Failed to start session: {exc}"))
			raise
		finally:
			self._start_task = None
		self.session.started_at = self.clock()
		LOGGER.info("Voice session connected")

	async def stop(self, reason: str = REASON_USER) -> None:
		"""End the session, release media, summarize and save once. Idempotent."""
		self._stopping = True
		self._fire(Trigger.STOP_REQUESTED)
		task = self._start_task
		if task is not None and not task.done():
			task.cancel()
			await asyncio.wait({task})
		await self.transport.stop_session()
		await self._finish(reason)

	def send_text(self, text: str) -> bool:
		return self.stream.send_user_text(text)

	async def drain(self) -> None:
		"""Wait for background work spawned by channel callbacks."""
		while self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)

	async def aclose(self) -> None:
		"""Stop with reason `teardown` and release the transport and backend clients."""
		await self.stop(REASON_TEARDOWN)
		await self.drain()
		await self.transport.aclose()
		if self.backend is not None:
			await self.backend.aclose()

	async def __aenter__(self) -> "VoiceSessionEngine":
		return self

	async def __aexit__(self, *exc_info: Any) -> None:
		await self.aclose()

	# -- internals ------------------------------------------------------------

	def _reset(self) -> None:
		self.session = Session()
		self.stream.reset(self.session)
		self.extractor.reset()
		if self.guard is not None:
			self.guard.reset(self.session)
		self.last_summary = None

	def _fire(self, trigger: Trigger) -> bool:
		previous = self.session.state
		target = next_state(previous, trigger)
		if target is None:
			LOGGER.debug("Ignoring %s in state %s", trigger.value, previous.value)
			return False
		self.session.state = target
		self._emit(StateChanged(previous=previous, current=target))
		return True

	def _on_stream_event(self, event: DomainEvent) -> None:
		if isinstance(event, ChannelOpened):
			self._fire(Trigger.CHANNEL_OPENED)
			if self.primer is not None:
				self._spawn(self._prime())
		elif isinstance(event, ChannelClosed):
			# a failed start closes its own channel; start() reports that failure
			if self._start_task is not None:
				LOGGER.debug("Data channel closed while connecting")
			elif self._fire(Trigger.CHANNEL_CLOSED):
				self._spawn(self._end_after_close())
		elif isinstance(event, ChannelFailed):
			self.session.error = event.message
			if self._fire(Trigger.CHANNEL_FAILED):
				self._spawn(self._finish(REASON_CHANNEL_ERROR))
		self._emit(event)

	def _on_slots(self, slots: ExtractionState) -> None:
		self._emit(SlotsUpdated(slots=slots))

	async def _end_after_close(self) -> None:
		await self.transport.stop_session()
		await self._finish(REASON_CHANNEL_CLOSED)

	async def _finish(self, reason: str) -> None:
		if self.session.has_saved:
			return
		self.last_summary = self.summary() if self.stream.transcript else None
		if self.guard is not None:
			saved = await self.guard.save(reason)
		else:
			self.session.has_saved = True
			saved = False
		LOGGER.info("Voice session finished (%s, saved=%s)", reason, saved)
		self._emit(SessionEnded(reason=reason, summary=self.last_summary, saved=saved))

	async def _prime(self) -> None:
		try:
			await self.primer.prime(self.stream)
		except httpx.HTTPError as exc:
			LOGGER.error("Prime failed: %s", exc)
			self._emit(RealtimeError(message=f"Could not load patient context: {exc}"))

	def _spawn(self, awaitable: Any) -> None:
		task = asyncio.ensure_future(awaitable)
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)

	def _emit(self, event: DomainEvent) -> None:
		for listener in list(self.listeners):
			listener(event)


def create_symptom_recorder(
	settings: Optional[RealtimeSettings] = None,
	*,
	token: Optional[str] = None,
	sink: Optional[DiagnosticSink] = None,
) -> VoiceSessionEngine:
	"""Build the patient-facing engine: slot extraction plus one-shot persistence."""
	settings = settings or RealtimeSettings.from_env()
	backend = BackendClient(settings, token=token)
	monitor = AudioLevelMonitor(threshold=settings.speaking_threshold)
	transport = SessionTransport(settings, backend, level_monitor=monitor)
	return VoiceSessionEngine(settings, transport, backend=backend, sink=sink)


def create_provider_report(
	patient_id: str,
	settings: Optional[RealtimeSettings] = None,
	*,
	token: Optional[str] = None,
	sink: Optional[DiagnosticSink] = None,
) -> VoiceSessionEngine:
	"""Build the clinician-facing engine grounded in the patient's recent data; nothing is saved."""
	settings = dataclasses.replace(settings or RealtimeSettings.from_env(), token_path=PROVIDER_REPORT_TOKEN_PATH)
	backend = BackendClient(settings, token=token)
	monitor = AudioLevelMonitor(threshold=settings.speaking_threshold)
	transport = SessionTransport(settings, backend, level_monitor=monitor)
	primer = ContextPrimer(backend, patient_id, settings.context_window_days)
	return VoiceSessionEngine(settings, transport, backend=backend, persist=False, primer=primer, sink=sink)
