"""Domain events emitted by the voice session engine and the diagnostic sink seam.

Protocol handlers never touch presentation; they emit one of the events below
and a UI layer (or test) subscribes to them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Union

from models.session_models import ExtractionState, SessionStatus, SessionSummary

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateChanged:
	previous: SessionStatus
	current: SessionStatus


@dataclass(frozen=True)
class ChannelOpened:
	pass


@dataclass(frozen=True)
class ChannelClosed:
	pass


@dataclass(frozen=True)
class ChannelFailed:
	message: str


@dataclass(frozen=True)
class AssistantMessage:
	text: str


@dataclass(frozen=True)
class PatientTranscript:
	text: str


@dataclass(frozen=True)
class SlotsUpdated:
	slots: ExtractionState


@dataclass(frozen=True)
class RateLimited:
	until: float
	message: str


@dataclass(frozen=True)
class TranscriptionFailed:
	message: str


@dataclass(frozen=True)
class RealtimeError:
	message: str


@dataclass(frozen=True)
class ResponseDone:
	event: Dict[str, Any]


@dataclass(frozen=True)
class SessionEnded:
	reason: str
	summary: Optional[SessionSummary]
	saved: bool


@dataclass(frozen=True)
class SessionFailed:
	message: str


DomainEvent = Union[
	StateChanged,
	ChannelOpened,
	ChannelClosed,
	ChannelFailed,
	AssistantMessage,
	PatientTranscript,
	SlotsUpdated,
	RateLimited,
	TranscriptionFailed,
	RealtimeError,
	ResponseDone,
	SessionEnded,
	SessionFailed,
]

EventListener = Callable[[DomainEvent], None]


class DiagnosticSink(Protocol):
	"""Receives every raw protocol event the stream logs."""

	def emit(self, event: Dict[str, Any]) -> None:
		...


class NullDiagnosticSink:
	def emit(self, event: Dict[str, Any]) -> None:
		return None


class LoggingDiagnosticSink:
	"""Debug-log raw events instead of accumulating them globally."""

	def __init__(self, logger: Optional[logging.Logger] = None) -> None:
		self.logger = logger or LOGGER

	def emit(self, event: Dict[str, Any]) -> None:
		self.logger.debug("realtime event %s: %r", event.get("type"), event)
