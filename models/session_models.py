"""Session domain models for realtime voice workflows."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

SEVERITY_DEFAULT = 5


class Role(str, Enum):
	PATIENT = "patient"
	ASSISTANT = "assistant"


class SessionStatus(str, Enum):
	"""Lifecycle states of a voice session."""

	IDLE = "idle"
	CONNECTING = "connecting"
	ACTIVE = "active"
	ENDED = "ended"
	ERROR = "error"


class SymptomType(str, Enum):
	PHYSICAL = "physical"
	MENTAL = "mental"
	EMOTIONAL = "emotional"
	UNSET = "unset"


@dataclass(frozen=True)
class TranscriptEvent:
	"""One role-attributed utterance derived from the raw event log."""

	role: Role
	text: str
	source_event_type: str
	timestamp: str = ""

	def to_message(self) -> Dict[str, str]:
		return {"role": self.role.value, "text": self.text}


@dataclass(frozen=True)
class ExtractionState:
	"""Immutable snapshot of the structured symptom slots."""

	symptom_type: SymptomType = SymptomType.UNSET
	symptom_name: str = ""
	severity: int = SEVERITY_DEFAULT
	description: str = ""
	notes: str = ""
	current_step: int = 0

	def as_dict(self) -> Dict[str, Any]:
		return {
			"symptomType": self.symptom_type.value,
			"symptomName": self.symptom_name,
			"severity": self.severity,
			"description": self.description,
			"notes": self.notes,
			"currentStep": self.current_step,
		}


@dataclass(frozen=True)
class SummaryGroup:
	label: str
	items: List[str]


@dataclass(frozen=True)
class SessionSummary:
	"""Human-readable digest of a transcript."""

	overview: str
	bullets: List[SummaryGroup]
	plain_text: str

	def as_dict(self) -> Dict[str, Any]:
		return {
			"overview": self.overview,
			"bullets": [{"label": group.label, "items": list(group.items)} for group in self.bullets],
			"plainText": self.plain_text,
		}


@dataclass
class Session:
	"""Mutable per-session state, reset on every start."""

	state: SessionStatus = SessionStatus.IDLE
	started_at: Optional[float] = None
	rate_limited_until: Optional[float] = None
	has_saved: bool = False
	error: str = ""
