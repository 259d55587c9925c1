"""Sequential slot filling from patient transcription turns."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Callable, Dict, Optional, Sequence, Tuple

from models.session_models import ExtractionState, SymptomType
from services.realtime.severity import parse_severity

LOGGER = logging.getLogger(__name__)

SLOT_SYMPTOM = "symptom"
SLOT_SYMPTOM_TYPE = "symptom_type"
SLOT_SEVERITY = "severity"
SLOT_DESCRIPTION = "description"
SLOT_NOTES = "notes"

KNOWN_SLOTS = (SLOT_SYMPTOM, SLOT_SYMPTOM_TYPE, SLOT_SEVERITY, SLOT_DESCRIPTION, SLOT_NOTES)
DEFAULT_SLOTS = (SLOT_SYMPTOM, SLOT_SEVERITY, SLOT_DESCRIPTION, SLOT_NOTES)

# Stems match at the start of a word ("depress" covers depressed/depression).
SYMPTOM_KEYWORDS: Dict[SymptomType, Tuple[str, ...]] = {
	SymptomType.PHYSICAL: (
		"pain", "ache", "aching", "fever", "cough", "nausea", "nauseous", "headache", "migraine",
		"dizz", "vomit", "rash", "fatigue", "tired", "sore", "cramp", "swell", "bleed",
		"breath", "chest", "stomach", "throat", "joint", "itch", "chill", "diarrh", "injur",
	),
	SymptomType.MENTAL: (
		"focus", "memory", "insomnia", "concentrat", "forget", "confus", "brain fog",
		"sleep", "attention", "distract", "racing thought",
	),
	SymptomType.EMOTIONAL: (
		"anxi", "depress", "mood", "stress", "panic", "sad", "lonel", "anger", "angry",
		"irritab", "worr", "overwhelm", "cry", "grief", "hopeless", "fear",
	),
}
_KEYWORD_RES = {
	symptom_type: tuple(re.compile(rf"\b{re.escape(stem)}") for stem in stems)
	for symptom_type, stems in SYMPTOM_KEYWORDS.items()
}

SlotListener = Callable[[ExtractionState], None]


def classify_symptom(text: str) -> SymptomType:
	"""Classify free text as physical, mental or emotional.

	The category with the most keyword hits wins; ties keep the declaration order
	and no hit at all falls back to physical, so a classification always exists.
	"""
	lowered = str(text or "").lower()
	best, best_hits = SymptomType.PHYSICAL, 0
	for symptom_type, patterns in _KEYWORD_RES.items():
		hits = sum(1 for pattern in patterns if pattern.search(lowered))
		if hits > best_hits:
			best, best_hits = symptom_type, hits
	return best


class SlotExtractor:
	"""Fill one slot per completed transcription, advancing a non-decreasing cursor."""

	def __init__(self, slots: Sequence[str] = DEFAULT_SLOTS, on_update: Optional[SlotListener] = None) -> None:
		if not slots:
			raise ValueError("At least one slot is required.")
		unknown = [slot for slot in slots if slot not in KNOWN_SLOTS]
		if unknown:
			raise ValueError(f"Unknown slots: {', '.join(unknown)}")
		self.slots = tuple(slots)
		self.on_update = on_update
		self._state = ExtractionState()
		self._type_asked = False

	@property
	def snapshot(self) -> ExtractionState:
		return self._state

	@property
	def current_slot(self) -> str:
		return self.slots[self._state.current_step]

	def reset(self) -> None:
		self._state = ExtractionState()
		self._type_asked = False

	def handle_transcript(self, text: str) -> ExtractionState:
		"""Apply one patient utterance and publish the resulting snapshot.

		Empty utterances and severity answers without any severity cue leave the
		cursor in place so the slot is asked again; the snapshot is emitted anyway.
		"""
		said = str(text or "").strip()
		state = self._state
		if said:
			state, filled = self._apply(self.current_slot, state, said)
			if filled:
				state = replace(state, current_step=min(state.current_step + 1, len(self.slots) - 1))
			else:
				LOGGER.debug("Slot %s not filled by %r", self.current_slot, said)
		self._state = state
		if self.on_update is not None:
			self.on_update(state)
		return state

	def _apply(self, slot: str, state: ExtractionState, said: str) -> Tuple[ExtractionState, bool]:
		if slot == SLOT_SYMPTOM:
			state = replace(state, symptom_name=said)
			if not self._type_asked:
				state = replace(state, symptom_type=classify_symptom(said))
			return state, True
		if slot == SLOT_SYMPTOM_TYPE:
			self._type_asked = True
			return replace(state, symptom_type=classify_symptom(said)), True
		if slot == SLOT_SEVERITY:
			severity = parse_severity(said)
			if severity is None:
				return state, False
			return replace(state, severity=severity), True
		if slot == SLOT_DESCRIPTION:
			state = replace(state, description=said)
			if not self._type_asked:
				combined = f"{state.symptom_name} {said}".strip()
				state = replace(state, symptom_type=classify_symptom(combined))
			return state, True
		return replace(state, notes=said), True
