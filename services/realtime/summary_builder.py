"""Build a human-readable session summary from transcript turns."""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, Tuple, Union

from models.session_models import Role, SessionSummary, SummaryGroup, TranscriptEvent
from services.realtime.severity import parse_severity

MAX_ITEMS = 3
MAX_STATEMENT_CHARS = 220
SUMMARY_TITLE = "Session Summary"
SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
NOTABLE_RE = re.compile(
	r"\b(since|because|trigger|worse|better|improved|flare|started|yesterday|today|week|month|year)\b",
	re.IGNORECASE,
)

Turn = Union[TranscriptEvent, Mapping[str, Any]]


def _role_and_text(turn: Turn) -> Tuple[str, str]:
	if isinstance(turn, TranscriptEvent):
		return turn.role.value, turn.text
	return str(turn.get("role") or ""), str(turn.get("text") or "").strip()


def _first_sentence(text: str) -> str:
	return SENTENCE_SPLIT_RE.split(text)[0]


def _format_number(value: float) -> str:
	return str(int(value)) if float(value).is_integer() else str(value)


def _key_statements(patient_texts: List[str]) -> List[str]:
	seen = set()
	picked: List[str] = []
	for text in reversed(patient_texts):
		if len(picked) >= MAX_ITEMS:
			break
		sentence = _first_sentence(text)[:MAX_STATEMENT_CHARS]
		key = sentence.lower()
		if key in seen or len(sentence) <= 3:
			continue
		seen.add(key)
		picked.insert(0, sentence)
	return picked


def _notable_mentions(patient_texts: List[str]) -> List[str]:
	picked: List[str] = []
	for text in reversed(patient_texts):
		if len(picked) >= MAX_ITEMS:
			break
		if not NOTABLE_RE.search(text):
			continue
		sentence = next((s for s in SENTENCE_SPLIT_RE.split(text) if NOTABLE_RE.search(s)), text)
		picked.insert(0, sentence[:MAX_STATEMENT_CHARS])
	return picked


def build_summary(turns: Iterable[Turn]) -> SessionSummary:
	"""Summarize a transcript: turn counts, severity stats, key statements, notable mentions.

	Turns with a role other than patient or assistant are dropped. The severity
	group is omitted entirely when no patient utterance carries a severity cue.
	"""
	messages = [
		(role, text)
		for role, text in (_role_and_text(turn) for turn in turns)
		if role in (Role.PATIENT.value, Role.ASSISTANT.value) and text
	]
	patient_texts = [text for role, text in messages if role == Role.PATIENT.value]
	assistant_count = len(messages) - len(patient_texts)

	severities = [value for value in (parse_severity(text) for text in patient_texts) if value is not None]
	peak = max(severities) if severities else None
	average = round(sum(severities) / len(severities), 2) if severities else None

	overview = f"Turn count: {len(messages)} (Patient {len(patient_texts)} / Assistant {assistant_count})"
	if peak is not None:
		overview += f" · Peak severity {peak}/10 · Avg severity {_format_number(average)}/10"

	groups: List[SummaryGroup] = []
	key_statements = _key_statements(patient_texts)
	if key_statements:
		groups.append(SummaryGroup(label="Key patient statements", items=key_statements))
	if severities:
		groups.append(
			SummaryGroup(label="Severity signals", items=[f"Peak {peak}/10", f"Average {_format_number(average)}/10"])
		)
	notable = _notable_mentions(patient_texts)
	if notable:
		groups.append(SummaryGroup(label="Notable mentions", items=notable))

	lines = [SUMMARY_TITLE, overview]
	for group in groups:
		lines.append(f"\n{group.label}:\n- " + "\n- ".join(group.items))
	return SessionSummary(overview=overview, bullets=groups, plain_text="\n".join(lines))
