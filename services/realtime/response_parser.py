"""Helpers to extract role-attributed text from Realtime protocol events."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from models.session_models import Role, TranscriptEvent

ITEM_CREATE = "conversation.item.create"
ITEM_CREATED = "conversation.item.created"
RESPONSE_CREATE = "response.create"
RESPONSE_DONE = "response.done"
TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
TRANSCRIPTION_FAILED = "conversation.item.input_audio_transcription.failed"
AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
OUTPUT_AUDIO_TRANSCRIPT_DONE = "response.output_audio_transcript.done"
ERROR = "error"

PATIENT_ITEM_ROLES = {"user", "patient"}


def item_text(event: Dict[str, Any]) -> str:
	"""Return the text of the first content part of an item event, or ''."""
	item = event.get("item") or {}
	content = item.get("content") or []
	if not content or not isinstance(content[0], dict):
		return ""
	return str(content[0].get("text") or "").strip()


def error_message(event: Dict[str, Any], default: str) -> str:
	error = event.get("error") or {}
	if isinstance(error, dict):
		return str(error.get("message") or default)
	return str(error) or default


def to_transcript_event(event: Dict[str, Any]) -> Optional[TranscriptEvent]:
	"""Map one raw event to a transcript turn, or None if it carries no turn."""
	event_type = event.get("type")
	role: Optional[Role] = None
	text = ""
	if event_type == TRANSCRIPTION_COMPLETED:
		role, text = Role.PATIENT, str(event.get("transcript") or "").strip()
	elif event_type in (AUDIO_TRANSCRIPT_DONE, OUTPUT_AUDIO_TRANSCRIPT_DONE):
		role, text = Role.ASSISTANT, str(event.get("transcript") or "").strip()
	elif event_type == ITEM_CREATED and (event.get("item") or {}).get("role") == "assistant":
		role, text = Role.ASSISTANT, item_text(event)
	elif event_type == ITEM_CREATE and (event.get("item") or {}).get("role") in PATIENT_ITEM_ROLES:
		role, text = Role.PATIENT, item_text(event)
	if role is None or not text:
		return None
	return TranscriptEvent(
		role=role,
		text=text,
		source_event_type=str(event_type),
		timestamp=str(event.get("timestamp") or ""),
	)


def extract_transcript(events: Iterable[Dict[str, Any]]) -> List[TranscriptEvent]:
	"""Return the ordered transcript turns contained in a raw event log."""
	turns = []
	for event in events:
		turn = to_transcript_event(event)
		if turn is not None:
			turns.append(turn)
	return turns


def extract_messages(events: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
	"""Return the `{role, text}` save payload derived from a raw event log."""
	return [turn.to_message() for turn in extract_transcript(events)]
