import time
from typing import Any, Dict, List

from fastapi import HTTPException, Request

from dal.conversation_dal import ConversationDAL
from models.conversation_record import ConversationRecord
from services.realtime.summary_builder import build_summary

SECONDS_PER_DAY = 86400


def _conversation_payload(record: ConversationRecord, *, include_messages: bool) -> Dict[str, Any]:
    summary = build_summary(record.messages)
    payload: Dict[str, Any] = {
        "id": record.id,
        "reason": record.reason,
        "created_at": record.created_at,
        "message_count": len(record.messages),
        "summary": summary.as_dict(),
    }
    if include_messages:
        payload["messages"] = record.messages
    return payload


async def save_conversation(
    request: Request, owner: str, messages: List[Dict[str, str]], reason: str
) -> Dict[str, Any]:
    """Store a finished voice session for `owner`.

    Args:
        request: FastAPI Request (used to access app.state.db_initializer).
        owner: Opaque bearer subject.
        messages: Ordered `{role, text}` turns.
        reason: Why the session ended.

    Returns:
        A dict with the new row `id` and `message_count`.

    Raises:
        HTTPException(400) if the message list is empty.
    """
    if not messages:
        raise HTTPException(status_code=400, detail="Conversation has no messages")

    conversation_dal = ConversationDAL(request.app.state.db_initializer)
    record = ConversationRecord(id=None, owner=owner, reason=reason, messages=messages)
    conversation_id = await conversation_dal.create_conversation(record)
    return {"id": conversation_id, "message_count": len(messages)}


async def list_conversations(request: Request, owner: str) -> Dict[str, Any]:
    """Return the owner's saved conversations with their summary overview."""
    conversation_dal = ConversationDAL(request.app.state.db_initializer)
    records = await conversation_dal.list_for_owner(owner)
    return {"conversations": [_conversation_payload(r, include_messages=False) for r in records]}


async def get_patient_window(request: Request, patient_id: str, window_days: int) -> Dict[str, Any]:
    """Return a patient's conversations from the last `window_days` days, each with its summary.

    This is the context a provider report session is primed with.
    """
    if window_days < 1:
        raise HTTPException(status_code=400, detail="windowDays must be at least 1")

    since = int(time.time()) - window_days * SECONDS_PER_DAY
    conversation_dal = ConversationDAL(request.app.state.db_initializer)
    records = await conversation_dal.list_for_owner(patient_id, since=since)
    return {
        "patientId": patient_id,
        "windowDays": window_days,
        "conversations": [_conversation_payload(r, include_messages=True) for r in records],
    }
