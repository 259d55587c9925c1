from typing import List, Optional

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import BaseModel, Field

from controllers.conversation_controller import list_conversations, save_conversation

router = APIRouter()


class ConversationMessage(BaseModel):
    role: str
    text: str


class ConversationRequest(BaseModel):
    messages: List[ConversationMessage] = Field(default_factory=list)
    reason: str


def bearer_owner(authorization: Optional[str]) -> str:
    """Return the bearer value from an Authorization header, or raise 401."""
    scheme, _, value = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return value.strip()


@router.post("/conversations")
async def post_conversation(
    request: Request,
    payload: ConversationRequest,
    authorization: Optional[str] = Header(default=None),
):
    """Persist a finished voice session for the bearer subject."""
    owner = bearer_owner(authorization)
    try:
        messages = [{"role": m.role, "text": m.text} for m in payload.messages]
        return await save_conversation(request, owner, messages, payload.reason)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/conversations")
async def get_conversations(request: Request, authorization: Optional[str] = Header(default=None)):
    """List the bearer subject's saved conversations."""
    owner = bearer_owner(authorization)
    try:
        return await list_conversations(request, owner)
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
