from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass
class ConversationRecord:
    """In-memory representation of a row in the CONVERSATION table.

    Attributes:
        id: Primary key (None for new records).
        owner: Opaque bearer subject the conversation belongs to.
        reason: Why the session ended (ended-by-user, channel-closed, ...).
        messages: Ordered `{role, text}` turns.
        created_at: Unix timestamp (seconds) when the row was inserted.
    """

    id: Optional[int]
    owner: str
    reason: str
    messages: List[Dict[str, str]]
    created_at: Optional[int] = None
