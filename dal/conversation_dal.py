"""Async Data Access Layer for the CONVERSATION table.

Provides ConversationDAL with the async operations the voice agent backend
needs, on top of `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import json
import time
from typing import List, Optional, Sequence

from models.conversation_record import ConversationRecord
from utils.database_init import AsyncDatabaseInitializer


class ConversationDAL:
    """Data access layer for CONVERSATION records.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = ("id", "owner", "reason", "messages_json", "created_at")
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_conversation(self, record: ConversationRecord) -> int:
        """Insert a new CONVERSATION row and return the new id.

        Args:
            record: ConversationRecord with `id=None`.

        Returns:
            The integer primary key of the created row.
        """
        created_at = record.created_at or int(time.time())

        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"INSERT INTO CONVERSATION ({self._INSERT_COLUMNS}) VALUES (?, ?, ?, ?)",
                (record.owner, record.reason, json.dumps(record.messages), created_at),
            )
            await conn.commit()
            return cur.lastrowid

    async def list_for_owner(
        self, owner: str, *, since: Optional[int] = None, limit: int = 100
    ) -> List[ConversationRecord]:
        """List an owner's conversations, newest first.

        Args:
            owner: Bearer subject to filter on.
            since: Optional unix timestamp; older rows are excluded.
            limit: Maximum number of rows to return.
        """
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM CONVERSATION "
                "WHERE owner = ? AND created_at >= ? ORDER BY id DESC LIMIT ?",
                (owner, since or 0, limit),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def list_conversations(self, limit: int = 100, offset: int = 0) -> List[ConversationRecord]:
        """List every CONVERSATION row with optional paging."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM CONVERSATION ORDER BY id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> ConversationRecord:
        """Convert a DB row tuple into a ConversationRecord."""
        return ConversationRecord(
            id=row[0],
            owner=row[1],
            reason=row[2],
            messages=json.loads(row[3]) if row[3] else [],
            created_at=row[4],
        )
