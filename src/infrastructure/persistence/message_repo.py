"""
infrastructure.persistence.message_repo - SQLite transcript message repository.

Messages are append-only. Ordering is (created_at, id); the INTEGER
AUTOINCREMENT id breaks ties between same-timestamp inserts in insertion
order.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace

from domain.entities import Message, ToolCallRequest
from infrastructure.persistence.connection import AsyncSQLiteConnection, now_iso

logger = logging.getLogger(__name__)


class SQLiteMessageRepository:
    """Async SQLite implementation of MessageRepository."""

    def __init__(self, connection: AsyncSQLiteConnection):
        self._conn = connection

    async def save(self, message: Message) -> Message:
        now = now_iso()
        tool_calls = (
            json.dumps([tc.to_dict() for tc in message.tool_calls], default=str)
            if message.tool_calls else None
        )
        metadata = json.dumps(message.metadata, default=str) if message.metadata else None
        async with self._conn.acquire() as conn:
            cursor = await conn.execute(
                """INSERT INTO agent_messages
                   (conversation_id, role, content, tool_calls, tool_call_id,
                    metadata, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (message.conversation_id, message.role, message.content,
                 tool_calls, message.tool_call_id, metadata, now),
            )
            return replace(message, id=cursor.lastrowid, created_at=now)

    async def list_chronological(
        self, conversation_id: str, limit: int | None = 100,
    ) -> list[Message]:
        """Oldest messages first, up to *limit* (None for all)."""
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(
                """SELECT * FROM agent_messages
                   WHERE conversation_id = ?
                   ORDER BY created_at ASC, id ASC
                   LIMIT ?""",
                # SQLite treats a negative LIMIT as unbounded.
                (conversation_id, -1 if limit is None else limit),
            )
            return [self._row_to_entity(r) for r in rows]

    async def list_recent(self, conversation_id: str, count: int) -> list[Message]:
        """The *count* most recent messages, returned in chronological order."""
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(
                """SELECT * FROM agent_messages
                   WHERE conversation_id = ?
                   ORDER BY created_at DESC, id DESC
                   LIMIT ?""",
                (conversation_id, count),
            )
            return [self._row_to_entity(r) for r in reversed(list(rows))]

    async def delete_by_conversation(self, conversation_id: str) -> int:
        """Remove every message of a conversation. Returns the number removed."""
        async with self._conn.acquire() as conn:
            cursor = await conn.execute(
                "DELETE FROM agent_messages WHERE conversation_id = ?",
                (conversation_id,),
            )
            return cursor.rowcount

    @staticmethod
    def _row_to_entity(row) -> Message:
        tool_calls = None
        if row["tool_calls"]:
            raw = json.loads(row["tool_calls"])
            if isinstance(raw, list):
                tool_calls = [ToolCallRequest.from_dict(tc) for tc in raw if isinstance(tc, dict)]
        metadata = json.loads(row["metadata"]) if row["metadata"] else None
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"] if row["content"] is not None else "",
            tool_calls=tool_calls or None,
            tool_call_id=row["tool_call_id"],
            metadata=metadata if isinstance(metadata, dict) else None,
            created_at=row["created_at"] or "",
        )
