"""
infrastructure.persistence.conversation_repo - SQLite conversation repository.

Stores conversation metadata (owner, project, context blob, status, timestamps).
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Optional

from domain.entities import Conversation
from infrastructure.persistence.connection import AsyncSQLiteConnection, now_iso

logger = logging.getLogger(__name__)


class SQLiteConversationRepository:
    """Async SQLite implementation of ConversationRepository."""

    def __init__(self, connection: AsyncSQLiteConnection):
        self._conn = connection

    async def save(self, conversation: Conversation) -> Conversation:
        now = now_iso()
        stored = replace(conversation, created_at=now, updated_at=now)
        async with self._conn.acquire() as conn:
            await conn.execute(
                """INSERT INTO agent_conversations
                   (id, user_id, project_id, title, context, status,
                    created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (stored.id, stored.user_id, stored.project_id, stored.title,
                 json.dumps(stored.context or {}, default=str), stored.status,
                 now, now),
            )
        return stored

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT * FROM agent_conversations WHERE id = ?",
                (conversation_id,),
            )
            return self._row_to_entity(rows[0]) if rows else None

    async def list_by_user(
        self, user_id: int, project_id: Optional[int] = None, limit: int = 50,
    ) -> list[Conversation]:
        sql = "SELECT * FROM agent_conversations WHERE user_id = ?"
        params: list[Any] = [user_id]
        if project_id is not None:
            sql += " AND project_id = ?"
            params.append(project_id)
        sql += " ORDER BY updated_at DESC LIMIT ?"
        params.append(limit)
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(sql, tuple(params))
            return [self._row_to_entity(r) for r in rows]

    async def touch(self, conversation_id: str) -> None:
        async with self._conn.acquire() as conn:
            await conn.execute(
                "UPDATE agent_conversations SET updated_at = ? WHERE id = ?",
                (now_iso(), conversation_id),
            )

    async def update_context(self, conversation_id: str, context: dict[str, Any]) -> None:
        async with self._conn.acquire() as conn:
            await conn.execute(
                "UPDATE agent_conversations SET context = ? WHERE id = ?",
                (json.dumps(context, default=str), conversation_id),
            )

    async def update_status(self, conversation_id: str, status: str) -> None:
        async with self._conn.acquire() as conn:
            await conn.execute(
                "UPDATE agent_conversations SET status = ?, updated_at = ? WHERE id = ?",
                (status, now_iso(), conversation_id),
            )

    async def delete(self, conversation_id: str) -> None:
        """Delete the conversation and all its messages in one transaction."""
        async with self._conn.acquire() as conn:
            await conn.execute(
                "DELETE FROM agent_messages WHERE conversation_id = ?",
                (conversation_id,),
            )
            await conn.execute(
                "DELETE FROM agent_conversations WHERE id = ?",
                (conversation_id,),
            )
        logger.info("Deleted conversation %s", conversation_id)

    @staticmethod
    def _row_to_entity(row) -> Conversation:
        context = json.loads(row["context"]) if row["context"] else {}
        return Conversation(
            id=row["id"],
            user_id=row["user_id"],
            project_id=row["project_id"],
            title=row["title"] or "",
            context=context if isinstance(context, dict) else {},
            status=row["status"] or "active",
            created_at=row["created_at"] or "",
            updated_at=row["updated_at"] or "",
        )
