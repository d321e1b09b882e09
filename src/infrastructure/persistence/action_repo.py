"""
infrastructure.persistence.action_repo - SQLite audit log of tool executions.
"""

from __future__ import annotations

import json
import logging

from domain.entities import ToolExecutionRecord
from infrastructure.persistence.connection import AsyncSQLiteConnection, now_iso

logger = logging.getLogger(__name__)


class SQLiteActionRepository:
    """Async SQLite implementation of ActionLogRepository (append-only)."""

    def __init__(self, connection: AsyncSQLiteConnection):
        self._conn = connection

    async def save(self, record: ToolExecutionRecord) -> None:
        output = json.dumps(record.output, default=str) if record.output is not None else None
        async with self._conn.acquire() as conn:
            await conn.execute(
                """INSERT INTO agent_actions
                   (id, conversation_id, user_id, project_id, action_type,
                    action_name, input, output, success, error_message,
                    execution_time_ms, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (record.id, record.conversation_id, record.user_id,
                 record.project_id, record.action_type, record.action_name,
                 json.dumps(record.input, default=str), output,
                 1 if record.success else 0, record.error_message,
                 record.execution_time_ms, record.created_at or now_iso()),
            )

    async def list_by_conversation(self, conversation_id: str) -> list[ToolExecutionRecord]:
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(
                """SELECT * FROM agent_actions
                   WHERE conversation_id = ?
                   ORDER BY created_at ASC, rowid ASC""",
                (conversation_id,),
            )
            return [self._row_to_entity(r) for r in rows]

    @staticmethod
    def _row_to_entity(row) -> ToolExecutionRecord:
        return ToolExecutionRecord(
            id=row["id"],
            conversation_id=row["conversation_id"],
            user_id=row["user_id"],
            project_id=row["project_id"],
            action_type=row["action_type"],
            action_name=row["action_name"],
            input=json.loads(row["input"]) if row["input"] else {},
            output=json.loads(row["output"]) if row["output"] else None,
            success=bool(row["success"]),
            error_message=row["error_message"],
            execution_time_ms=row["execution_time_ms"] or 0,
            created_at=row["created_at"],
        )
