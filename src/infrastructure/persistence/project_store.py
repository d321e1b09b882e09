"""
infrastructure.persistence.project_store - Project-scoped data access.

Each project owns its own copy of the project tables, named
proj_<project_id>_<table>. Tool handlers write queries against the plain
table names; the store rewrites them to the prefixed names so the same
query text works for every project.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Iterable

from infrastructure.persistence.connection import AsyncSQLiteConnection
from infrastructure.persistence.migrations import PROJECT_TABLES, ensure_project_tables

logger = logging.getLogger(__name__)


class SQLiteProjectStore:
    """Implements ProjectStore over one SQLite file with table-prefix rewriting."""

    def __init__(
        self,
        connection: AsyncSQLiteConnection,
        project_id: int,
        table_names: Iterable[str] = tuple(PROJECT_TABLES),
    ):
        self._conn = connection
        self.project_id = int(project_id)
        self._patterns = [
            (re.compile(rf"\b{re.escape(name)}\b", re.IGNORECASE), self.table(name))
            for name in table_names
        ]

    def table(self, name: str) -> str:
        """Prefixed physical table name for *name*."""
        return f"proj_{self.project_id}_{name}"

    def transform(self, sql: str) -> str:
        """Rewrite every known table name in *sql* to its prefixed form."""
        for pattern, prefixed in self._patterns:
            sql = pattern.sub(prefixed, sql)
        return sql

    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(self.transform(sql), params)
            return [dict(row) for row in rows]

    async def execute(self, sql: str, params: tuple = ()) -> int:
        """Run a write statement and return the affected row count."""
        async with self._conn.acquire() as conn:
            cursor = await conn.execute(self.transform(sql), params)
            return cursor.rowcount


class SQLiteProjectStoreProvider:
    """Resolve project ids to stores, creating each project's tables once."""

    def __init__(self, connection: AsyncSQLiteConnection):
        self._conn = connection
        self._stores: dict[int, SQLiteProjectStore] = {}
        self._lock = asyncio.Lock()

    async def get(self, project_id: int) -> SQLiteProjectStore:
        project_id = int(project_id)
        async with self._lock:
            store = self._stores.get(project_id)
            if store is None:
                await ensure_project_tables(self._conn, project_id)
                store = SQLiteProjectStore(self._conn, project_id)
                self._stores[project_id] = store
                logger.info("Project store ready for project %d", project_id)
            return store
