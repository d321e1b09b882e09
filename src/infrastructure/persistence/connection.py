"""
infrastructure.persistence.connection - Async SQLite connection manager.

Every repository call acquires its own short-lived connection, so
concurrent requests never share a transaction. Driver errors surface as
domain RepositoryError.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

import aiosqlite

from domain.exceptions import RepositoryError

logger = logging.getLogger(__name__)


def now_iso() -> str:
    """Timestamp used for every created_at/updated_at column."""
    return datetime.now().isoformat(timespec="microseconds")


class AsyncSQLiteConnection:
    """Async SQLite connection provider with auto-commit/rollback."""

    def __init__(self, db_path: str, timeout: float = 30.0):
        self._db_path = db_path
        self._timeout = timeout

    @property
    def db_path(self) -> str:
        return self._db_path

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection with FK support and dict-like rows.

        Commits on success, rolls back on exception.

        Raises:
            RepositoryError: the driver failed (constraint violation, bad SQL,
                unreachable database file).
        """
        try:
            async with aiosqlite.connect(self._db_path, timeout=self._timeout) as conn:
                await conn.execute("PRAGMA foreign_keys = ON")
                conn.row_factory = aiosqlite.Row
                try:
                    yield conn
                    await conn.commit()
                except Exception:
                    await conn.rollback()
                    logger.exception("Database operation failed, transaction rolled back.")
                    raise
        except aiosqlite.Error as exc:
            raise RepositoryError(f"Database operation failed: {exc}") from exc
