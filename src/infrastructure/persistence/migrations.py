"""
infrastructure.persistence.migrations - Database schema creation.

Called once at startup by the factory. Project-scoped tables are created
on demand by the project store provider.
"""

from __future__ import annotations

import logging

from infrastructure.persistence.connection import AsyncSQLiteConnection

logger = logging.getLogger(__name__)

_TABLES = [
    """CREATE TABLE IF NOT EXISTS agent_conversations (
        id TEXT PRIMARY KEY,
        user_id INTEGER NOT NULL,
        project_id INTEGER,
        title TEXT,
        context TEXT,
        status TEXT NOT NULL DEFAULT 'active',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS agent_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        conversation_id TEXT NOT NULL,
        role TEXT NOT NULL,
        content TEXT,
        tool_calls TEXT,
        tool_call_id TEXT,
        metadata TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (conversation_id) REFERENCES agent_conversations(id)
    )""",
    """CREATE TABLE IF NOT EXISTS agent_actions (
        id TEXT PRIMARY KEY,
        conversation_id TEXT,
        user_id INTEGER,
        project_id INTEGER,
        action_type TEXT NOT NULL,
        action_name TEXT NOT NULL,
        input TEXT,
        output TEXT,
        success INTEGER NOT NULL,
        error_message TEXT,
        execution_time_ms INTEGER,
        created_at TEXT NOT NULL
    )""",
    """CREATE INDEX IF NOT EXISTS idx_agent_messages_order
       ON agent_messages (conversation_id, created_at, id)""",
    """CREATE INDEX IF NOT EXISTS idx_agent_conversations_user
       ON agent_conversations (user_id, project_id, updated_at)""",
    """CREATE INDEX IF NOT EXISTS idx_agent_actions_conversation
       ON agent_actions (conversation_id, created_at)""",
]

# {table} is replaced with the project-prefixed name, e.g. proj_7_extracted_facts.
PROJECT_TABLES = {
    "extracted_facts": """CREATE TABLE IF NOT EXISTS {table} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        category TEXT,
        key TEXT,
        value TEXT,
        data_type TEXT,
        confidence TEXT,
        verified INTEGER DEFAULT 0,
        created_at TEXT
    )""",
    "red_flags": """CREATE TABLE IF NOT EXISTS {table} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT,
        description TEXT,
        category TEXT,
        severity TEXT,
        status TEXT DEFAULT 'open',
        created_at TEXT
    )""",
}


async def run_migrations(connection: AsyncSQLiteConnection) -> None:
    """Create all agent tables if they don't exist.

    Safe to call multiple times (uses IF NOT EXISTS).
    """
    async with connection.acquire() as conn:
        for ddl in _TABLES:
            await conn.execute(ddl)
    logger.info("Agent tables created (or already exist) in %s", connection.db_path)


async def ensure_project_tables(connection: AsyncSQLiteConnection, project_id: int) -> None:
    """Create the prefixed tables for one project if they don't exist."""
    async with connection.acquire() as conn:
        for name, ddl in PROJECT_TABLES.items():
            await conn.execute(ddl.format(table=f"proj_{project_id}_{name}"))
    logger.debug("Project tables ready for project %d", project_id)
