from __future__ import annotations

import pytest
import pytest_asyncio

from application.context import ToolExecutionContext
from application.services.transcript import TranscriptService
from agent.tools.registry import ToolRegistry
from fakes import lookup_tool
from infrastructure.persistence.action_repo import SQLiteActionRepository
from infrastructure.persistence.connection import AsyncSQLiteConnection
from infrastructure.persistence.conversation_repo import SQLiteConversationRepository
from infrastructure.persistence.message_repo import SQLiteMessageRepository
from infrastructure.persistence.migrations import run_migrations
from infrastructure.persistence.project_store import SQLiteProjectStoreProvider


@pytest_asyncio.fixture
async def connection(tmp_path):
    conn = AsyncSQLiteConnection(str(tmp_path / "agent.db"))
    await run_migrations(conn)
    return conn


@pytest.fixture
def message_repo(connection):
    return SQLiteMessageRepository(connection)


@pytest.fixture
def transcript(connection, message_repo):
    return TranscriptService(SQLiteConversationRepository(connection), message_repo)


@pytest.fixture
def action_repo(connection):
    return SQLiteActionRepository(connection)


@pytest.fixture
def project_stores(connection):
    return SQLiteProjectStoreProvider(connection)


@pytest.fixture
def ctx():
    return ToolExecutionContext(user_id=1, project_id=None, conversation_id="conv-1")


@pytest.fixture
def registry(action_repo):
    async def lookup(args, ctx):
        return {"value": 7}

    reg = ToolRegistry(action_log=action_repo)
    reg.register(lookup_tool(lookup))
    return reg
