"""
domain.ports - Abstract interfaces (Protocols) for all system boundaries.

These define WHAT the system needs without specifying HOW. Infrastructure
modules provide concrete implementations. Application services depend only
on these protocols, never on concrete classes.

Using typing.Protocol (structural typing) instead of ABC. Any class that
implements the methods satisfies the port without explicit inheritance.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from domain.entities import Conversation, Message, ToolExecutionRecord


# ---------------------------------------------------------------------------
# Model Port
# ---------------------------------------------------------------------------

@runtime_checkable
class ChatModelPort(Protocol):
    """Opaque chat-completions service.

    Takes protocol-shaped messages and returns a chat-completions shaped
    dict: {"choices": [{"message": {...}}], "usage": {...}, "model": str}.
    """

    async def invoke(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: Optional[list[dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> dict[str, Any]: ...


# ---------------------------------------------------------------------------
# Project store Port
# ---------------------------------------------------------------------------

@runtime_checkable
class ProjectStore(Protocol):
    """Data-access handle scoped to one project."""

    project_id: int

    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]: ...
    async def execute(self, sql: str, params: tuple = ()) -> int: ...


@runtime_checkable
class ProjectStoreProvider(Protocol):
    """Resolve a project id to its store."""

    async def get(self, project_id: int) -> ProjectStore: ...


# ---------------------------------------------------------------------------
# Repository Ports
# ---------------------------------------------------------------------------

@runtime_checkable
class ConversationRepository(Protocol):
    """CRUD for Conversation metadata."""

    async def save(self, conversation: Conversation) -> Conversation: ...
    async def get(self, conversation_id: str) -> Conversation | None: ...
    async def list_by_user(
        self, user_id: int, project_id: int | None = None, limit: int = 50,
    ) -> list[Conversation]: ...
    async def touch(self, conversation_id: str) -> None: ...
    async def update_context(self, conversation_id: str, context: dict[str, Any]) -> None: ...
    async def update_status(self, conversation_id: str, status: str) -> None: ...
    async def delete(self, conversation_id: str) -> None: ...


@runtime_checkable
class MessageRepository(Protocol):
    """Append-only storage for transcript messages."""

    async def save(self, message: Message) -> Message: ...
    async def list_chronological(
        self, conversation_id: str, limit: int | None = 100,
    ) -> list[Message]: ...
    async def list_recent(self, conversation_id: str, count: int) -> list[Message]: ...
    async def delete_by_conversation(self, conversation_id: str) -> int: ...


@runtime_checkable
class ActionLogRepository(Protocol):
    """Append-only audit log of tool executions."""

    async def save(self, record: ToolExecutionRecord) -> None: ...
    async def list_by_conversation(self, conversation_id: str) -> list[ToolExecutionRecord]: ...
