"""
domain.entities - Persistence-aware types (have IDs, timestamps).

Decoupled from any persistence strategy: no SQL concerns, no DB imports.
Timestamps are set by the repository implementations, not by the entities
themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"
ROLE_TOOL = "tool"
ROLES = (ROLE_USER, ROLE_ASSISTANT, ROLE_SYSTEM, ROLE_TOOL)

STATUS_ACTIVE = "active"
STATUS_ARCHIVED = "archived"


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the model inside an assistant turn."""
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCallRequest:
        arguments = data.get("arguments")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            arguments=arguments if isinstance(arguments, dict) else {},
        )


@dataclass
class Conversation:
    """Metadata for a conversation transcript."""
    id: str = ""
    user_id: Optional[int] = None
    project_id: Optional[int] = None
    title: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    status: str = STATUS_ACTIVE
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Message:
    """A single append-only message in a conversation transcript.

    tool_calls is only set on assistant messages, tool_call_id only on
    tool messages. Ordering within a conversation is (created_at, id).
    """
    id: Optional[int] = None
    conversation_id: str = ""
    role: str = ""
    content: str = ""
    tool_calls: Optional[list[ToolCallRequest]] = None
    tool_call_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return self.role == ROLE_ASSISTANT and bool(self.tool_calls)


@dataclass
class ToolExecutionRecord:
    """Audit entry for one tool execution attempt. Written once, never updated."""
    id: str = ""
    conversation_id: Optional[str] = None
    user_id: Optional[int] = None
    project_id: Optional[int] = None
    action_type: str = "other"
    action_name: str = ""
    input: dict[str, Any] = field(default_factory=dict)
    output: Any = None
    success: bool = False
    error_message: Optional[str] = None
    execution_time_ms: int = 0
    created_at: str = ""
