"""
application.dto - Data Transfer Objects for orchestrator input/output.

These are the structured requests and results exchanged with callers
(CLI adapter, an outer request layer, tests).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class AgentRequest:
    """One incoming user message."""
    user_id: int
    message: str
    project_id: Optional[int] = None
    conversation_id: Optional[str] = None
    context: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ToolCallOutcome:
    """A tool call made while answering a request, with what it returned."""
    id: str
    name: str
    arguments: dict[str, Any]
    result: Any = None


@dataclass(frozen=True)
class ResponseMetadata:
    latency_ms: int
    tools_used: list[str] = field(default_factory=list)
    tokens: Optional[int] = None
    model: Optional[str] = None


@dataclass(frozen=True)
class AgentResponse:
    """Final answer for one request."""
    conversation_id: str
    message: str
    metadata: ResponseMetadata
    tool_calls: Optional[list[ToolCallOutcome]] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ConversationStats:
    """Aggregates over a conversation transcript."""
    message_count: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    tool_messages: int = 0
    tool_calls: int = 0
    total_tokens: int = 0
    average_latency_ms: float = 0.0
