"""
application.context - Request-scoped tool execution context.

Every tool handler receives its context explicitly. Two concurrent requests
get two different ToolExecutionContext instances, with no shared mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional
from uuid import uuid4

if TYPE_CHECKING:
    from application.services.transcript import TranscriptService
    from domain.ports import ProjectStore


@dataclass
class ToolExecutionContext:
    """Per-request bundle handed to every tool handler.

    Attributes:
        user_id:          Caller's user id (provided by the outer layer).
        project_id:       Project the request is scoped to, if any.
        conversation_id:  Conversation the tool calls belong to.
        project_store:    Project-scoped data access, None without a project.
        transcript:       Transcript service for tools that read conversation state.
        request_id:       Unique per request, for tracing/logging.
        scratch:          Request-scoped scratchpad for inter-tool data sharing.
    """
    user_id: int
    project_id: Optional[int] = None
    conversation_id: Optional[str] = None
    project_store: Optional[ProjectStore] = None
    transcript: Optional[TranscriptService] = None
    request_id: str = field(default_factory=lambda: uuid4().hex)
    scratch: dict[str, Any] = field(default_factory=dict)
