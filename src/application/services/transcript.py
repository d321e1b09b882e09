"""
application.services.transcript - Conversation transcript persistence and replay.

Persists conversations and messages, and rebuilds a protocol-valid message
sequence for the model from whatever is on disk.

Messages are written incrementally: an assistant turn with tool-call
requests is stored before its tools run and each tool response as it
completes. A crash mid-round therefore leaves an incomplete tool-call group
behind. build_model_history() never replays such a group: the assistant
turn and all of its responses are dropped together.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import uuid4

from application.dto import ConversationStats
from domain.entities import (
    ROLE_ASSISTANT,
    ROLE_TOOL,
    ROLE_USER,
    ROLES,
    STATUS_ARCHIVED,
    Conversation,
    Message,
    ToolCallRequest,
)
from domain.exceptions import ConversationNotFoundError, InvalidMessageError
from domain.ports import ConversationRepository, MessageRepository

logger = logging.getLogger(__name__)


class TranscriptService:
    """Persists and retrieves conversation transcripts."""

    def __init__(
        self,
        conversation_repo: ConversationRepository,
        message_repo: MessageRepository,
    ):
        self._conversation_repo = conversation_repo
        self._message_repo = message_repo

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def create_conversation(
        self,
        user_id: int,
        project_id: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
        title: Optional[str] = None,
    ) -> Conversation:
        conversation = await self._conversation_repo.save(Conversation(
            id=str(uuid4()),
            user_id=user_id,
            project_id=project_id,
            title=title or f"Conversation {datetime.now().isoformat(timespec='seconds')}",
            context=dict(context or {}),
        ))
        logger.info(
            "Created conversation %s for user %d (project=%s)",
            conversation.id, user_id, project_id,
        )
        return conversation

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return await self._conversation_repo.get(conversation_id)

    async def require_conversation(self, conversation_id: str) -> Conversation:
        conversation = await self._conversation_repo.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    async def list_conversations(
        self, user_id: int, project_id: Optional[int] = None, limit: int = 50,
    ) -> list[Conversation]:
        """List a user's conversations, most recently updated first."""
        return await self._conversation_repo.list_by_user(user_id, project_id, limit)

    async def update_context(
        self, conversation_id: str, context: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge *context* into the stored context blob and return the result."""
        conversation = await self.require_conversation(conversation_id)
        merged = {**conversation.context, **context}
        await self._conversation_repo.update_context(conversation_id, merged)
        return merged

    async def archive_conversation(self, conversation_id: str) -> None:
        await self._conversation_repo.update_status(conversation_id, STATUS_ARCHIVED)

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and, with it, all of its messages."""
        await self._conversation_repo.delete(conversation_id)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def append_message(
        self,
        conversation_id: str,
        role: str,
        content: Optional[str],
        tool_calls: Optional[Sequence[ToolCallRequest]] = None,
        tool_call_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Message:
        """Append one message and bump the conversation's updated_at.

        Raises:
            InvalidMessageError: unknown role, a tool message without a
                tool_call_id, tool_calls on a non-assistant message, or a
                tool_call_id on a non-tool message.
        """
        if role not in ROLES:
            raise InvalidMessageError(f"Unknown message role: {role!r}")
        if role == ROLE_TOOL and not tool_call_id:
            raise InvalidMessageError("Tool messages require a tool_call_id")
        if role != ROLE_TOOL and tool_call_id:
            raise InvalidMessageError("Only tool messages may carry a tool_call_id")
        if role != ROLE_ASSISTANT and tool_calls:
            raise InvalidMessageError("Only assistant messages may carry tool calls")

        message = await self._message_repo.save(Message(
            conversation_id=conversation_id,
            role=role,
            content=content if content is not None else "",
            # An empty request list is an ordinary text turn.
            tool_calls=list(tool_calls) if tool_calls else None,
            tool_call_id=tool_call_id,
            metadata=metadata or None,
        ))
        await self._conversation_repo.touch(conversation_id)
        return message

    async def get_messages(
        self, conversation_id: str, limit: Optional[int] = 100,
    ) -> list[Message]:
        """Stored messages, oldest first."""
        return await self._message_repo.list_chronological(conversation_id, limit)

    async def build_model_history(
        self, conversation_id: str, max_messages: int = 20,
    ) -> list[dict[str, Any]]:
        """Replay the most recent *max_messages* as protocol-shaped turns.

        Incomplete tool-call groups (and orphaned tool responses) are excluded.
        """
        messages = await self._message_repo.list_recent(conversation_id, max_messages)
        return [to_protocol_message(m) for m in select_complete_groups(messages)]

    async def compute_stats(self, conversation_id: str) -> ConversationStats:
        messages = await self._message_repo.list_chronological(conversation_id, None)

        total_tokens = 0
        latencies: list[float] = []
        for m in messages:
            meta = m.metadata or {}
            total_tokens += int(meta.get("tokens") or 0)
            if meta.get("latency_ms") is not None:
                latencies.append(float(meta["latency_ms"]))

        return ConversationStats(
            message_count=len(messages),
            user_messages=sum(1 for m in messages if m.role == ROLE_USER),
            assistant_messages=sum(1 for m in messages if m.role == ROLE_ASSISTANT),
            tool_messages=sum(1 for m in messages if m.role == ROLE_TOOL),
            tool_calls=sum(len(m.tool_calls or []) for m in messages),
            total_tokens=total_tokens,
            average_latency_ms=sum(latencies) / len(latencies) if latencies else 0.0,
        )


# ---------------------------------------------------------------------------
# Reconstruction
# ---------------------------------------------------------------------------

@dataclass
class _ToolCallGroup:
    declared: set[str]
    observed: set[str] = field(default_factory=set)

    @property
    def complete(self) -> bool:
        return self.observed == self.declared


def select_complete_groups(messages: Sequence[Message]) -> list[Message]:
    """Filter a chronological message list down to a protocol-valid sequence.

    Pass 1 anchors every tool message to the assistant turn with tool calls
    that most recently preceded it (a user, system or plain assistant turn
    clears the anchor) and collects declared vs. observed call ids per group.
    Pass 2 keeps plain turns, keeps complete groups whole, and drops
    incomplete groups whole along with any unanchored tool message.
    """
    groups: dict[int, _ToolCallGroup] = {}
    anchors: dict[int, Optional[int]] = {}

    pending: Optional[int] = None
    for index, message in enumerate(messages):
        if message.has_tool_calls:
            pending = index
            groups[index] = _ToolCallGroup({tc.id for tc in message.tool_calls or []})
        elif message.role == ROLE_TOOL:
            anchors[index] = pending if message.tool_call_id else None
            if anchors[index] is not None:
                groups[pending].observed.add(message.tool_call_id)
        else:
            pending = None

    kept: list[Message] = []
    answered: set[tuple[int, str]] = set()
    for index, message in enumerate(messages):
        if message.has_tool_calls:
            group = groups[index]
            if group.complete:
                kept.append(message)
            else:
                logger.warning(
                    "Dropping assistant message %s with incomplete tool responses "
                    "(expected %s, got %s)",
                    message.id, sorted(group.declared), sorted(group.observed),
                )
        elif message.role == ROLE_TOOL:
            anchor = anchors[index]
            if anchor is None:
                logger.warning("Dropping orphaned tool message %s", message.id)
                continue
            if not groups[anchor].complete:
                continue
            key = (anchor, message.tool_call_id)
            if key in answered:
                logger.warning(
                    "Dropping duplicate response for tool call %s", message.tool_call_id,
                )
                continue
            answered.add(key)
            kept.append(message)
        else:
            kept.append(message)
    return kept


def to_protocol_message(message: Message) -> dict[str, Any]:
    """Render a stored message in the chat-completions message shape."""
    if message.has_tool_calls:
        return {
            "role": ROLE_ASSISTANT,
            "content": message.content or None,
            "tool_calls": [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.name,
                        "arguments": json.dumps(tc.arguments, default=str),
                    },
                }
                for tc in message.tool_calls or []
            ],
        }
    if message.role == ROLE_TOOL:
        return {
            "role": ROLE_TOOL,
            "content": message.content or "",
            "tool_call_id": message.tool_call_id,
        }
    return {"role": message.role, "content": message.content or ""}
