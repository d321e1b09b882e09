"""
agent.executor - Agent orchestration loop.

Turns one user message into one final answer, possibly via several rounds
of tool use. Constructed by factory.py with all dependencies injected;
holds no per-request state between calls.

Round flow:
    AWAITING_MODEL   call the model with history + tool list ("auto")
    EXECUTING_TOOLS  persist the assistant turn, run each requested tool in
                     order, persist each tool response as it completes
    DONE             the model answered without tool calls

The number of tool-bearing rounds is bounded by max_rounds. If the model
still wants tools on the last round, one extra call is made with tools
disabled to force a textual answer.
"""

from __future__ import annotations

import enum
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from application.context import ToolExecutionContext
from application.dto import AgentRequest, AgentResponse, ResponseMetadata, ToolCallOutcome
from application.services.transcript import TranscriptService
from agent.prompt import build_system_prompt
from agent.protocol import (
    AssistantTurn,
    ModelResponse,
    assistant_tool_call_message,
    parse_response,
    tool_call_requests,
)
from agent.retry import DEFAULT_ATTEMPTS, DEFAULT_DELAY_SECONDS, call_with_retry
from agent.tools.registry import ToolRegistry
from domain.entities import ROLE_ASSISTANT, ROLE_SYSTEM, ROLE_TOOL, ROLE_USER
from domain.exceptions import ModelProtocolError
from domain.models import ExecutionResult
from domain.ports import ChatModelPort, ProjectStoreProvider

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "I apologize, but I was unable to generate a response."
NO_RESULT_ERROR = "Tool returned no result"


class LoopState(enum.Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


@dataclass
class _UsageTotals:
    """Token/model accounting across all rounds of one request."""
    tokens: Optional[int] = None
    model: Optional[str] = None
    calls: int = 0

    def add(self, response: ModelResponse) -> None:
        self.calls += 1
        if response.total_tokens is not None:
            self.tokens = (self.tokens or 0) + response.total_tokens
        if response.model:
            self.model = response.model


@dataclass
class _CallUsage:
    """Tokens, model and duration of the single call behind one stored message."""
    tokens: Optional[int] = None
    model: Optional[str] = None
    latency_ms: Optional[int] = None

    @classmethod
    def of(cls, response: ModelResponse, latency_ms: int) -> _CallUsage:
        return cls(tokens=response.total_tokens, model=response.model, latency_ms=latency_ms)

    def metadata(self, default_model: Optional[str] = None) -> dict[str, Any]:
        return {
            "tokens": self.tokens,
            "model": self.model or default_model,
            "latency_ms": self.latency_ms,
        }


def serialize_tool_result(result: ExecutionResult) -> str:
    """Tool-turn content. Never empty: failures and null results become error payloads."""
    if not result.success:
        payload: Any = {"error": result.error or "Tool execution failed"}
    elif result.result is None:
        payload = {"error": NO_RESULT_ERROR}
    else:
        payload = result.result
    return json.dumps(payload, default=str)


class AgentOrchestrator:
    """Runs the bounded model + tool loop for one request at a time.

    Safe to share across concurrent requests: all per-request state lives
    in local variables and the request's ToolExecutionContext.
    """

    def __init__(
        self,
        model: ChatModelPort,
        registry: ToolRegistry,
        transcript: TranscriptService,
        project_stores: Optional[ProjectStoreProvider] = None,
        *,
        max_rounds: int = 5,
        history_max_messages: int = 20,
        max_tokens: int = 4000,
        final_max_tokens: int = 2000,
        retry_attempts: int = DEFAULT_ATTEMPTS,
        retry_delay_seconds: float = DEFAULT_DELAY_SECONDS,
    ):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self._model = model
        self._registry = registry
        self._transcript = transcript
        self._project_stores = project_stores
        self._max_rounds = max_rounds
        self._history_max_messages = history_max_messages
        self._max_tokens = max_tokens
        self._final_max_tokens = final_max_tokens
        self._retry_attempts = retry_attempts
        self._retry_delay_seconds = retry_delay_seconds

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def transcript(self) -> TranscriptService:
        return self._transcript

    async def process_message(self, request: AgentRequest) -> AgentResponse:
        """Process a user message and return the final answer.

        Raises:
            ConversationNotFoundError: request.conversation_id does not exist.
            ModelTransportError: the model kept failing after retries.
            ModelProtocolError: the model returned a malformed response.
        """
        started = time.monotonic()
        tools_used: list[str] = []
        outcomes: list[ToolCallOutcome] = []
        usage = _UsageTotals()

        conversation_id = await self._resolve_conversation(request)
        logger.info(
            "Agent processing (user=%d, conversation=%s): %s",
            request.user_id, conversation_id, request.message[:80],
        )

        await self._transcript.append_message(conversation_id, ROLE_USER, request.message)
        history = await self._transcript.build_model_history(
            conversation_id, self._history_max_messages,
        )
        messages: list[dict[str, Any]] = [
            {"role": ROLE_SYSTEM, "content": build_system_prompt(request, self._registry)},
            *history,
        ]

        ctx = ToolExecutionContext(
            user_id=request.user_id,
            project_id=request.project_id,
            conversation_id=conversation_id,
            project_store=await self._project_store(request.project_id),
            transcript=self._transcript,
        )
        tools = self._registry.definitions() or None

        final_text = ""
        final_call = _CallUsage()
        state = LoopState.AWAITING_MODEL
        for round_number in range(1, self._max_rounds + 1):
            response, turn, call_ms = await self._call_model(
                messages,
                tools=tools,
                tool_choice="auto" if tools else None,
                max_tokens=self._max_tokens,
            )
            usage.add(response)

            if not turn.wants_tools:
                final_text = turn.text
                final_call = _CallUsage.of(response, call_ms)
                state = LoopState.DONE
                break

            state = LoopState.EXECUTING_TOOLS
            await self._run_tool_round(
                conversation_id, turn, _CallUsage.of(response, call_ms), messages, ctx,
                tools_used, outcomes,
            )

            if round_number == self._max_rounds:
                logger.warning(
                    "Round limit (%d) reached with tool calls pending, forcing a final answer",
                    self._max_rounds,
                )
                final_text, final_call = await self._force_final_answer(messages, usage)
                state = LoopState.DONE

        if state is not LoopState.DONE:
            # max_rounds >= 1 and every branch above ends in DONE.
            raise AssertionError(f"loop ended in state {state}")

        final_text = final_text or FALLBACK_MESSAGE
        latency_ms = int((time.monotonic() - started) * 1000)
        # Only the producing call's usage; request totals go in the response.
        await self._transcript.append_message(
            conversation_id,
            ROLE_ASSISTANT,
            final_text,
            metadata=final_call.metadata(default_model=usage.model),
        )
        logger.info(
            "Agent finished (conversation=%s): %d model call(s), tools=%s, %d ms",
            conversation_id, usage.calls, tools_used, latency_ms,
        )

        return AgentResponse(
            conversation_id=conversation_id,
            message=final_text,
            tool_calls=outcomes or None,
            metadata=ResponseMetadata(
                latency_ms=latency_ms,
                tools_used=tools_used,
                tokens=usage.tokens,
                model=usage.model,
            ),
        )

    # ------------------------------------------------------------------
    # Loop steps
    # ------------------------------------------------------------------

    async def _resolve_conversation(self, request: AgentRequest) -> str:
        if not request.conversation_id:
            conversation = await self._transcript.create_conversation(
                user_id=request.user_id,
                project_id=request.project_id,
                context=request.context,
            )
            return conversation.id

        await self._transcript.require_conversation(request.conversation_id)
        if request.context:
            await self._transcript.update_context(request.conversation_id, request.context)
        return request.conversation_id

    async def _project_store(self, project_id: Optional[int]):
        if project_id is None or self._project_stores is None:
            return None
        return await self._project_stores.get(project_id)

    async def _call_model(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: Optional[list[dict[str, Any]]],
        tool_choice: Optional[str],
        max_tokens: int,
    ) -> tuple[ModelResponse, AssistantTurn, int]:
        """One model call with transient-failure retries, validated.

        Also returns the call's wall-clock duration in milliseconds, retries included.
        """
        call_started = time.monotonic()
        raw = await call_with_retry(
            lambda: self._model.invoke(
                # Copy so later appends don't alter what a fake/recording model saw.
                list(messages),
                tools=tools,
                tool_choice=tool_choice,
                max_tokens=max_tokens,
            ),
            attempts=self._retry_attempts,
            delay_seconds=self._retry_delay_seconds,
        )
        call_ms = int((time.monotonic() - call_started) * 1000)
        response, turn = parse_response(raw)
        return response, turn, call_ms

    async def _run_tool_round(
        self,
        conversation_id: str,
        turn: AssistantTurn,
        call: _CallUsage,
        messages: list[dict[str, Any]],
        ctx: ToolExecutionContext,
        tools_used: list[str],
        outcomes: list[ToolCallOutcome],
    ) -> None:
        """Persist the assistant turn, then run and persist each tool call in order."""
        requests = tool_call_requests(turn)

        # Written before any tool runs, so a crash leaves a detectable partial group.
        await self._transcript.append_message(
            conversation_id,
            ROLE_ASSISTANT,
            turn.text,
            tool_calls=requests,
            metadata=call.metadata(),
        )
        messages.append(assistant_tool_call_message(turn))

        for call in requests:
            result = await self._registry.execute(call.name, call.arguments, ctx)
            content = serialize_tool_result(result)

            await self._transcript.append_message(
                conversation_id, ROLE_TOOL, content, tool_call_id=call.id,
            )
            messages.append({"role": ROLE_TOOL, "content": content, "tool_call_id": call.id})

            tools_used.append(call.name)
            outcomes.append(ToolCallOutcome(
                id=call.id,
                name=call.name,
                arguments=call.arguments,
                result=result.result if result.success else {"error": result.error},
            ))

    async def _force_final_answer(
        self, messages: list[dict[str, Any]], usage: _UsageTotals,
    ) -> tuple[str, _CallUsage]:
        """Ask once more with tools disabled. A malformed reply yields the fallback text."""
        try:
            response, turn, call_ms = await self._call_model(
                messages, tools=None, tool_choice=None, max_tokens=self._final_max_tokens,
            )
        except ModelProtocolError as exc:
            logger.warning("Forced final answer was malformed, using fallback: %s", exc)
            return FALLBACK_MESSAGE, _CallUsage()
        usage.add(response)
        return turn.text or FALLBACK_MESSAGE, _CallUsage.of(response, call_ms)
