"""
infrastructure.llm.chat_model - LangChain-backed ChatModelPort.

Translates chat-completions shaped messages to LangChain message objects,
calls the bound chat model, and translates the AIMessage back to a
chat-completions shaped dict so the orchestrator never sees LangChain types.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from uuid import uuid4

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

logger = logging.getLogger(__name__)


def _decode_arguments(arguments: Any) -> dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    if not arguments:
        return {}
    try:
        parsed = json.loads(arguments)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_langchain_messages(messages: list[dict[str, Any]]) -> list[BaseMessage]:
    """Convert protocol-shaped dicts to LangChain message objects."""
    converted: list[BaseMessage] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content") or ""

        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role == "user":
            converted.append(HumanMessage(content=content))
        elif role == "assistant":
            tool_calls = [
                {
                    "name": call["function"]["name"],
                    "args": _decode_arguments(call["function"].get("arguments")),
                    "id": call["id"],
                    "type": "tool_call",
                }
                for call in message.get("tool_calls") or []
            ]
            converted.append(AIMessage(content=content, tool_calls=tool_calls))
        elif role == "tool":
            converted.append(ToolMessage(content=content, tool_call_id=message["tool_call_id"]))
        else:
            raise ValueError(f"Unsupported message role: {role!r}")
    return converted


def to_completion(message: AIMessage, default_model: str = "") -> dict[str, Any]:
    """Convert an AIMessage to a chat-completions shaped response dict."""
    tool_calls = [
        {
            "id": call.get("id") or f"call_{uuid4().hex[:24]}",
            "type": "function",
            "function": {
                "name": call["name"],
                "arguments": json.dumps(call.get("args") or {}, default=str),
            },
        }
        for call in message.tool_calls
    ]
    # Calls whose arguments failed to parse keep their raw string; the
    # orchestrator turns it into {} and the tool reports what is missing.
    for call in message.invalid_tool_calls:
        if not call.get("name"):
            continue
        tool_calls.append({
            "id": call.get("id") or f"call_{uuid4().hex[:24]}",
            "type": "function",
            "function": {"name": call["name"], "arguments": call.get("args") or ""},
        })

    turn: dict[str, Any] = {"role": "assistant", "content": message.content}
    if tool_calls:
        turn["tool_calls"] = tool_calls

    response: dict[str, Any] = {"choices": [{"index": 0, "message": turn}]}

    usage = message.usage_metadata
    if usage:
        response["usage"] = {
            "prompt_tokens": usage.get("input_tokens"),
            "completion_tokens": usage.get("output_tokens"),
            "total_tokens": usage.get("total_tokens"),
        }

    metadata = message.response_metadata or {}
    model = metadata.get("model_name") or metadata.get("model") or default_model
    if model:
        response["model"] = model
    return response


class LangChainChatModel:
    """ChatModelPort implementation over any LangChain tool-calling chat model.

    Args:
        llm:             A chat model from build_llm().
        model_name:      Reported when the provider omits it from the response.
        pass_max_tokens: Forward per-call max_tokens as a bind() kwarg. Disable
                         for providers that reject it (Ollama uses num_predict).
    """

    def __init__(self, llm: BaseChatModel, model_name: str = "", pass_max_tokens: bool = True):
        self._llm = llm
        self._model_name = model_name
        self._pass_max_tokens = pass_max_tokens

    async def invoke(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: Optional[list[dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> dict[str, Any]:
        runnable: Any = self._llm
        if tools:
            runnable = runnable.bind_tools(tools, tool_choice=tool_choice)
        if max_tokens is not None and self._pass_max_tokens:
            runnable = runnable.bind(max_tokens=max_tokens)

        logger.debug(
            "Invoking %s with %d message(s), %d tool(s)",
            self._model_name or type(self._llm).__name__, len(messages), len(tools or []),
        )
        result = await runnable.ainvoke(to_langchain_messages(messages))
        if not isinstance(result, AIMessage):
            # Surfaces as ModelProtocolError when the orchestrator validates it.
            return {"choices": []}
        return to_completion(result, self._model_name)
