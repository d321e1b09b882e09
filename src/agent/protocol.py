"""
agent.protocol - Chat-completions wire shapes exchanged with the model.

Responses are validated with pydantic before the orchestrator reads them;
anything that does not fit raises ModelProtocolError, which is never retried.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from domain.entities import ToolCallRequest
from domain.exceptions import ModelProtocolError

logger = logging.getLogger(__name__)


class FunctionCall(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    # Providers send a JSON string; some adapters pass a parsed dict through.
    arguments: Union[str, dict[str, Any], None] = None


class WireToolCall(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str = "function"
    function: FunctionCall


class AssistantTurn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str = "assistant"
    content: Union[str, list[Any], None] = None
    tool_calls: Optional[list[WireToolCall]] = None

    @property
    def text(self) -> str:
        """Content flattened to plain text (list-of-parts content is joined)."""
        return content_text(self.content)

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class Choice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    message: Optional[AssistantTurn] = None
    finish_reason: Optional[str] = None


class Usage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ModelResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    choices: list[Choice] = Field(default_factory=list)
    usage: Optional[Usage] = None
    model: Optional[str] = None

    @property
    def total_tokens(self) -> Optional[int]:
        return self.usage.total_tokens if self.usage else None


def content_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict):
                parts.append(str(part.get("text") or ""))
        return "".join(parts)
    return str(content)


def parse_response(raw: Any) -> tuple[ModelResponse, AssistantTurn]:
    """Validate a raw model response and return it with its first assistant turn.

    Raises:
        ModelProtocolError: not a mapping, no choices, or no message in choices[0].
    """
    try:
        response = ModelResponse.model_validate(raw)
    except ValidationError as exc:
        raise ModelProtocolError(f"Invalid LLM response: {exc}", original=exc) from exc

    if not response.choices:
        raise ModelProtocolError("Invalid LLM response: missing choices array")
    turn = response.choices[0].message
    if turn is None:
        raise ModelProtocolError("Invalid LLM response: missing message in choices[0]")
    return response, turn


def parse_arguments(tool_name: str, arguments: Union[str, dict[str, Any], None]) -> dict[str, Any]:
    """Decode tool-call arguments; anything unparsable becomes an empty dict.

    The tool then fails its own validation and the model sees that error.
    """
    if isinstance(arguments, dict):
        return arguments
    if not arguments:
        return {}
    try:
        parsed = json.loads(arguments)
    except (TypeError, ValueError):
        logger.warning("Failed to parse tool call arguments for %s: %r", tool_name, arguments[:200])
        return {}
    if not isinstance(parsed, dict):
        logger.warning("Tool call arguments for %s are not an object: %r", tool_name, parsed)
        return {}
    return parsed


def tool_call_requests(turn: AssistantTurn) -> list[ToolCallRequest]:
    return [
        ToolCallRequest(
            id=call.id,
            name=call.function.name,
            arguments=parse_arguments(call.function.name, call.function.arguments),
        )
        for call in turn.tool_calls or []
    ]


def assistant_tool_call_message(turn: AssistantTurn) -> dict[str, Any]:
    """The assistant turn as it is echoed back to the model in later rounds."""
    return {
        "role": "assistant",
        "content": turn.text or None,
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {
                    "name": call.function.name,
                    "arguments": (
                        call.function.arguments
                        if isinstance(call.function.arguments, str)
                        else json.dumps(call.function.arguments or {}, default=str)
                    ),
                },
            }
            for call in turn.tool_calls or []
        ],
    }
