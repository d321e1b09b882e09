"""
domain.models - Value objects for tool descriptors and execution results.

These are immutable data containers with no dependencies on
infrastructure (no LangChain, no SQLite).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

# A tool handler receives (arguments, execution context) and may be sync or async.
ToolHandler = Callable[[dict[str, Any], Any], Union[Any, Awaitable[Any]]]


# ---------------------------------------------------------------------------
# Tool schema
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolParameter:
    """One named parameter of a tool: a primitive type plus optional enum."""
    type: str
    description: str = ""
    enum: Optional[tuple[str, ...]] = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


@dataclass(frozen=True)
class ToolParameters:
    """Object schema for a tool's arguments."""
    properties: dict[str, ToolParameter] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    def to_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                name: param.to_schema() for name, param in self.properties.items()
            },
            "required": list(self.required),
        }


@dataclass(frozen=True)
class ToolDescriptor:
    """A named tool: description, parameter schema and the handler bound to it."""
    name: str
    description: str
    parameters: ToolParameters
    handler: ToolHandler

    def definition(self) -> dict[str, Any]:
        """Return the tool in the function-calling shape the model consumes."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters.to_schema(),
            },
        }


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of ToolRegistry.execute(). Failures never raise."""
    success: bool
    result: Any = None
    error: Optional[str] = None
    duration_ms: int = 0


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a dry-run argument check."""
    valid: bool
    errors: list[str] = field(default_factory=list)
