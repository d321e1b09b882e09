"""
agent.tools.registry - Tool registration, validation, and execution.

Central registry of named tool descriptors. execute() never raises for a
tool-level problem (unknown name, missing arguments, handler failure);
every attempt becomes an ExecutionResult plus one audit record.
"""

from __future__ import annotations

import inspect
import logging
import time
from typing import Any, Iterable, Optional
from uuid import uuid4

from application.context import ToolExecutionContext
from domain.entities import ToolExecutionRecord
from domain.exceptions import ToolNotFoundError, ToolValidationError
from domain.models import ExecutionResult, ToolDescriptor, ValidationResult
from domain.ports import ActionLogRepository

logger = logging.getLogger(__name__)

# Checked in order; first matching keyword decides the audit bucket.
_ACTION_BUCKETS = (
    ("query", ("query", "search", "get")),
    ("generate", ("generate", "create")),
    ("modify", ("update", "modify", "edit")),
    ("analyze", ("analyze", "validate")),
)

_PYTHON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    if value is None:
        return "null"
    return type(value).__name__


def _matches_type(value: Any, declared: str) -> bool:
    expected = _PYTHON_TYPES.get(declared)
    if expected is None:
        return True
    # bool is an int subclass; only "boolean" accepts it.
    if isinstance(value, bool) and declared != "boolean":
        return False
    return isinstance(value, expected)


class ToolRegistry:
    """Manages tool registration, validation and invocation."""

    def __init__(self, action_log: Optional[ActionLogRepository] = None):
        self._tools: dict[str, ToolDescriptor] = {}
        self._action_log = action_log

    # ------------------------------------------------------------------
    # Registration & discovery
    # ------------------------------------------------------------------

    def register(self, tool: ToolDescriptor) -> None:
        """Register a tool by its name. Re-registering a name replaces it."""
        if tool.name in self._tools:
            logger.debug("Replacing tool: %s", tool.name)
        self._tools[tool.name] = tool
        logger.debug("Registered tool: %s", tool.name)

    def register_all(self, tools: Iterable[ToolDescriptor]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> ToolDescriptor:
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def all(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def definitions(self) -> list[dict[str, Any]]:
        """All tools in the function-calling shape, for the model's tool list."""
        return [tool.definition() for tool in self._tools.values()]

    @staticmethod
    def action_type(name: str) -> str:
        """Bucket a tool name into query/generate/modify/analyze/other."""
        for bucket, keywords in _ACTION_BUCKETS:
            if any(keyword in name for keyword in keywords):
                return bucket
        return "other"

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, name: str, arguments: dict[str, Any]) -> ValidationResult:
        """Dry-run check of *arguments* against the tool's declared schema.

        Reports missing required parameters, unknown parameter names,
        primitive type mismatches and enum violations. Never invokes the tool.
        """
        tool = self._tools.get(name)
        if tool is None:
            return ValidationResult(valid=False, errors=[str(ToolNotFoundError(name))])

        errors: list[str] = []
        missing = [p for p in tool.parameters.required if p not in arguments]
        if missing:
            errors.append(str(ToolValidationError(missing)))

        for key, value in arguments.items():
            param = tool.parameters.properties.get(key)
            if param is None:
                errors.append(f"Unknown parameter: {key}")
                continue
            if not _matches_type(value, param.type):
                errors.append(
                    f'Parameter "{key}" should be {param.type}, got {_type_name(value)}'
                )
            if param.enum and str(value) not in param.enum:
                errors.append(
                    f'Parameter "{key}" must be one of: {", ".join(param.enum)}'
                )

        return ValidationResult(valid=not errors, errors=errors)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        ctx: ToolExecutionContext,
    ) -> ExecutionResult:
        """Run a tool by name.

        Only required-parameter presence gates the call; a handler is never
        invoked with a required parameter missing. Whatever happens, exactly
        one audit record is written.
        """
        started = time.perf_counter()
        output: Any = None
        error: Optional[str] = None

        try:
            tool = self.get(name)
            missing = [p for p in tool.parameters.required if p not in arguments]
            if missing:
                raise ToolValidationError(missing)

            output = tool.handler(arguments, ctx)
            if inspect.isawaitable(output):
                output = await output
        except (ToolNotFoundError, ToolValidationError) as exc:
            output = None
            error = str(exc)
            logger.warning("Tool '%s' rejected: %s", name, error)
        except Exception as exc:
            output = None
            error = str(exc) or type(exc).__name__
            logger.exception("Tool '%s' failed", name)

        duration_ms = max(0, int((time.perf_counter() - started) * 1000))
        success = error is None

        await self._log_action(ToolExecutionRecord(
            id=uuid4().hex,
            conversation_id=ctx.conversation_id,
            user_id=ctx.user_id,
            project_id=ctx.project_id,
            action_type=self.action_type(name),
            action_name=name,
            input=dict(arguments),
            output=output if success else None,
            success=success,
            error_message=error,
            execution_time_ms=duration_ms,
        ))

        if success:
            return ExecutionResult(success=True, result=output, duration_ms=duration_ms)
        return ExecutionResult(success=False, error=error, duration_ms=duration_ms)

    async def _log_action(self, record: ToolExecutionRecord) -> None:
        """Write an audit record. A logging failure never affects the result."""
        if self._action_log is None:
            return
        try:
            await self._action_log.save(record)
        except Exception:
            logger.exception(
                "Failed to log agent action %s (%s)", record.action_name, record.id,
            )
