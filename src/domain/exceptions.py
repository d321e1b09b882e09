"""
domain.exceptions - Custom exception hierarchy for the agent orchestration core.

All domain-level errors inherit from DomainError so callers can catch
broad or specific exceptions as needed.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for all domain-level errors."""


class RepositoryError(DomainError):
    """Raised when a database operation fails."""


class ConversationNotFoundError(DomainError):
    """Raised when a conversation id does not resolve to a stored conversation."""


class InvalidMessageError(DomainError):
    """Raised when a message violates the transcript role rules."""


# ---------------------------------------------------------------------------
# Tool errors: raised inside ToolRegistry, always converted to ExecutionResult
# ---------------------------------------------------------------------------

class ToolError(DomainError):
    """Base for tool execution failures."""


class ToolNotFoundError(ToolError):
    """Raised when no tool is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(f'Tool "{name}" not found')
        self.name = name


class ToolValidationError(ToolError):
    """Raised when required arguments are missing."""

    def __init__(self, missing: list[str]):
        super().__init__(f"Missing required parameters: {', '.join(missing)}")
        self.missing = missing


class ToolHandlerError(ToolError):
    """Raised when a tool's own logic fails."""


# ---------------------------------------------------------------------------
# Model errors: fatal for the request
# ---------------------------------------------------------------------------

class ModelError(DomainError):
    """Base for language-model failures."""

    def __init__(self, message: str, original: Exception | None = None):
        super().__init__(message)
        self.original = original


class ModelTransportError(ModelError):
    """Model call failed and retries are exhausted (or the error is not retryable)."""

    def __init__(
        self, message: str, original: Exception | None = None, attempts: int = 1,
    ):
        super().__init__(message, original=original)
        self.attempts = attempts


class ModelProtocolError(ModelError):
    """Model returned a response without the expected shape. Never retried."""
