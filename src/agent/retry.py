"""
agent.retry - Transient-failure retry for model calls.

Failures are classified by message text: malformed/HTML bodies, gateway
5xx (502/503/504) and connection resets or timeouts are transient and
retried with linear backoff (attempt × delay). Everything else is raised
immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from domain.exceptions import ModelProtocolError, ModelTransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_DELAY_SECONDS = 1.0

_TRANSIENT_MARKERS = (
    "html instead of json",
    "failed to parse",
    "502",
    "503",
    "504",
    "bad gateway",
    "service unavailable",
    "gateway timeout",
    "econnreset",
    "etimedout",
    "connection reset",
    "connection error",
    "timed out",
    "timeout",
)


def is_transient_error(exc: BaseException) -> bool:
    """True if *exc* looks like a gateway/transport hiccup worth retrying."""
    if isinstance(exc, ModelProtocolError):
        return False
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError)):
        return True
    message = f"{type(exc).__name__}: {exc}".lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    delay_seconds: float = DEFAULT_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await *call()*, retrying transient failures up to *attempts* times.

    Raises:
        ModelTransportError: retries exhausted, or a non-transient failure.
        ModelProtocolError: passed through untouched.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await call()
        except ModelProtocolError:
            raise
        except Exception as exc:
            if is_transient_error(exc) and attempt < attempts:
                wait = delay_seconds * attempt
                logger.warning(
                    "LLM attempt %d/%d failed, retrying in %.1fs: %s",
                    attempt, attempts, wait, exc,
                )
                await sleep(wait)
                continue
            raise ModelTransportError(
                f"LLM invoke failed after {attempt} attempt(s): {exc}",
                original=exc,
                attempts=attempt,
            ) from exc
    # attempts >= 1, so the loop always returns or raises
    raise AssertionError("unreachable")
