"""Stage guardrails: timeout race with fallback substitution.

A guarded stage never raises to its caller. Whatever happens (completion,
timeout or exception) exactly one value comes back: the stage result or the
fallback object the caller supplied.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

FAILURE_TIMEOUT = "timeout"
FAILURE_ERROR = "error"


@dataclass
class GuardResult(Generic[T]):
    value: T
    used_fallback: bool = False
    failure: str | None = None  # FAILURE_TIMEOUT | FAILURE_ERROR
    message: str | None = None


async def guarded_call(
    fn: Callable[[], Awaitable[T]],
    timeout_ms: int,
    fallback: T,
) -> GuardResult[T]:
    """Race ``fn()`` against a ``timeout_ms`` timer and report how it settled."""
    try:
        value = await asyncio.wait_for(fn(), timeout=timeout_ms / 1000)
    except TimeoutError:
        logger.warning("stage_timed_out", timeout_ms=timeout_ms)
        return GuardResult(
            value=fallback,
            used_fallback=True,
            failure=FAILURE_TIMEOUT,
            message=f"Timed out after {timeout_ms}ms",
        )
    except Exception as exc:
        logger.warning("stage_failed", error=str(exc), error_type=type(exc).__name__)
        return GuardResult(
            value=fallback,
            used_fallback=True,
            failure=FAILURE_ERROR,
            message=str(exc),
        )
    return GuardResult(value=value)


async def with_timeout(
    fn: Callable[[], Awaitable[T]],
    timeout_ms: int,
    fallback: T,
) -> T:
    """Return ``fn()``'s result, or ``fallback`` on timeout or failure."""
    result = await guarded_call(fn, timeout_ms, fallback)
    return result.value
