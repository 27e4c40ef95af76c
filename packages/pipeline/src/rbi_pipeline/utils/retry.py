"""
utils/retry.py — Exponential-backoff retry helpers built on tenacity.

Two shapes over the same policy: an async decorator for HTTP downloads and
a plain call wrapper for synchronous store writes. Every retry is logged
before the backoff sleep; the final failure is re-raised unchanged.

Usage:
    from rbi_pipeline.utils.retry import retry_call, with_retry

    @with_retry(max_attempts=3, base_delay=1.0, retry_on=httpx.TransportError)
    async def fetch_extract(url: str) -> bytes:
        ...

    # Synchronous call with retries on storage errors only
    outcomes = retry_call(store.upsert_nodes, chunk, retry_on=StorageUnavailable)
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

log = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])
T = TypeVar("T")

ExceptionTypes = type[Exception] | tuple[type[Exception], ...]


def _log_retry(name: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        log.warning(
            "retry_attempt",
            function=name,
            attempt=state.attempt_number + 1,
            max_attempts=max_attempts,
            delay_s=round(state.next_action.sleep, 2) if state.next_action else None,
            error=str(exc) if exc else None,
        )

    return before_sleep


def _policy(
    name: str,
    max_attempts: int,
    base_delay: float,
    max_delay: float,
    retry_on: ExceptionTypes,
) -> dict[str, Any]:
    """Delays are base_delay * 2^(attempt-1), capped at max_delay."""
    return {
        "stop": stop_after_attempt(max_attempts),
        "wait": wait_exponential(multiplier=base_delay, max=max_delay),
        "retry": retry_if_exception_type(retry_on),
        "before_sleep": _log_retry(name, max_attempts),
        "reraise": True,
    }


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retry_on: ExceptionTypes = Exception,
) -> Callable[[F], F]:
    """Retry an async function on *retry_on*; other exceptions propagate at once."""

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            policy = _policy(fn.__qualname__, max_attempts, base_delay, max_delay, retry_on)
            try:
                async for attempt in AsyncRetrying(**policy):
                    with attempt:
                        return await fn(*args, **kwargs)
            except Exception as exc:
                log.error("call_failed", function=fn.__qualname__, error=str(exc))
                raise

        return wrapper  # type: ignore[return-value]

    return decorator


def retry_call(
    fn: Callable[..., T],
    *args: Any,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    retry_on: ExceptionTypes = Exception,
    **kwargs: Any,
) -> T:
    """Call *fn* synchronously under the retry policy."""
    name = getattr(fn, "__qualname__", repr(fn))
    for attempt in Retrying(**_policy(name, max_attempts, base_delay, max_delay, retry_on)):
        with attempt:
            return fn(*args, **kwargs)
    raise AssertionError("unreachable")  # pragma: no cover
