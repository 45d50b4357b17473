"""
Retry and polling helpers with exponential backoff.

Both helpers are plain control flow: they know nothing about invoices or
tokens. Delays are in seconds and follow
``min(initial_delay * 2 ** (attempt - 1), max_delay)``.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from invoicing_api.exceptions import PollingTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, initial_delay: float, max_delay: float) -> float:
    """Delay to wait after the given (1-based) failed attempt."""
    return min(initial_delay * (2 ** (attempt - 1)), max_delay)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 5,
    initial_delay: float = 0.2,
    max_delay: float = 2.0,
    should_retry: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception, float], Any]] = None,
) -> T:
    """
    Run an async operation, retrying failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory to invoke
        max_attempts: Total number of invocations allowed
        initial_delay: Delay after the first failure (seconds)
        max_delay: Upper bound for any single delay (seconds)
        should_retry: Predicate deciding whether an error is retryable
        on_retry: Callback invoked as (attempt, error, delay) before waiting

    Returns:
        The operation's result

    Raises:
        The last error once attempts are exhausted, or the first
        non-retryable error.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if attempt >= max_attempts or (should_retry is not None and not should_retry(exc)):
                raise

            delay = backoff_delay(attempt, initial_delay, max_delay)
            logger.debug(
                "operation_retry_scheduled",
                attempt=attempt,
                delay_seconds=delay,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            await asyncio.sleep(delay)


async def poll_until(
    operation: Callable[[], Awaitable[T]],
    condition: Callable[[T], bool],
    max_attempts: int = 10,
    initial_delay: float = 0.2,
    max_delay: float = 2.0,
    on_poll: Optional[Callable[[int, T], Any]] = None,
) -> T:
    """
    Invoke an async operation until its result satisfies a condition.

    Errors raised by the operation propagate unchanged.

    Raises:
        PollingTimeoutError: condition never held; carries the last result.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    result: Optional[T] = None
    for attempt in range(1, max_attempts + 1):
        result = await operation()
        if on_poll is not None:
            on_poll(attempt, result)

        if condition(result):
            return result

        if attempt < max_attempts:
            await asyncio.sleep(backoff_delay(attempt, initial_delay, max_delay))

    raise PollingTimeoutError(max_attempts, last_result=result)
