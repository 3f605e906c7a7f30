"""
Retry with exponential backoff for transient failures.

Wraps tenacity's AsyncRetrying so callers get a single awaitable entry point
with the transient-error heuristic used around database reads.
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.exc import DBAPIError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from marketplace.core import config

logger = logging.getLogger(__name__)

TRANSIENT_MESSAGE_MARKERS = (
    "connection",
    "timeout",
    "deadlock",
    "too many connections",
    "temporarily unavailable",
)

TRANSIENT_ERROR_CODES = {"ECONNRESET", "ETIMEDOUT", "ECONNREFUSED", "ENOTFOUND"}


def is_transient_error(error: BaseException) -> bool:
    """Default classification of errors worth retrying."""
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    code = getattr(error, "code", None)
    if isinstance(code, str) and code in TRANSIENT_ERROR_CODES:
        return True

    message = str(error).lower()
    if isinstance(error, DBAPIError) and error.orig is not None:
        message = f"{message} {str(error.orig).lower()}"

    return any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS)


async def with_retry(
    operation: Callable[[], Any],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[BaseException, int], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """
    Run operation, retrying transient failures with exponential backoff.

    Waits initial_delay * backoff_factor ** attempt between attempts, with no
    jitter. Errors that are not retryable propagate immediately; after
    max_retries extra attempts the last error propagates.

    Args:
        operation: Zero-argument callable; may return a value or an awaitable
        max_retries: Additional attempts after the first one
        initial_delay: Seconds to wait before the first retry
        backoff_factor: Multiplier applied to the delay after each retry
        should_retry: Overrides the default transient-error heuristic
        on_retry: Called with (error, attempt_number) before each wait
        sleep: Awaitable sleep function

    Returns:
        Whatever operation returns
    """
    predicate = should_retry or is_transient_error

    def _before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            f"Attempt {retry_state.attempt_number}/{max_retries + 1} failed: {error}. "
            f"Retrying in {retry_state.next_action.sleep}s"
        )
        if on_retry:
            on_retry(error, retry_state.attempt_number)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=initial_delay, exp_base=backoff_factor),
        retry=retry_if_exception(predicate),
        before_sleep=_before_sleep,
        sleep=sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
    return result


async def with_db_retry(operation: Callable[[], Any]) -> Any:
    """with_retry using the configured defaults for database reads."""
    return await with_retry(
        operation,
        max_retries=config.DB_RETRY_MAX_RETRIES,
        initial_delay=config.DB_RETRY_INITIAL_DELAY,
        backoff_factor=config.DB_RETRY_BACKOFF_FACTOR,
    )
