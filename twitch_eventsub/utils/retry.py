"""Retry utilities for asynchronous operations using Tenacity."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..constants import EVENTSUB_UNSUBSCRIBE_MAX_ATTEMPTS, EVENTSUB_UNSUBSCRIBE_MAX_WAIT
from ..errors.api import HelixRateLimitError, NetworkError

T = TypeVar("T")

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (NetworkError, HelixRateLimitError)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.debug(f"🔄 Retrying after transient error (attempt {retry_state.attempt_number}): {error}")


async def retry_transient(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = EVENTSUB_UNSUBSCRIBE_MAX_ATTEMPTS,
    max_wait: float = EVENTSUB_UNSUBSCRIBE_MAX_WAIT,
    multiplier: float = 0.5,
) -> T:
    """Run an operation, retrying transient failures with exponential backoff.

    Only :data:`TRANSIENT_ERRORS` are retried; anything else propagates on the
    first attempt. After the last attempt the original exception is re-raised.

    Args:
        operation: Zero-argument coroutine function.
        max_attempts: Maximum number of attempts.
        max_wait: Upper bound of a single backoff sleep in seconds.
        multiplier: Backoff multiplier (0 disables sleeping).

    Returns:
        The result of the first successful attempt.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, max=max_wait),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=_log_retry,
        reraise=True,
    )
    return await retrying(operation)
