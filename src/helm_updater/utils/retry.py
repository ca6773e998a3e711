"""Retry policy for registry requests."""

from collections.abc import Callable
from typing import Any, TypeVar

import httpx
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from helm_updater.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Connection resets, timeouts and DNS failures. HTTP status errors are
# answers from the registry and are never retried.
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (httpx.TransportError,)


def _retry_target(retry_state: RetryCallState) -> str | None:
    """Return the first string argument of the retried call, usually the URL."""
    for arg in retry_state.args:
        if isinstance(arg, str):
            return arg
    return None


def retry_on_exception(
    exceptions: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
) -> Callable[[F], F]:
    """Decorator retrying a sync or ``async def`` callable with exponential backoff.

    Each retry logs ``retry_attempt`` with the attempt number and the first
    string argument of the call as ``target``. The last exception is re-raised
    once attempts are exhausted.

    Args:
        exceptions: Exception types that trigger a retry
        max_attempts: Total attempts, including the first
        min_wait: Minimum wait time between attempts (seconds)
        max_wait: Maximum wait time between attempts (seconds)

    Returns:
        Decorator applying the retry policy
    """

    def log_retry(retry_state: RetryCallState) -> None:
        if retry_state.outcome is None or not retry_state.outcome.failed:
            return
        exception = retry_state.outcome.exception()
        logger.warning(
            "retry_attempt",
            target=_retry_target(retry_state),
            attempt=retry_state.attempt_number,
            max_attempts=max_attempts,
            exception=type(exception).__name__,
            message=str(exception),
        )

    return retry(
        retry=retry_if_exception_type(exceptions),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        before_sleep=log_retry,
        reraise=True,
    )
