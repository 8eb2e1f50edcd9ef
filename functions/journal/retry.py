"""
Retry helper with exponential backoff, built on tenacity.

Used by the admin scripts around Cloudinary write calls. Request handlers do
not retry.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 10.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0


def _error_status(error: BaseException) -> Optional[int]:
    response = getattr(error, "response", None)
    if response is not None:
        return getattr(response, "status_code", None)
    return getattr(error, "status", None)


def is_retryable_error(error: BaseException, attempt: int = 0) -> bool:
    """Retry network errors (no status at all) and 5xx responses."""
    status = _error_status(error)
    if status is None:
        return True
    return 500 <= status < 600


def _retry_condition(
    should_retry: Callable[[BaseException, int], bool]
) -> Callable[[RetryCallState], bool]:
    def condition(retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        error = outcome.exception()
        if not isinstance(error, Exception):
            return False
        return should_retry(error, retry_state.attempt_number - 1)

    return condition


def _on_retry_callback(
    on_retry: Callable[[BaseException, int, float], None]
) -> Callable[[RetryCallState], None]:
    def callback(retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        on_retry(retry_state.outcome.exception(), retry_state.attempt_number, delay)

    return callback


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    should_retry: Optional[Callable[[BaseException, int], bool]] = None,
    on_retry: Optional[Callable[[BaseException, int, float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Calls ``fn`` until it succeeds or retries are exhausted.

    The wait before retry ``n`` (0-based) is
    ``min(initial_delay * backoff_multiplier**n, max_delay)``.

    Args:
        fn: Zero-argument callable to run.
        max_retries: Retries after the first attempt.
        should_retry: Predicate ``(error, attempt) -> bool``; defaults to
            ``is_retryable_error``.
        on_retry: Called with ``(error, attempt_number, delay)`` before sleeping.

    Returns:
        Whatever ``fn`` returns.

    Raises:
        The last error once retries are exhausted or ``should_retry`` declines.
    """
    retrying = Retrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(
            multiplier=initial_delay, exp_base=backoff_multiplier, max=max_delay
        ),
        retry=_retry_condition(should_retry or is_retryable_error),
        before_sleep=_on_retry_callback(on_retry)
        if on_retry
        else before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    return retrying(fn)


def with_retry(**options: Any) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator form of ``retry_with_backoff``."""

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return retry_with_backoff(lambda: fn(*args, **kwargs), **options)

        return wrapper

    return decorator
