"""Retry helpers with exponential backoff."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from codeloop.config.schema import RetrySettings
from codeloop.providers.exceptions import is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_delay(settings: RetrySettings, attempt: int) -> float:
    """Delay in seconds before retry ``attempt`` (1-based), capped at ``max_delay``."""
    return settings.delay_for(attempt)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    settings: Optional[RetrySettings] = None,
    is_retryable: Callable[[Exception], bool] = is_retryable_error,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> T:
    """
    Call ``fn`` until it succeeds, the error is not retryable, or the retry
    budget is spent.

    Args:
        fn: Coroutine factory to call.
        settings: Retry budget and backoff. Defaults to RetrySettings().
        is_retryable: Decides whether an exception is worth another attempt.
        on_retry: Called with (attempt, error, delay) before each retry.

    Returns:
        Result of the first successful call.

    Raises:
        Exception: The last error when no retry is possible.
    """
    settings = settings or RetrySettings()
    attempt = 0

    while True:
        try:
            return await fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            attempt += 1
            if attempt > settings.max_retries or not is_retryable(e):
                raise

            delay = compute_delay(settings, attempt)
            logger.warning(f"Attempt {attempt} failed ({e}), retrying in {delay:.1f}s")
            if on_retry:
                on_retry(attempt, e, delay)
            await asyncio.sleep(delay)
