"""Retry-with-backoff combinator shared by every remote fetch call site."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from reconsync.infrastructure.http.client import classify_error
from reconsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_DELAY = 30.0


class RetryError(Exception):
    """An operation failed for good.

    Attributes:
        cause: The last exception raised by the operation.
        attempts: How many times the operation ran.
        transient: Whether the last failure was classified as transient
            (i.e. retries ran out rather than a permanent failure).
    """

    def __init__(self, cause: BaseException, attempts: int, transient: bool) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.attempts = attempts
        self.transient = transient


def backoff_delay(attempt: int, base_delay: float, max_delay: float = DEFAULT_MAX_DELAY) -> float:
    """Delay before retry number ``attempt`` (1-based): ``base * 2**(attempt-1)``."""
    return min(max_delay, base_delay * (2 ** max(0, attempt - 1)))


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 2,
    base_delay: float = 1.0,
    max_delay: float = DEFAULT_MAX_DELAY,
    is_transient: Callable[[BaseException], bool] = classify_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> tuple[T, int]:
    """Run ``operation`` until it succeeds, fails permanently or retries run out.

    Transient failures are retried up to ``max_retries`` times, so the
    operation runs at most ``max_retries + 1`` times. Permanent failures are
    not retried.

    Returns:
        ``(value, attempts)``.

    Raises:
        RetryError: Wrapping the last failure.
    """
    retries = max(0, int(max_retries))
    attempt = 0
    while True:
        attempt += 1
        try:
            value = await operation()
            return value, attempt
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            transient = is_transient(exc)
            if not transient or attempt > retries:
                raise RetryError(exc, attempt, transient) from exc
            delay = backoff_delay(attempt, base_delay, max_delay)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            else:
                logger.debug("Retry %d/%d in %.2fs after: %s", attempt, retries, delay, exc)
            await sleep(delay)
