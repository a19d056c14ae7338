"""Batched, bounded-concurrency detail fetching.

Ids are cut into sequential batches. Inside a batch every fetch runs
concurrently under the retry combinator; the next batch starts only once all
fetches of the current one have settled.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from reconsync.domain.models import DetailFetchOutcome, ErrorKind, RemoteRecordRef
from reconsync.infrastructure.http.client import classify_error
from reconsync.infrastructure.observability.logging import get_logger

from .retry import DEFAULT_MAX_DELAY, RetryError, retry_with_backoff

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 20
DEFAULT_BATCH_DELAY = 0.5
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_BASE_DELAY = 1.0

FetchDetail = Callable[[str], Awaitable[dict[str, Any]]]


class DetailFetchPipeline:
    """Fetch record details in batches with per-id retry.

    Args:
        fetch_detail: Coroutine function fetching one payload by external id.
        batch_size: Ids per batch, which is also the concurrency ceiling.
        batch_delay: Seconds to wait between batches.
        max_retries: Retries per id on transient failure.
        retry_base_delay: First backoff delay in seconds; doubles per retry.
        is_transient: Error classifier used by the retry combinator.
        sleep: Awaitable sleep, replaceable in tests.
        on_outcome: Optional callback receiving each settled outcome.
    """

    def __init__(
        self,
        fetch_detail: FetchDetail,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_MAX_DELAY,
        is_transient: Callable[[BaseException], bool] = classify_error,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_outcome: Callable[[DetailFetchOutcome], None] | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.fetch_detail = fetch_detail
        self.batch_size = int(batch_size)
        self.batch_delay = max(0.0, float(batch_delay))
        self.max_retries = max(0, int(max_retries))
        self.retry_base_delay = max(0.0, float(retry_base_delay))
        self.retry_max_delay = retry_max_delay
        self.is_transient = is_transient
        self._sleep = sleep
        self._on_outcome = on_outcome

    async def _fetch_one(self, ref: RemoteRecordRef) -> DetailFetchOutcome:
        async def operation() -> dict[str, Any]:
            return await self.fetch_detail(ref.external_id)

        try:
            payload, attempts = await retry_with_backoff(
                operation,
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                max_delay=self.retry_max_delay,
                is_transient=self.is_transient,
                sleep=self._sleep,
            )
        except RetryError as exc:
            kind = ErrorKind.TRANSIENT if exc.transient else ErrorKind.PERMANENT
            logger.warning(
                "Detail fetch for %s failed after %d attempt(s): %s",
                ref.external_id, exc.attempts, exc.cause,
            )
            return DetailFetchOutcome(
                external_id=ref.external_id,
                error_kind=kind,
                error=str(exc.cause),
                attempts=exc.attempts,
                version_token=ref.version_token,
            )
        return DetailFetchOutcome(
            external_id=ref.external_id,
            payload=payload,
            attempts=attempts,
            version_token=ref.version_token,
        )

    async def run(
        self,
        refs: Sequence[RemoteRecordRef],
        should_stop: Callable[[], bool] | None = None,
    ) -> list[DetailFetchOutcome]:
        """Fetch every ref and return one outcome per ref, in request order.

        ``should_stop`` is checked before each batch; once it returns True
        the remaining refs get ``cancelled`` outcomes without being fetched.
        """
        outcomes: list[DetailFetchOutcome] = []
        total_batches = (len(refs) + self.batch_size - 1) // self.batch_size

        for index, start in enumerate(range(0, len(refs), self.batch_size)):
            if should_stop is not None and should_stop():
                logger.info(
                    "Stop requested; cancelling %d remaining id(s)", len(refs) - start
                )
                outcomes.extend(
                    DetailFetchOutcome.cancelled(ref.external_id, ref.version_token)
                    for ref in refs[start:]
                )
                break
            if index > 0 and self.batch_delay > 0:
                await self._sleep(self.batch_delay)

            batch = tuple(refs[start:start + self.batch_size])
            logger.debug("Batch %d/%d (%d ids)", index + 1, total_batches, len(batch))
            results = await asyncio.gather(*(self._fetch_one(ref) for ref in batch))
            for outcome in results:
                if self._on_outcome is not None:
                    self._on_outcome(outcome)
            outcomes.extend(results)
        return outcomes
