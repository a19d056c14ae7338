"""Sync orchestrator: List -> Classify -> Fetch -> Persist -> Report.

One orchestrator instance drives one entity for one remote client (branch).
Running two syncs for the same scope at the same time is not supported.
"""

from __future__ import annotations

import asyncio
import dataclasses
import sqlite3
import time
from collections.abc import Awaitable, Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Protocol

from reconsync.domain.classifier import classify, dedupe_snapshot
from reconsync.domain.models import (
    DetailFetchOutcome,
    ErrorKind,
    FailureSample,
    RemoteRecordRef,
    RunState,
    SyncMode,
    SyncReport,
    SyncStatus,
)
from reconsync.entities.base import EntitySpec
from reconsync.infrastructure.db.connection import iso_utcnow
from reconsync.infrastructure.db.repositories import (
    LedgerRepository,
    RecordRepository,
    SyncRunRepository,
)
from reconsync.infrastructure.http.client import (
    DEFAULT_PAGE_DELAY,
    ListFilter,
    ListingError,
    PermanentError,
)
from reconsync.infrastructure.observability.logging import (
    get_logger,
    log_context,
    log_exception,
)
from reconsync.infrastructure.observability.metrics import (
    record_detail_fetch,
    record_sync_run,
)

from .errors import SyncAbortedError
from .pipeline import (
    DEFAULT_BATCH_DELAY,
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    DetailFetchPipeline,
)
from .upserter import PersistenceUpserter

logger = get_logger(__name__)

ConnectionFactory = Callable[[], AbstractContextManager[sqlite3.Connection]]


class CatalogClient(Protocol):
    def list_all(
        self,
        endpoint: str,
        list_filter: ListFilter | None = None,
        *,
        page_delay: float = ...,
        raw_rows: dict[str, dict[str, Any]] | None = None,
        sleep: Callable[[float], Awaitable[None]] = ...,
    ) -> Any: ...

    async def fetch_detail(self, endpoint: str, external_id: str) -> dict[str, Any]: ...


@dataclass(frozen=True)
class SyncSettings:
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_delay: float = DEFAULT_BATCH_DELAY
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    page_delay: float = DEFAULT_PAGE_DELAY
    sample_limit: int = 20


class SyncOrchestrator:
    """Coordinate one entity's reconciliation for one scope.

    Args:
        client: Remote catalog client bound to the scope's branch.
        entity: Entity definition (endpoint, tables, mapper, child policy).
        connection_factory: Returns a context manager yielding a sqlite
            connection with the schema applied.
        settings: Default batch, retry and delay settings.
        scope_name: Human-readable scope name stored on header rows.
        sleep: Awaitable sleep used for page, batch and retry delays.
    """

    def __init__(
        self,
        client: CatalogClient,
        entity: EntitySpec,
        connection_factory: ConnectionFactory,
        settings: SyncSettings | None = None,
        *,
        scope_name: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.entity = entity
        self.connection_factory = connection_factory
        self.settings = settings or SyncSettings()
        self.scope_name = scope_name
        self._sleep = sleep
        self._state = RunState.IDLE
        self._abort_requested = False

    @property
    def state(self) -> RunState:
        return self._state

    def request_abort(self) -> None:
        """Ask the running sync to stop before its next phase or batch.

        In-flight fetches finish; no new batch is started.
        """
        self._abort_requested = True

    def _should_stop(self) -> bool:
        return self._abort_requested

    # -- phases ------------------------------------------------------------

    def _listing_filter(self, list_filter: ListFilter | None) -> ListFilter:
        resolved = list_filter or ListFilter(date_filter_type=self.entity.date_filter_type)
        if self.entity.detail_from_listing and resolved.fields:
            # Full rows are needed when the listing doubles as the detail source.
            resolved = dataclasses.replace(resolved, fields=None)
        return resolved

    async def _list_snapshot(
        self, list_filter: ListFilter | None
    ) -> tuple[list[RemoteRecordRef], dict[str, dict[str, Any]]]:
        self._state = RunState.LISTING
        raw_rows: dict[str, dict[str, Any]] = {}
        refs: list[RemoteRecordRef] = []
        stream = self.client.list_all(
            self.entity.endpoint,
            self._listing_filter(list_filter),
            page_delay=self.settings.page_delay,
            raw_rows=raw_rows if self.entity.detail_from_listing else None,
            sleep=self._sleep,
        )
        async for ref in stream:
            refs.append(ref)
        logger.info("Listed %d %s record(s)", len(refs), self.entity.name)
        return refs, raw_rows

    def _detail_source(
        self, raw_rows: dict[str, dict[str, Any]]
    ) -> Callable[[str], Awaitable[dict[str, Any]]]:
        if self.entity.detail_from_listing:
            async def from_listing(external_id: str) -> dict[str, Any]:
                row = raw_rows.get(str(external_id))
                if row is None:
                    raise PermanentError(f"{external_id} missing from listing rows")
                return row

            return from_listing

        async def from_remote(external_id: str) -> dict[str, Any]:
            return await self.client.fetch_detail(self.entity.endpoint, external_id)

        return from_remote

    # -- public operations -------------------------------------------------

    async def check_status(
        self, scope_key: str, list_filter: ListFilter | None = None
    ) -> SyncStatus:
        """Preview a sync: run Listing and Classifying only.

        Raises:
            ListingError: If the listing pass fails.
        """
        scope_key = str(scope_key)
        with log_context(entity=self.entity.name, scope=scope_key):
            try:
                refs, _ = await self._list_snapshot(list_filter)
            except ListingError:
                self._state = RunState.ABORTED
                raise
            self._state = RunState.CLASSIFYING
            resolved_filter = self._listing_filter(list_filter)
            with self.connection_factory() as conn:
                ledger = LedgerRepository(conn).load_scope(self.entity.name, scope_key)
                in_database = RecordRepository(conn, self.entity).count_in_scope(
                    scope_key, resolved_filter.date_from, resolved_filter.date_to
                )
            classification = classify(refs, ledger, scope_key)
            self._state = RunState.IDLE
            limit = self.settings.sample_limit
            return SyncStatus(
                total=classification.total,
                new=len(classification.new),
                updated=len(classification.updated),
                unchanged=len(classification.unchanged),
                need_sync=classification.need_sync,
                in_database=in_database,
                new_samples=classification.new[:limit],
                updated_samples=classification.updated[:limit],
            )

    async def trigger_sync(
        self,
        scope_key: str,
        list_filter: ListFilter | None = None,
        mode: SyncMode | str = SyncMode.MISSING_ONLY,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        max_retries: int | None = None,
    ) -> SyncReport:
        """Run a full sync and return its report.

        Per-record fetch and persist failures are counted in the report; the
        run still ends with status ``success``. A cancelled run ends with
        status ``cancelled``.

        Raises:
            SyncAbortedError: If the listing pass fails. Its ``report`` shows
                zero progress.
        """
        scope_key = str(scope_key)
        sync_mode = SyncMode.parse(mode)
        resolved_filter = self._listing_filter(list_filter)
        self._abort_requested = False
        started_at = iso_utcnow()
        started = time.monotonic()

        with self.connection_factory() as conn:
            runs = SyncRunRepository(conn)
            run_id = runs.start(
                self.entity.name,
                scope_key,
                sync_mode.value,
                date_from=resolved_filter.date_from,
                date_to=resolved_filter.date_to,
                started_at=started_at,
            )
            with log_context(entity=self.entity.name, scope=scope_key, run_id=run_id):
                logger.info("Starting %s sync (mode=%s)", self.entity.name, sync_mode.value)
                try:
                    return await self._run(
                        conn,
                        runs,
                        run_id=run_id,
                        scope_key=scope_key,
                        list_filter=resolved_filter,
                        mode=sync_mode,
                        batch_size=batch_size,
                        batch_delay=batch_delay,
                        max_retries=max_retries,
                        started_at=started_at,
                        started=started,
                    )
                except SyncAbortedError:
                    raise
                except Exception as exc:
                    self._state = RunState.IDLE
                    conn.rollback()
                    log_exception(logger, "Sync run failed", exc)
                    runs.finish(run_id, "failed", error_message=str(exc))
                    record_sync_run(
                        self.entity.name, scope_key, "failed",
                        time.monotonic() - started, 0, 0,
                    )
                    raise

    async def _run(
        self,
        conn: sqlite3.Connection,
        runs: SyncRunRepository,
        *,
        run_id: int,
        scope_key: str,
        list_filter: ListFilter,
        mode: SyncMode,
        batch_size: int | None,
        batch_delay: float | None,
        max_retries: int | None,
        started_at: str,
        started: float,
    ) -> SyncReport:
        try:
            refs, raw_rows = await self._list_snapshot(list_filter)
        except ListingError as exc:
            self._state = RunState.ABORTED
            duration = time.monotonic() - started
            report = SyncReport(
                entity=self.entity.name,
                scope=scope_key,
                mode=mode.value,
                status="aborted",
                duration_ms=int(duration * 1000),
                started_at=started_at,
                finished_at=iso_utcnow(),
                run_id=run_id,
                error=str(exc),
            )
            logger.error("Listing failed, aborting run: %s", exc)
            runs.finish(run_id, "aborted", error_message=str(exc),
                        finished_at=report.finished_at)
            record_sync_run(self.entity.name, scope_key, "aborted", duration, 0, 0)
            raise SyncAbortedError(f"Listing failed: {exc}", report) from exc

        self._state = RunState.CLASSIFYING
        ledger = LedgerRepository(conn).load_scope(self.entity.name, scope_key)
        classification = classify(refs, ledger, scope_key)
        if mode is SyncMode.ALL:
            to_fetch = dedupe_snapshot(refs)
        else:
            to_fetch = classification.refs_to_sync()
        logger.info(
            "Classified: %(total)d total, %(new)d new, %(updated)d updated, "
            "%(unchanged)d unchanged",
            classification.counts(),
        )

        self._state = RunState.FETCHING
        pipeline = DetailFetchPipeline(
            self._detail_source(raw_rows),
            batch_size=batch_size or self.settings.batch_size,
            batch_delay=self.settings.batch_delay if batch_delay is None else batch_delay,
            max_retries=self.settings.max_retries if max_retries is None else max_retries,
            retry_base_delay=self.settings.retry_base_delay,
            sleep=self._sleep,
            on_outcome=self._record_fetch_metric,
        )
        outcomes = await pipeline.run(to_fetch, should_stop=self._should_stop)

        self._state = RunState.PERSISTING
        upserter = PersistenceUpserter(
            conn, self.entity, scope_key, scope_name=self.scope_name
        )
        synced = 0
        cancelled = 0
        failures: list[FailureSample] = []
        for outcome in outcomes:
            if outcome.ok:
                result = upserter.persist(outcome)
                if result.ok:
                    synced += 1
                else:
                    failures.append(
                        FailureSample(
                            external_id=outcome.external_id,
                            error_kind=ErrorKind.PERSISTENCE.value,
                            error=result.error,
                            attempts=outcome.attempts,
                        )
                    )
            elif outcome.error_kind is ErrorKind.CANCELLED:
                cancelled += 1
            else:
                failures.append(_failure_from_outcome(outcome))

        self._state = RunState.REPORTING
        status = "cancelled" if cancelled else "success"
        duration = time.monotonic() - started
        report = SyncReport(
            entity=self.entity.name,
            scope=scope_key,
            mode=mode.value,
            status=status,
            scanned=classification.total,
            new=len(classification.new),
            updated=len(classification.updated),
            unchanged=len(classification.unchanged),
            synced=synced,
            failed=len(failures),
            cancelled=cancelled,
            failed_samples=tuple(failures[: self.settings.sample_limit]),
            duration_ms=int(duration * 1000),
            started_at=started_at,
            finished_at=iso_utcnow(),
            run_id=run_id,
        )
        runs.finish(
            run_id,
            status,
            scanned=report.scanned,
            new=report.new,
            updated=report.updated,
            unchanged=report.unchanged,
            synced=synced,
            failed=report.failed,
            finished_at=report.finished_at,
        )
        record_sync_run(
            self.entity.name, scope_key, status, duration, synced, report.failed
        )
        logger.info(
            "Sync finished: %d synced, %d failed, %d cancelled in %.2fs",
            synced, report.failed, cancelled, duration,
        )
        self._state = RunState.IDLE
        return report

    def _record_fetch_metric(self, outcome: DetailFetchOutcome) -> None:
        label = "success" if outcome.ok else (outcome.error_kind or ErrorKind.PERMANENT).value
        record_detail_fetch(self.entity.name, label, outcome.attempts)


def _failure_from_outcome(outcome: DetailFetchOutcome) -> FailureSample:
    kind = outcome.error_kind or ErrorKind.PERMANENT
    return FailureSample(
        external_id=outcome.external_id,
        error_kind=kind.value,
        error=outcome.error,
        attempts=outcome.attempts,
    )
