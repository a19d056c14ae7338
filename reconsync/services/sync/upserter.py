"""Idempotent, per-record persistence of fetched details."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterable

from reconsync.domain.models import DetailFetchOutcome, LedgerEntry, PersistResult
from reconsync.entities.base import EntitySpec, MappingError
from reconsync.infrastructure.db.connection import iso_utcnow
from reconsync.infrastructure.db.repositories import LedgerRepository, RecordRepository
from reconsync.infrastructure.observability.logging import get_logger, log_context

logger = get_logger(__name__)


class PersistenceUpserter:
    """Write successful fetch outcomes one record per transaction.

    Each record's header upsert, child reconciliation and ledger update share
    a single transaction, so the ledger only advances when the record's rows
    are committed. A failing record is rolled back alone.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        entity: EntitySpec,
        scope_key: str,
        *,
        scope_name: str | None = None,
        clock: Callable[[], str] = iso_utcnow,
    ) -> None:
        self.conn = conn
        self.entity = entity
        self.scope_key = str(scope_key)
        self.scope_name = scope_name
        self.clock = clock
        self.records = RecordRepository(conn, entity)
        self.ledger = LedgerRepository(conn)

    def persist(self, outcome: DetailFetchOutcome) -> PersistResult:
        """Persist one successful outcome.

        Mapping and SQL errors are caught, rolled back and returned as a
        failed :class:`PersistResult`; they never propagate.
        """
        if not outcome.ok or outcome.payload is None:
            raise ValueError(f"Cannot persist unsuccessful outcome for {outcome.external_id}")

        synced_at = self.clock()
        try:
            mapped = self.entity.map_payload(outcome.payload, self.scope_key, self.scope_name)
            header = dict(mapped.header)
            header["synced_at"] = synced_at
            with self.conn:
                self.records.upsert_header(header)
                written = self.records.apply_children(header, mapped.children)
                self.ledger.record(
                    self.entity.name,
                    LedgerEntry(
                        external_id=str(outcome.external_id),
                        scope_key=self.scope_key,
                        version_token=max(
                            int(outcome.version_token), int(header.get("opt_lock") or 0)
                        ),
                        last_synced_at=synced_at,
                        display_number=_display_number(outcome),
                    ),
                )
        except (MappingError, sqlite3.Error, KeyError, TypeError, ValueError) as exc:
            with log_context(record=outcome.external_id):
                logger.warning("Persist failed for %s: %s", self.entity.name, exc)
            return PersistResult(external_id=outcome.external_id, ok=False, error=str(exc))
        return PersistResult(
            external_id=outcome.external_id, ok=True, children_written=written
        )

    def persist_many(self, outcomes: Iterable[DetailFetchOutcome]) -> list[PersistResult]:
        return [self.persist(outcome) for outcome in outcomes if outcome.ok]


def _display_number(outcome: DetailFetchOutcome) -> str | None:
    number = (outcome.payload or {}).get("number")
    return None if number is None else str(number)
