"""Domain models for the reconciliation sync engine.

All run-scoped types are frozen dataclasses. Only :class:`LedgerEntry`
outlives a single run; it mirrors one row of the ``sync_ledger`` table.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class SyncMode(str, Enum):
    """Which remote ids a sync run fetches."""

    MISSING_ONLY = "missing"
    ALL = "all"

    @classmethod
    def parse(cls, value: "SyncMode | str") -> "SyncMode":
        if isinstance(value, SyncMode):
            return value
        normalized = str(value).strip().lower()
        if normalized in ("missing", "missingonly", "missing_only"):
            return cls.MISSING_ONLY
        if normalized == "all":
            return cls.ALL
        raise ValueError(f"Unknown sync mode: {value!r}")


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    PERSISTENCE = "persistence"
    CANCELLED = "cancelled"


class RunState(str, Enum):
    """Phases of an orchestrator run."""

    IDLE = "idle"
    LISTING = "listing"
    CLASSIFYING = "classifying"
    FETCHING = "fetching"
    PERSISTING = "persisting"
    REPORTING = "reporting"
    ABORTED = "aborted"


@dataclass(frozen=True)
class RemoteRecordRef:
    """Listing-row projection of a remote record."""

    external_id: str
    display_number: str | None = None
    version_token: int = 0


@dataclass(frozen=True)
class LedgerEntry:
    external_id: str
    scope_key: str
    version_token: int
    last_synced_at: str | None = None
    display_number: str | None = None


@dataclass(frozen=True)
class Classification:
    """Disjoint New / Updated / Unchanged partition of a remote snapshot."""

    new: tuple[RemoteRecordRef, ...] = ()
    updated: tuple[RemoteRecordRef, ...] = ()
    unchanged: tuple[RemoteRecordRef, ...] = ()

    @property
    def total(self) -> int:
        return len(self.new) + len(self.updated) + len(self.unchanged)

    @property
    def need_sync(self) -> int:
        return len(self.new) + len(self.updated)

    def ids_to_sync(self) -> list[str]:
        return [ref.external_id for ref in (*self.new, *self.updated)]

    def refs_to_sync(self) -> list[RemoteRecordRef]:
        return [*self.new, *self.updated]

    def counts(self) -> dict[str, int]:
        return {
            "total": self.total,
            "new": len(self.new),
            "updated": len(self.updated),
            "unchanged": len(self.unchanged),
            "need_sync": self.need_sync,
        }


@dataclass(frozen=True)
class DetailFetchOutcome:
    """Result of fetching one record's detail, success or failure."""

    external_id: str
    payload: dict[str, Any] | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None
    attempts: int = 0
    version_token: int = 0

    @property
    def ok(self) -> bool:
        return self.error_kind is None and self.payload is not None

    @classmethod
    def cancelled(cls, external_id: str, version_token: int = 0) -> "DetailFetchOutcome":
        return cls(
            external_id=external_id,
            error_kind=ErrorKind.CANCELLED,
            error="Run cancelled before fetch",
            attempts=0,
            version_token=version_token,
        )


@dataclass(frozen=True)
class FailureSample:
    external_id: str
    error_kind: str
    error: str | None = None
    attempts: int = 0


@dataclass(frozen=True)
class PersistResult:
    """Outcome of persisting one fetched record."""

    external_id: str
    ok: bool
    error: str | None = None
    children_written: int = 0


@dataclass(frozen=True)
class SyncStatus:
    """Preview of sync cost returned by ``check_status``."""

    total: int
    new: int
    updated: int
    unchanged: int
    need_sync: int
    in_database: int
    new_samples: tuple[RemoteRecordRef, ...] = ()
    updated_samples: tuple[RemoteRecordRef, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {
                "total": self.total,
                "new": self.new,
                "updated": self.updated,
                "unchanged": self.unchanged,
                "need_sync": self.need_sync,
                "in_database": self.in_database,
            },
            "new_samples": [asdict(ref) for ref in self.new_samples],
            "updated_samples": [asdict(ref) for ref in self.updated_samples],
        }


@dataclass(frozen=True)
class SyncReport:
    """Terminal artifact of one orchestrator run."""

    entity: str
    scope: str
    mode: str
    status: str
    scanned: int = 0
    new: int = 0
    updated: int = 0
    unchanged: int = 0
    synced: int = 0
    failed: int = 0
    cancelled: int = 0
    failed_samples: tuple[FailureSample, ...] = field(default_factory=tuple)
    duration_ms: int = 0
    started_at: str | None = None
    finished_at: str | None = None
    run_id: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["failed_samples"] = [asdict(s) for s in self.failed_samples]
        return data
