"""Domain layer: run-scoped types and the change classifier."""

from .classifier import classify, dedupe_snapshot, parse_version_token
from .models import (
    Classification,
    DetailFetchOutcome,
    ErrorKind,
    FailureSample,
    LedgerEntry,
    PersistResult,
    RemoteRecordRef,
    RunState,
    SyncMode,
    SyncReport,
    SyncStatus,
)

__all__ = [
    "Classification",
    "DetailFetchOutcome",
    "ErrorKind",
    "FailureSample",
    "LedgerEntry",
    "PersistResult",
    "RemoteRecordRef",
    "RunState",
    "SyncMode",
    "SyncReport",
    "SyncStatus",
    "classify",
    "dedupe_snapshot",
    "parse_version_token",
]
