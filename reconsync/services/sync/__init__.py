"""Reconciliation sync engine: retry, detail pipeline, upserter, orchestrator."""

from .errors import (
    SyncAbortedError,
    SyncError,
    UnknownBranchError,
    UnknownEntityError,
)
from .orchestrator import SyncOrchestrator, SyncSettings
from .pipeline import DetailFetchPipeline
from .retry import RetryError, backoff_delay, retry_with_backoff
from .upserter import PersistenceUpserter

__all__ = [
    "DetailFetchPipeline",
    "PersistenceUpserter",
    "RetryError",
    "SyncAbortedError",
    "SyncError",
    "SyncOrchestrator",
    "SyncSettings",
    "UnknownBranchError",
    "UnknownEntityError",
    "backoff_delay",
    "retry_with_backoff",
]
