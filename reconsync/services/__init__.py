"""Service layer: sync engine and the branch/entity facade over it."""

from .sync_service import SyncRunSummary, SyncService, build_list_filter

__all__ = ["SyncRunSummary", "SyncService", "build_list_filter"]
