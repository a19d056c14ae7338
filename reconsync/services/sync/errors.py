"""Run-level errors raised by the sync services."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reconsync.domain.models import SyncReport


class SyncError(Exception):
    """Base class for sync service errors."""


class SyncAbortedError(SyncError):
    """The run aborted during listing; nothing was fetched or persisted.

    ``report`` carries the zero-progress report with status ``aborted``.
    """

    def __init__(self, message: str, report: "SyncReport") -> None:
        super().__init__(message)
        self.report = report


class UnknownEntityError(SyncError, KeyError):
    def __str__(self) -> str:
        return f"Unknown entity: {self.args[0]}"


class UnknownBranchError(SyncError, KeyError):
    def __str__(self) -> str:
        return f"Unknown or inactive branch: {self.args[0]}"


__all__ = [
    "SyncAbortedError",
    "SyncError",
    "UnknownBranchError",
    "UnknownEntityError",
]
