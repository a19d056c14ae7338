from .base import BaseRepository
from .ledger import LedgerRepository
from .records import RecordRepository
from .sync_runs import SyncRunRepository

__all__ = [
    "BaseRepository",
    "LedgerRepository",
    "RecordRepository",
    "SyncRunRepository",
]
