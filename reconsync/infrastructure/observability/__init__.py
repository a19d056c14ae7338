"""Observability and logging facades."""

from .logging import (
    configure_logging,
    current_log_context,
    get_logger,
    log_context,
    log_exception,
)
from .metrics import (
    get_metrics,
    get_metrics_summary,
    record_detail_fetch,
    record_sync_run,
)

__all__ = [
    # Logging
    "configure_logging",
    "current_log_context",
    "get_logger",
    "log_context",
    "log_exception",
    # Metrics
    "get_metrics",
    "get_metrics_summary",
    "record_detail_fetch",
    "record_sync_run",
]
