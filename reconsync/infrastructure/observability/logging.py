"""Logging setup for sync runs.

Every log line emitted inside a run carries the run's scope. The
:class:`SyncRunFormatter` renders the run-scoped fields (entity, scope, run
id, record id) as a compact tag such as ``[sales-order@BR01 run=12 id=55]``
and appends any other context fields after it.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

# Rendered in the run tag, in this order; everything else follows as k=v.
RUN_FIELDS = ("entity", "scope", "run_id", "record")


def run_tag(fields: dict[str, Any]) -> str:
    """Render context fields as ``entity@scope run=N id=X k=v``."""
    parts = []
    entity, scope = fields.get("entity"), fields.get("scope")
    if entity is not None and scope is not None:
        parts.append(f"{entity}@{scope}")
    elif entity is not None:
        parts.append(str(entity))
    elif scope is not None:
        parts.append(f"@{scope}")
    if fields.get("run_id") is not None:
        parts.append(f"run={fields['run_id']}")
    if fields.get("record") is not None:
        parts.append(f"id={fields['record']}")
    parts.extend(
        f"{key}={value}" for key, value in fields.items() if key not in RUN_FIELDS
    )
    return " ".join(parts)


class SyncRunFormatter(logging.Formatter):
    """Formatter that tags each message with the active run context."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        tag = run_tag(_log_context.get())
        return f"{message} [{tag}]" if tag else message


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Add fields to every log line emitted inside the block.

    ``None`` values are dropped so optional ids can be passed straight
    through. Fields merge with the enclosing context and are restored on exit.
    """
    merged = {**_log_context.get()}
    merged.update({key: value for key, value in fields.items() if value is not None})
    token = _log_context.set(merged)
    try:
        yield
    finally:
        _log_context.reset(token)


def current_log_context() -> dict[str, Any]:
    return dict(_log_context.get())


_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    """Install the run-tagging handler on the root logger. Idempotent."""
    global _configured
    if _configured:
        return
    _configured = True

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(SyncRunFormatter(_FORMAT))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger, falling back to a tagged stderr handler if unconfigured."""
    logger = logging.getLogger(name)
    if not _configured and not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(SyncRunFormatter(_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def log_exception(
    logger: logging.Logger, message: str, exc: BaseException, **context: Any
) -> None:
    """Log ``exc`` with its traceback under the current run context plus ``context``."""
    with log_context(**context):
        logger.exception("%s: %s", message, exc)
