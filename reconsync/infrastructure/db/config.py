from __future__ import annotations

import os
from pathlib import Path

DEFAULT_DB_TIMEOUT = 30.0
DEFAULT_DB_FILENAME = "reconsync.db"
DB_PATH_ENV = "RECONSYNC_DB_PATH"
DB_TIMEOUT_ENV = "RECONSYNC_DB_TIMEOUT"


def default_db_path() -> Path:
    """Return the database path from ``RECONSYNC_DB_PATH`` or the working dir."""

    raw = os.environ.get(DB_PATH_ENV)
    if raw:
        return Path(raw).expanduser()
    return Path.cwd() / DEFAULT_DB_FILENAME


def get_default_timeout() -> float:
    """Read the preferred database timeout from the environment."""

    try:
        return float(os.environ.get(DB_TIMEOUT_ENV, DEFAULT_DB_TIMEOUT))
    except (TypeError, ValueError):
        return DEFAULT_DB_TIMEOUT
