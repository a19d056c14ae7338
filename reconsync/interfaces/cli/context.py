"""Shared helpers for composing CLI command contexts.

Resolves the configuration file and database path and builds SQLite
connection factories with the project defaults applied.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, ContextManager

from reconsync.app.config import ConfigHolder
from reconsync.infrastructure.db import default_db_path, get_connection


@dataclass(frozen=True)
class CLIContext:
    """Container for CLI dependencies and configuration paths."""

    db_path: Path
    config_holder: ConfigHolder
    connection_factory: Callable[[], ContextManager[sqlite3.Connection]]


def build_cli_context(
    config_path: str | Path | None = None, db_path: str | Path | None = None
) -> CLIContext:
    """Build the CLI context from the config file and an optional db override."""

    holder = ConfigHolder(config_path)
    if db_path is not None:
        resolved_db_path = Path(db_path).expanduser()
    elif holder.config.db_path:
        resolved_db_path = Path(holder.config.db_path)
    else:
        resolved_db_path = default_db_path()

    def connection_factory() -> ContextManager[sqlite3.Connection]:
        return get_connection(resolved_db_path)

    return CLIContext(
        db_path=resolved_db_path,
        config_holder=holder,
        connection_factory=connection_factory,
    )
