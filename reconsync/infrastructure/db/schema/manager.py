from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from reconsync.entities import EntitySpec, available_entities

from .migrations import SchemaMigrator
from .tables import SCHEMA_SYNC_LEDGER_SQL, SCHEMA_SYNC_RUNS_SQL

# Columns every entity header table must carry; older databases predate some.
_HEADER_COLUMNS = {
    "opt_lock": "INTEGER DEFAULT 0",
    "raw_data": "TEXT",
    "synced_at": "TEXT",
}


def ensure_schema(
    conn,
    entities: Iterable[EntitySpec] | None = None,
    migrations_dir: str | Path | None = None,
) -> None:
    """Apply the full database schema (engine tables + entity tables)."""

    migrator = SchemaMigrator(conn)
    migrator.ensure_table()
    migrator.ensure_current_version()
    conn.executescript(SCHEMA_SYNC_LEDGER_SQL)
    conn.executescript(SCHEMA_SYNC_RUNS_SQL)
    for spec in entities if entities is not None else available_entities():
        conn.executescript(spec.schema_sql)
        _ensure_header_columns(conn, migrator, spec)
    migrator.apply_path(migrations_dir)
    conn.commit()


def _ensure_header_columns(conn, migrator: SchemaMigrator, spec: EntitySpec) -> None:
    table = spec.header_table
    existing = {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
    added_cols: list[str] = []
    for column, column_type in _HEADER_COLUMNS.items():
        if column in existing:
            continue
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
        added_cols.append(column)
    if added_cols:
        migration_name = f"add_{table}_sync_columns_v1"
        if not migrator.has_migration(migration_name):
            migrator.record(migration_name, ",".join(added_cols))
