from __future__ import annotations

import sqlite3
from pathlib import Path

from reconsync.entities import get_entity
from reconsync.infrastructure.db import ensure_schema, get_connection
from reconsync.infrastructure.db.repositories import SyncRunRepository
from reconsync.infrastructure.db.schema import CURRENT_SCHEMA_VERSION, SchemaMigrator


def _tables(conn: sqlite3.Connection) -> set[str]:
    return {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}


def test_ensure_schema_is_idempotent(tmp_path: Path) -> None:
    with get_connection(tmp_path / "schema.db") as conn:
        ensure_schema(conn)
        ensure_schema(conn)

        tables = _tables(conn)
        assert {"sync_ledger", "sync_runs", "sales_orders", "sales_order_items", "item_mutations"} <= tables
        assert SchemaMigrator(conn).get_version() == CURRENT_SCHEMA_VERSION


def test_older_header_table_gets_sync_columns(tmp_path: Path) -> None:
    with get_connection(tmp_path / "legacy.db") as conn:
        conn.execute(
            "CREATE TABLE item_mutations ("
            "id INTEGER PRIMARY KEY AUTOINCREMENT, mutation_id TEXT NOT NULL, "
            "branch_id TEXT NOT NULL, trans_date TEXT, UNIQUE (mutation_id, branch_id))"
        )
        conn.commit()

        ensure_schema(conn, entities=[get_entity("stock-mutation")])

        columns = {row[1] for row in conn.execute("PRAGMA table_info(item_mutations)")}
        assert {"opt_lock", "raw_data", "synced_at"} <= columns
        assert SchemaMigrator(conn).has_migration("add_item_mutations_sync_columns_v1")


def test_sql_migrations_are_applied_once(tmp_path: Path) -> None:
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "001_notes.sql").write_text(
        "CREATE TABLE sync_notes (id INTEGER PRIMARY KEY, note TEXT);", encoding="utf-8"
    )
    (migrations / "README.txt").write_text("ignored", encoding="utf-8")

    with get_connection(tmp_path / "migrate.db") as conn:
        ensure_schema(conn, migrations_dir=migrations)
        ensure_schema(conn, migrations_dir=migrations)

        assert "sync_notes" in _tables(conn)
        names = [row[0] for row in conn.execute("SELECT name FROM schema_migrations")]
        assert names == ["001_notes.sql"]


def test_sync_runs_start_and_finish(tmp_path: Path) -> None:
    with get_connection(tmp_path / "runs.db") as conn:
        ensure_schema(conn)
        runs = SyncRunRepository(conn)

        run_id = runs.start("sales-order", "BR01", "missing", date_from="2024-03-01")
        runs.finish(run_id, "success", scanned=5, synced=4, failed=1)

        row = runs.get(run_id)
        assert row["status"] == "success"
        assert (row["scanned"], row["synced_count"], row["failed_count"]) == (5, 4, 1)
        assert row["finished_at"] is not None
        assert [r["id"] for r in runs.list_recent(entity="sales-order")] == [run_id]
        assert runs.list_recent(scope_key="BR02") == []
