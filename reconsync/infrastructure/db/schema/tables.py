from __future__ import annotations

SCHEMA_VERSION_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""

SCHEMA_MIGRATIONS_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    applied_at TEXT NOT NULL,
    notes TEXT
);
"""

SCHEMA_SYNC_LEDGER_SQL = """
CREATE TABLE IF NOT EXISTS sync_ledger (
    entity TEXT NOT NULL,
    scope_key TEXT NOT NULL,
    external_id TEXT NOT NULL,
    version_token INTEGER NOT NULL DEFAULT 0,
    display_number TEXT,
    last_synced_at TEXT NOT NULL,
    PRIMARY KEY (entity, scope_key, external_id)
);
"""

SCHEMA_SYNC_RUNS_SQL = """
CREATE TABLE IF NOT EXISTS sync_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity TEXT NOT NULL,
    scope_key TEXT NOT NULL,
    mode TEXT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    status TEXT,
    scanned INTEGER DEFAULT 0,
    new_count INTEGER DEFAULT 0,
    updated_count INTEGER DEFAULT 0,
    unchanged_count INTEGER DEFAULT 0,
    synced_count INTEGER DEFAULT 0,
    failed_count INTEGER DEFAULT 0,
    date_from TEXT,
    date_to TEXT,
    error_message TEXT
);
CREATE INDEX IF NOT EXISTS idx_sync_runs_entity_scope ON sync_runs (entity, scope_key);
"""
