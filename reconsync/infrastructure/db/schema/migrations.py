from __future__ import annotations

from pathlib import Path

from ..connection import iso_utcnow
from .tables import SCHEMA_MIGRATIONS_SQL, SCHEMA_VERSION_SQL


# Current schema version - increment when making structural changes.
CURRENT_SCHEMA_VERSION = 2


class SchemaMigrator:
    """Lightweight migration runner backed by ``schema_migrations``.

    Named migrations (SQL scripts or ad-hoc column additions triggered from
    code) are recorded once in ``schema_migrations``. The integer version in
    ``schema_version`` tracks ``CURRENT_SCHEMA_VERSION``.
    """

    def __init__(self, conn) -> None:
        self.conn = conn

    # -------------------------------------------------------------------------
    # Schema version tracking
    # -------------------------------------------------------------------------

    def ensure_version_table(self) -> None:
        self.conn.executescript(SCHEMA_VERSION_SQL)

    def get_version(self) -> int | None:
        """Return the current schema version, or None if not set."""
        self.ensure_version_table()
        row = self.conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        return row[0] if row else None

    def set_version(self, version: int) -> None:
        self.ensure_version_table()
        self.conn.execute("DELETE FROM schema_version")
        self.conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (version, iso_utcnow()),
        )

    def ensure_current_version(self) -> None:
        current = self.get_version()
        if current is None or current < CURRENT_SCHEMA_VERSION:
            self.set_version(CURRENT_SCHEMA_VERSION)

    # -------------------------------------------------------------------------
    # Migration tracking (by name)
    # -------------------------------------------------------------------------

    def ensure_table(self) -> None:
        self.conn.executescript(SCHEMA_MIGRATIONS_SQL)

    def has_migration(self, name: str) -> bool:
        cur = self.conn.execute(
            "SELECT 1 FROM schema_migrations WHERE name = ?", (name,)
        )
        return cur.fetchone() is not None

    def record(self, name: str, notes: str | None = None) -> None:
        self.conn.execute(
            "INSERT INTO schema_migrations (name, applied_at, notes) VALUES (?, ?, ?)",
            (name, iso_utcnow(), notes),
        )

    def apply_sql(self, name: str, sql: str, notes: str | None = None) -> None:
        self.ensure_table()
        if self.has_migration(name) or not sql.strip():
            return
        self.conn.executescript(sql)
        self.record(name, notes)

    def apply_path(self, migrations_dir: str | Path | None) -> None:
        """Apply every ``*.sql`` file in ``migrations_dir`` in lexical order."""
        self.ensure_table()
        if migrations_dir is None:
            return
        migrations_path = Path(migrations_dir)
        if not migrations_path.is_dir():
            return
        for path in sorted(migrations_path.iterdir()):
            if not path.is_file() or not path.name.lower().endswith(".sql"):
                continue
            if self.has_migration(path.name):
                continue
            sql = path.read_text(encoding="utf-8")
            self.apply_sql(path.name, sql, notes=f"applied from {path}")
