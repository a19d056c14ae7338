"""Version ledger: the cheap (id, version) projection used for diffing."""

from __future__ import annotations

from reconsync.domain.models import LedgerEntry

from .base import BaseRepository


class LedgerRepository(BaseRepository):
    def load_scope(self, entity: str, scope_key: str) -> list[LedgerEntry]:
        """Return every ledger entry of ``entity`` within ``scope_key``."""
        rows = self._fetch_all_as_dicts(
            """
            SELECT external_id, scope_key, version_token, last_synced_at, display_number
            FROM sync_ledger
            WHERE entity = ? AND scope_key = ?
            """,
            (entity, scope_key),
        )
        return [
            LedgerEntry(
                external_id=str(row["external_id"]),
                scope_key=row["scope_key"],
                version_token=int(row["version_token"] or 0),
                last_synced_at=row["last_synced_at"],
                display_number=row["display_number"],
            )
            for row in rows
        ]

    def get(self, entity: str, scope_key: str, external_id: str) -> LedgerEntry | None:
        row = self._fetch_one_as_dict(
            """
            SELECT external_id, scope_key, version_token, last_synced_at, display_number
            FROM sync_ledger
            WHERE entity = ? AND scope_key = ? AND external_id = ?
            """,
            (entity, scope_key, str(external_id)),
        )
        if row is None:
            return None
        return LedgerEntry(
            external_id=str(row["external_id"]),
            scope_key=row["scope_key"],
            version_token=int(row["version_token"] or 0),
            last_synced_at=row["last_synced_at"],
            display_number=row["display_number"],
        )

    def record(self, entity: str, entry: LedgerEntry) -> None:
        """Insert or advance a ledger entry inside the caller's transaction."""
        self._execute(
            """
            INSERT INTO sync_ledger (
                entity, scope_key, external_id, version_token, display_number, last_synced_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (entity, scope_key, external_id) DO UPDATE SET
                version_token = excluded.version_token,
                display_number = excluded.display_number,
                last_synced_at = excluded.last_synced_at
            """,
            (
                entity,
                entry.scope_key,
                str(entry.external_id),
                int(entry.version_token),
                entry.display_number,
                entry.last_synced_at,
            ),
        )

    def count(self, entity: str, scope_key: str) -> int:
        return int(
            self._fetch_scalar(
                "SELECT COUNT(*) FROM sync_ledger WHERE entity = ? AND scope_key = ?",
                (entity, scope_key),
            )
            or 0
        )
