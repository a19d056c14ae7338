from __future__ import annotations

from typing import Any

from ..connection import iso_utcnow
from .base import BaseRepository


class SyncRunRepository(BaseRepository):
    """Start/finish log of orchestrator runs (``sync_runs``)."""

    def start(
        self,
        entity: str,
        scope_key: str,
        mode: str,
        *,
        date_from: str | None = None,
        date_to: str | None = None,
        started_at: str | None = None,
    ) -> int:
        run_id = self._execute_insert(
            """
            INSERT INTO sync_runs (
                entity, scope_key, mode, started_at, status, date_from, date_to
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (entity, scope_key, mode, started_at or iso_utcnow(), "running",
             date_from, date_to),
        )
        if not run_id:
            raise RuntimeError("Failed to insert sync_runs record; lastrowid is None")
        self.conn.commit()
        return run_id

    def finish(
        self,
        run_id: int,
        status: str,
        *,
        scanned: int = 0,
        new: int = 0,
        updated: int = 0,
        unchanged: int = 0,
        synced: int = 0,
        failed: int = 0,
        error_message: str | None = None,
        finished_at: str | None = None,
    ) -> None:
        self._execute(
            """
            UPDATE sync_runs SET status = ?, finished_at = ?, scanned = ?,
                new_count = ?, updated_count = ?, unchanged_count = ?,
                synced_count = ?, failed_count = ?, error_message = ?
            WHERE id = ?
            """,
            (status, finished_at or iso_utcnow(), scanned, new, updated, unchanged,
             synced, failed, error_message, run_id),
        )
        self.conn.commit()

    def get(self, run_id: int) -> dict[str, Any] | None:
        return self._fetch_one_as_dict("SELECT * FROM sync_runs WHERE id = ?", (run_id,))

    def list_recent(
        self,
        *,
        entity: str | None = None,
        scope_key: str | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if entity:
            clauses.append("entity = ?")
            params.append(entity)
        if scope_key:
            clauses.append("scope_key = ?")
            params.append(scope_key)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(int(limit))
        return self._fetch_all_as_dicts(
            f"SELECT * FROM sync_runs {where} ORDER BY id DESC LIMIT ?", tuple(params)
        )
