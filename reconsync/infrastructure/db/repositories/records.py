"""Generic header/child row writer driven by an :class:`EntitySpec`."""

from __future__ import annotations

from typing import Any, Mapping

from reconsync.entities.base import ChildPolicy, EntitySpec

from .base import BaseRepository


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class RecordRepository(BaseRepository):
    """Writes one entity's header and child rows.

    Table and column names come from the entity spec and the mapper output,
    never from remote data, so they are safe to interpolate.
    """

    def __init__(self, conn, spec: EntitySpec) -> None:
        super().__init__(conn)
        self.spec = spec

    def upsert_header(self, header: Mapping[str, Any]) -> None:
        """Insert the header or overwrite its mutable columns on key conflict."""
        key_columns = self.spec.header_key
        columns = list(header.keys())
        mutable = [c for c in columns if c not in key_columns]
        assignments = ", ".join(f"{c} = excluded.{c}" for c in mutable)
        conflict_action = f"DO UPDATE SET {assignments}" if mutable else "DO NOTHING"
        self._execute(
            f"INSERT INTO {self.spec.header_table} ({', '.join(columns)}) "
            f"VALUES ({_placeholders(len(columns))}) "
            f"ON CONFLICT ({', '.join(key_columns)}) {conflict_action}",
            tuple(header[c] for c in columns),
        )

    def apply_children(
        self, parent_key: Mapping[str, Any], children: list[dict[str, Any]]
    ) -> int:
        """Reconcile child rows according to the entity's child policy.

        Returns the number of child rows inserted or updated.
        """
        policy = self.spec.child_policy
        if policy is ChildPolicy.NONE or not self.spec.child_table:
            return 0

        if policy is ChildPolicy.REPLACE_ALL:
            self._delete_children(parent_key)
            return sum(self._insert_child(row, None) for row in children)
        if policy is ChildPolicy.MERGE_BY_SEQUENCE:
            return sum(self._insert_child(row, "update") for row in children)
        if policy is ChildPolicy.APPEND_ONLY:
            return sum(self._insert_child(row, "nothing") for row in children)
        raise ValueError(f"Unsupported child policy: {policy}")

    def _delete_children(self, parent_key: Mapping[str, Any]) -> None:
        link_columns = self.spec.child_parent_columns
        header_columns = self.spec.header_key
        where = " AND ".join(f"{c} = ?" for c in link_columns)
        self._execute(
            f"DELETE FROM {self.spec.child_table} WHERE {where}",
            tuple(parent_key[h] for h in header_columns),
        )

    def _insert_child(self, row: Mapping[str, Any], on_conflict: str | None) -> int:
        columns = list(row.keys())
        sql = (
            f"INSERT INTO {self.spec.child_table} ({', '.join(columns)}) "
            f"VALUES ({_placeholders(len(columns))})"
        )
        if on_conflict is not None:
            key = self.spec.child_key
            mutable = [c for c in columns if c not in key]
            if on_conflict == "update" and mutable:
                assignments = ", ".join(f"{c} = excluded.{c}" for c in mutable)
                sql += f" ON CONFLICT ({', '.join(key)}) DO UPDATE SET {assignments}"
            else:
                sql += f" ON CONFLICT ({', '.join(key)}) DO NOTHING"
        cur = self._execute(sql, tuple(row[c] for c in columns))
        return max(cur.rowcount, 0)

    def count_children(self, parent_key: Mapping[str, Any]) -> int:
        if not self.spec.child_table:
            return 0
        where = " AND ".join(f"{c} = ?" for c in self.spec.child_parent_columns)
        return int(
            self._fetch_scalar(
                f"SELECT COUNT(*) FROM {self.spec.child_table} WHERE {where}",
                tuple(parent_key[h] for h in self.spec.header_key),
            )
            or 0
        )

    def get_header(self, external_id: str, scope_key: str) -> dict[str, Any] | None:
        return self._fetch_one_as_dict(
            f"SELECT * FROM {self.spec.header_table} "
            f"WHERE {self.spec.id_column} = ? AND {self.spec.scope_column} = ?",
            (str(external_id), scope_key),
        )

    def count_in_scope(
        self,
        scope_key: str,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> int:
        """Count stored headers in scope, optionally within a date range."""
        clauses = [f"{self.spec.scope_column} = ?"]
        params: list[Any] = [scope_key]
        if date_from and self.spec.date_column:
            clauses.append(f"{self.spec.date_column} >= ?")
            params.append(date_from)
        if date_to and self.spec.date_column:
            clauses.append(f"{self.spec.date_column} <= ?")
            params.append(date_to)
        return int(
            self._fetch_scalar(
                f"SELECT COUNT(*) FROM {self.spec.header_table} WHERE {' AND '.join(clauses)}",
                tuple(params),
            )
            or 0
        )
