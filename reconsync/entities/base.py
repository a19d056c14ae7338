"""Entity definition interface shared by every synced business entity.

An :class:`EntitySpec` tells the generic engine where an entity lives on the
remote side, which tables hold it locally, how a detail payload maps into a
header row plus child rows, and which child policy applies on re-sync.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping


class ChildPolicy(str, Enum):
    """How a record's child rows are reconciled when the record is re-synced."""

    REPLACE_ALL = "replace_all"
    MERGE_BY_SEQUENCE = "merge_by_sequence"
    APPEND_ONLY = "append_only"
    NONE = "none"


class MappingError(ValueError):
    """Raised when a detail payload cannot be mapped to storage rows."""


@dataclass(frozen=True)
class MappedRecord:
    header: dict[str, Any]
    children: list[dict[str, Any]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def dig(payload: Mapping[str, Any] | None, path: str, default: Any = None) -> Any:
    """Return a nested value addressed by a dotted path, or ``default``.

    Numeric segments index into lists (``"salesmanList.0.name"``).
    """
    current: Any = payload
    for part in path.split("."):
        if current is None:
            return default
        if isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return default
        elif isinstance(current, Mapping):
            current = current.get(part)
        else:
            return default
    return default if current is None else current


def first_of(payload: Mapping[str, Any], *paths: str, default: Any = None) -> Any:
    """Return the first non-empty value among ``paths``."""
    for path in paths:
        value = dig(payload, path)
        if value not in (None, ""):
            return value
    return default


def detail_lines(payload: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    """Return the child line objects stored under ``key``.

    Raises:
        MappingError: If ``key`` holds something other than a list of objects.
    """
    lines = payload.get(key)
    if lines is None:
        return []
    if not isinstance(lines, list):
        raise MappingError(f"{key} is not a list")
    for position, line in enumerate(lines, start=1):
        if not isinstance(line, Mapping):
            raise MappingError(f"{key} line {position} is not an object")
    return lines


def remote_date_to_iso(value: str | None) -> str | None:
    """Convert ``dd/mm/yyyy`` (optionally followed by a time) to ``yyyy-mm-dd``."""
    if not value:
        return None
    date_part = str(value).strip().split(" ")[0]
    parts = date_part.split("/")
    if len(parts) != 3 or not all(parts):
        return None
    day, month, year = parts
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def iso_to_remote_date(value: str | date | None) -> str | None:
    """Convert an ISO date (``yyyy-mm-dd``) to the remote ``dd/mm/yyyy`` form."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    try:
        parsed = date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid ISO date: {value!r}") from exc
    return parsed.strftime("%d/%m/%Y")


def as_number(value: Any, default: float = 0) -> float:
    if value in (None, ""):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Entity interface
# ---------------------------------------------------------------------------


class EntitySpec:
    """Base class for entity definitions.

    Subclasses set the class attributes and implement :meth:`map_header` and,
    when the entity has child rows, :meth:`map_children`.
    """

    name: str = ""
    description: str = ""
    endpoint: str = ""
    header_table: str = ""
    id_column: str = ""
    scope_column: str = "branch_id"
    child_table: str | None = None
    child_policy: ChildPolicy = ChildPolicy.NONE
    # Columns linking a child row to its header, named as on the child table.
    child_parent_columns: tuple[str, ...] = ()
    # Natural child key (parent columns plus a discriminator) for merge/append.
    child_key: tuple[str, ...] = ()
    # Master data (customers, items) has no date filter; None lists everything.
    date_filter_type: str | None = "transDate"
    date_column: str | None = "trans_date"
    # Listing rows already carry the full record; no detail fetch is needed.
    detail_from_listing: bool = False
    # Only a lower date bound is sent when no upper bound is given.
    open_ended_dates: bool = False
    supports_warehouse_filter: bool = False
    schema_sql: str = ""

    @property
    def header_key(self) -> tuple[str, str]:
        return (self.id_column, self.scope_column)

    def map_header(
        self, payload: Mapping[str, Any], scope_key: str, scope_name: str | None
    ) -> dict[str, Any]:
        raise NotImplementedError

    def map_children(self, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        return []

    def map_payload(
        self,
        payload: Mapping[str, Any],
        scope_key: str,
        scope_name: str | None = None,
    ) -> MappedRecord:
        """Map a detail payload to a header row and its child rows.

        The header always carries the external id, scope key, version token
        and the raw payload as JSON.
        """
        if not isinstance(payload, Mapping):
            raise MappingError(f"{self.name}: payload is not an object")
        record_id = payload.get("id")
        if record_id in (None, ""):
            raise MappingError(f"{self.name}: payload has no id")

        try:
            header = dict(self.map_header(payload, scope_key, scope_name))
        except MappingError:
            raise
        except Exception as exc:
            raise MappingError(f"{self.name} {record_id}: cannot map header: {exc}") from exc
        header[self.id_column] = str(record_id)
        header[self.scope_column] = scope_key
        header.setdefault("opt_lock", int(as_number(payload.get("optLock"))))
        header["raw_data"] = json.dumps(payload, sort_keys=True, default=str)

        children = []
        if self.child_policy is not ChildPolicy.NONE:
            parent_values = {
                column: header[column]
                for column in (self.id_column, self.scope_column)
            }
            try:
                mapped_children = list(self.map_children(payload))
            except MappingError as exc:
                raise MappingError(f"{self.name} {record_id}: {exc}") from exc
            except Exception as exc:
                raise MappingError(
                    f"{self.name} {record_id}: cannot map child rows: {exc}"
                ) from exc
            for child in mapped_children:
                if not isinstance(child, Mapping):
                    raise MappingError(f"{self.name} {record_id}: child row is not a mapping")
                row = dict(child)
                for link_column, header_column in zip(
                    self.child_parent_columns, (self.id_column, self.scope_column)
                ):
                    row[link_column] = parent_values[header_column]
                children.append(row)
            self._check_child_keys(children)
        return MappedRecord(header=header, children=children)

    def _check_child_keys(self, children: list[dict[str, Any]]) -> None:
        if self.child_policy not in (
            ChildPolicy.MERGE_BY_SEQUENCE,
            ChildPolicy.APPEND_ONLY,
        ):
            return
        seen: set[tuple[Any, ...]] = set()
        for row in children:
            key = tuple(row.get(column) for column in self.child_key)
            if any(part is None for part in key):
                raise MappingError(
                    f"{self.name}: child row missing key columns {self.child_key}"
                )
            if key in seen:
                raise MappingError(f"{self.name}: duplicate child key {key}")
            seen.add(key)

    def __repr__(self) -> str:
        return f"<EntitySpec {self.name}>"


__all__ = [
    "ChildPolicy",
    "EntitySpec",
    "MappedRecord",
    "MappingError",
    "as_number",
    "detail_lines",
    "dig",
    "first_of",
    "iso_to_remote_date",
    "remote_date_to_iso",
]
