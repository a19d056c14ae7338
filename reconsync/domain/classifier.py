"""Change classification of a remote snapshot against the version ledger.

Everything here is pure: no I/O and no clock, so the functions can be
property-tested directly.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from .models import Classification, LedgerEntry, RemoteRecordRef


def parse_version_token(value: Any) -> int:
    """Coerce a version token to ``int``; missing or non-numeric means 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return 0


def dedupe_snapshot(remote: Iterable[RemoteRecordRef]) -> list[RemoteRecordRef]:
    """Collapse repeated ids, keeping the highest version at the first position.

    Pagination drift on the remote side can return the same record on two
    pages; only one ref per id may survive.
    """
    order: list[str] = []
    best: dict[str, RemoteRecordRef] = {}
    for ref in remote:
        key = str(ref.external_id)
        current = best.get(key)
        if current is None:
            order.append(key)
            best[key] = ref
        elif parse_version_token(ref.version_token) > parse_version_token(
            current.version_token
        ):
            best[key] = ref
    return [best[key] for key in order]


def _index_ledger(
    ledger: Iterable[LedgerEntry] | Mapping[str, LedgerEntry], scope_key: str
) -> dict[str, LedgerEntry]:
    entries = ledger.values() if isinstance(ledger, Mapping) else ledger
    return {
        str(entry.external_id): entry
        for entry in entries
        if str(entry.scope_key) == str(scope_key)
    }


def classify(
    remote: Iterable[RemoteRecordRef],
    ledger: Iterable[LedgerEntry] | Mapping[str, LedgerEntry],
    scope_key: str,
) -> Classification:
    """Partition ``remote`` into New, Updated and Unchanged refs.

    Ledger entries are matched on ``(external_id, scope_key)``; entries from
    other scopes are ignored. Display numbers never take part in matching.
    """
    indexed = _index_ledger(ledger, scope_key)
    new: list[RemoteRecordRef] = []
    updated: list[RemoteRecordRef] = []
    unchanged: list[RemoteRecordRef] = []

    for ref in dedupe_snapshot(remote):
        entry = indexed.get(str(ref.external_id))
        if entry is None:
            new.append(ref)
        elif parse_version_token(ref.version_token) > parse_version_token(
            entry.version_token
        ):
            updated.append(ref)
        else:
            unchanged.append(ref)

    return Classification(new=tuple(new), updated=tuple(updated), unchanged=tuple(unchanged))
