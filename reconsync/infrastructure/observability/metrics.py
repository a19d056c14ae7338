"""In-process tallies of sync runs and detail fetches.

Runs are tallied per ``(entity, scope)`` pair and detail fetches per entity.
Nothing is exported; the tallies live for the lifetime of the process and can
be summarised for logging or the CLI.
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field, replace


@dataclass
class RunTally:
    """Accumulated results of every run for one entity in one scope."""

    by_status: Counter = field(default_factory=Counter)
    synced: int = 0
    failed: int = 0
    total_duration: float = 0.0

    @property
    def runs(self) -> int:
        return sum(self.by_status.values())

    @property
    def avg_duration(self) -> float:
        return self.total_duration / self.runs if self.runs else 0.0


@dataclass
class FetchTally:
    """Detail fetch outcomes for one entity; ``attempts`` includes retries."""

    by_outcome: Counter = field(default_factory=Counter)
    attempts: int = 0

    @property
    def fetches(self) -> int:
        return sum(self.by_outcome.values())


class SyncMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: dict[tuple[str, str], RunTally] = {}
        self._fetches: dict[str, FetchTally] = {}

    def record_run(
        self, entity: str, scope: str, status: str, duration: float, synced: int, failed: int
    ) -> None:
        with self._lock:
            tally = self._runs.setdefault((entity, scope), RunTally())
            tally.by_status[status] += 1
            tally.synced += synced
            tally.failed += failed
            tally.total_duration += duration

    def record_fetch(self, entity: str, outcome: str, attempts: int) -> None:
        with self._lock:
            tally = self._fetches.setdefault(entity, FetchTally())
            tally.by_outcome[outcome] += 1
            tally.attempts += attempts

    def run_tally(self, entity: str, scope: str) -> RunTally:
        """Return a snapshot of the run tally (empty if nothing was recorded)."""
        with self._lock:
            tally = self._runs.get((entity, scope), RunTally())
            return replace(tally, by_status=Counter(tally.by_status))

    def fetch_tally(self, entity: str) -> FetchTally:
        with self._lock:
            tally = self._fetches.get(entity, FetchTally())
            return replace(tally, by_outcome=Counter(tally.by_outcome))

    def summary(self) -> dict[str, object]:
        """Return plain dicts keyed ``entity@scope`` (runs) and ``entity`` (fetches)."""
        with self._lock:
            runs = {
                f"{entity}@{scope}": {
                    "runs": dict(tally.by_status),
                    "synced": tally.synced,
                    "failed": tally.failed,
                    "avg_duration": tally.avg_duration,
                }
                for (entity, scope), tally in sorted(self._runs.items())
            }
            fetches = {
                entity: {"outcomes": dict(tally.by_outcome), "attempts": tally.attempts}
                for entity, tally in sorted(self._fetches.items())
            }
        return {"runs": runs, "fetches": fetches}

    def reset(self) -> None:
        with self._lock:
            self._runs.clear()
            self._fetches.clear()


_metrics = SyncMetrics()


def get_metrics() -> SyncMetrics:
    return _metrics


def record_sync_run(
    entity: str, scope: str, status: str, duration: float, synced: int, failed: int
) -> None:
    """Record a finished run, whatever its status."""
    _metrics.record_run(entity, scope, status, duration, synced, failed)


def record_detail_fetch(entity: str, outcome: str, attempts: int) -> None:
    """Record one resolved detail fetch.

    ``outcome`` is ``"success"`` or the error kind that ended the fetch.
    """
    _metrics.record_fetch(entity, outcome, attempts)


def get_metrics_summary() -> dict[str, object]:
    return _metrics.summary()
