from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date
from typing import Any

from reconsync.app.config import AppConfig, BranchConfig, ConfigHolder
from reconsync.domain.models import SyncMode, SyncReport, SyncStatus
from reconsync.entities import EntitySpec, available_entities, get_entity
from reconsync.infrastructure.db import default_db_path, get_connection
from reconsync.infrastructure.db.repositories import SyncRunRepository
from reconsync.infrastructure.http import ListFilter, RemoteCatalogClient
from reconsync.services.base import BaseService, ConnectionFactory
from reconsync.services.sync import (
    SyncAbortedError,
    SyncOrchestrator,
    SyncSettings,
    UnknownBranchError,
    UnknownEntityError,
)

ClientFactory = Callable[[AppConfig, BranchConfig], RemoteCatalogClient]


@dataclass(frozen=True)
class SyncRunSummary:
    """Structured result for a sync execution."""

    status: str
    entity: str
    branch_id: str
    report: SyncReport | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "type": "sync_finished",
            "status": self.status,
            "entity": self.entity,
            "branch_id": self.branch_id,
        }
        if self.report:
            payload["report"] = self.report.to_dict()
        if self.error:
            payload["error"] = self.error
        return payload


def default_client_factory(config: AppConfig, branch: BranchConfig) -> RemoteCatalogClient:
    credentials = config.credentials_for(branch)
    return RemoteCatalogClient(
        config.base_url,
        client_id=credentials.client_id or "",
        signature_secret=credentials.signature_secret or "",
        session_id=branch.db_id,
        timeout=config.sync.timeout_seconds,
        requests_per_second=config.sync.requests_per_second,
    )


def build_list_filter(
    entity: EntitySpec,
    *,
    date_from: str | None = None,
    date_to: str | None = None,
    date_filter_type: str | None = None,
    warehouse_id: str | None = None,
) -> ListFilter:
    """Build a listing filter for ``entity``; dates default to today.

    Entities with open-ended date filters keep ``date_to`` empty unless given.
    Master data entities list their whole catalog and reject date options.
    """
    if warehouse_id and not entity.supports_warehouse_filter:
        raise ValueError(f"{entity.name} does not support a warehouse filter")
    if entity.date_filter_type is None:
        if date_from or date_to or date_filter_type:
            raise ValueError(f"{entity.name} is not filtered by date")
        return ListFilter(date_filter_type=None, warehouse_id=warehouse_id)
    start = date_from or date.today().isoformat()
    end = date_to
    if end is None and not entity.open_ended_dates:
        end = start
    return ListFilter(
        date_from=start,
        date_to=end,
        date_filter_type=date_filter_type or entity.date_filter_type,
        warehouse_id=warehouse_id,
    )


class SyncService(BaseService):
    """Resolve branches and entities, then drive the sync orchestrator."""

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        config_holder: ConfigHolder,
        *,
        client_factory: ClientFactory = default_client_factory,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(connection_factory)
        self._config_holder = config_holder
        self._client_factory = client_factory
        self._sleep = sleep

    @classmethod
    def from_config(cls, config_holder: ConfigHolder, **kwargs: Any) -> "SyncService":
        db_path = config_holder.config.db_path or str(default_db_path())

        def connection_factory():
            return get_connection(db_path)

        return cls(connection_factory, config_holder, **kwargs)

    @property
    def config(self) -> AppConfig:
        return self._config_holder.config

    # -- lookups -------------------------------------------------------------

    def list_branches(self) -> list[BranchConfig]:
        return self.config.active_branches()

    def list_entities(self) -> list[EntitySpec]:
        return available_entities()

    def resolve_entity(self, name: str) -> EntitySpec:
        try:
            return get_entity(name)
        except KeyError as exc:
            raise UnknownEntityError(name) from exc

    def resolve_branch(self, branch_id: str) -> BranchConfig:
        try:
            return self.config.get_branch(branch_id)
        except KeyError as exc:
            raise UnknownBranchError(branch_id) from exc

    def _settings(self) -> SyncSettings:
        defaults = self.config.sync
        return SyncSettings(
            batch_size=defaults.batch_size,
            batch_delay=defaults.batch_delay,
            max_retries=defaults.max_retries,
            retry_base_delay=defaults.retry_base_delay,
            page_delay=defaults.page_delay,
            sample_limit=defaults.sample_limit,
        )

    def _orchestrator(
        self, spec: EntitySpec, branch: BranchConfig, client: RemoteCatalogClient
    ) -> SyncOrchestrator:
        return SyncOrchestrator(
            client,
            spec,
            self._connection,
            self._settings(),
            scope_name=branch.name,
            sleep=self._sleep,
        )

    # -- operations ----------------------------------------------------------

    async def check_status(
        self,
        *,
        entity: str,
        branch_id: str,
        list_filter: ListFilter | None = None,
    ) -> SyncStatus:
        """Preview how many records a sync would fetch."""
        spec = self.resolve_entity(entity)
        branch = self.resolve_branch(branch_id)
        list_filter = list_filter or build_list_filter(spec)
        async with self._client_factory(self.config, branch) as client:
            orchestrator = self._orchestrator(spec, branch, client)
            return await orchestrator.check_status(branch.id, list_filter)

    async def trigger_sync(
        self,
        *,
        entity: str,
        branch_id: str,
        list_filter: ListFilter | None = None,
        mode: SyncMode | str = SyncMode.MISSING_ONLY,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        max_retries: int | None = None,
    ) -> SyncRunSummary:
        """Run a sync and wrap its report in a :class:`SyncRunSummary`.

        A listing failure is returned as status ``aborted`` instead of raised.
        """
        spec = self.resolve_entity(entity)
        branch = self.resolve_branch(branch_id)
        list_filter = list_filter or build_list_filter(spec)
        self._logger.info(
            "Starting %s sync for branch %s (mode=%s)", spec.name, branch.id, mode
        )
        async with self._client_factory(self.config, branch) as client:
            orchestrator = self._orchestrator(spec, branch, client)
            try:
                report = await orchestrator.trigger_sync(
                    branch.id,
                    list_filter,
                    mode=mode,
                    batch_size=batch_size,
                    batch_delay=batch_delay,
                    max_retries=max_retries,
                )
            except SyncAbortedError as exc:
                self._logger.error("Sync aborted for %s/%s: %s", spec.name, branch.id, exc)
                return SyncRunSummary(
                    status="aborted",
                    entity=spec.name,
                    branch_id=branch.id,
                    report=exc.report,
                    error=str(exc),
                )
        return SyncRunSummary(
            status=report.status, entity=spec.name, branch_id=branch.id, report=report
        )

    def recent_runs(
        self,
        *,
        entity: str | None = None,
        branch_id: str | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        return self._with_connection(
            lambda conn: SyncRunRepository(conn).list_recent(
                entity=entity, scope_key=branch_id, limit=limit
            )
        )


__all__ = [
    "SyncRunSummary",
    "SyncService",
    "build_list_filter",
    "default_client_factory",
]
