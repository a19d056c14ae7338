"""Tests for the branch/entity facade over the sync orchestrator."""

from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from reconsync.app.config import (
    AppConfig,
    BranchConfig,
    ConfigError,
    ConfigHolder,
    Credentials,
    SyncDefaults,
)
from reconsync.entities import get_entity
from reconsync.infrastructure.db import get_connection
from reconsync.infrastructure.http import RemoteCatalogClient
from reconsync.services.sync import UnknownBranchError, UnknownEntityError
from reconsync.services.sync_service import (
    SyncService,
    build_list_filter,
    default_client_factory,
)


async def _no_sleep(_delay):
    return None


def _config(**sync_overrides) -> AppConfig:
    sync_values = dict(batch_delay=0, retry_base_delay=0, page_delay=0)
    sync_values.update(sync_overrides)
    return AppConfig(
        base_url="https://remote.test/api",
        branches=(
            BranchConfig(
                id="BR01",
                name="Main",
                db_id="1001",
                credentials=Credentials(client_id="cid", signature_secret="sec"),
            ),
            BranchConfig(id="BR09", name="Closed", db_id="1009", active=False),
        ),
        sync=SyncDefaults(**sync_values),
    )


def _handler(listing_status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/list.do"):
            if listing_status != 200:
                return httpx.Response(listing_status, text="down")
            return httpx.Response(
                200,
                json={
                    "s": True,
                    "d": [{"id": 1, "number": "INV-1", "optLock": 2}],
                    "sp": {"page": 1, "pageSize": 100, "rowCount": 1},
                },
            )
        return httpx.Response(
            200,
            json={
                "s": True,
                "d": {
                    "id": 1,
                    "number": "INV-1",
                    "optLock": 2,
                    "transDate": "05/03/2024",
                    "detailItem": [{"item": {"no": "X"}, "quantity": 1}],
                },
            },
        )

    return handler


def _service(tmp_path, *, listing_status=200, **sync_overrides) -> SyncService:
    db_path = tmp_path / "service.db"
    seen_branches = []

    def client_factory(config, branch):
        seen_branches.append(branch.id)
        return RemoteCatalogClient(
            config.base_url,
            client_id="cid",
            signature_secret="sec",
            session_id=branch.db_id,
            transport=httpx.MockTransport(_handler(listing_status)),
        )

    service = SyncService(
        lambda: get_connection(db_path),
        ConfigHolder(config=_config(**sync_overrides)),
        client_factory=client_factory,
        sleep=_no_sleep,
    )
    service.seen_branches = seen_branches
    return service


def test_trigger_sync_returns_summary(tmp_path):
    service = _service(tmp_path)

    summary = asyncio.run(service.trigger_sync(entity="sales-invoice", branch_id="BR01"))

    assert summary.status == "success"
    assert summary.report.synced == 1
    assert summary.to_dict()["report"]["entity"] == "sales-invoice"
    assert service.seen_branches == ["BR01"]
    runs = service.recent_runs(entity="sales-invoice", branch_id="BR01")
    assert [r["status"] for r in runs] == ["success"]


def test_listing_failure_becomes_aborted_summary(tmp_path):
    service = _service(tmp_path, listing_status=500)

    summary = asyncio.run(service.trigger_sync(entity="sales-invoice", branch_id="BR01"))

    assert summary.status == "aborted"
    assert "Listing failed" in summary.error
    assert summary.report.status == "aborted"
    assert summary.to_dict()["error"] == summary.error


def test_check_status_uses_branch_scope(tmp_path):
    service = _service(tmp_path)

    status = asyncio.run(service.check_status(entity="sales-invoice", branch_id="BR01"))

    assert (status.total, status.new, status.need_sync) == (1, 1, 1)


def test_unknown_entity_and_branch(tmp_path):
    service = _service(tmp_path)

    with pytest.raises(UnknownEntityError):
        asyncio.run(service.trigger_sync(entity="delivery-order", branch_id="BR01"))
    with pytest.raises(UnknownBranchError):
        asyncio.run(service.trigger_sync(entity="sales-order", branch_id="BR09"))
    assert service.seen_branches == []


def test_settings_come_from_config(tmp_path):
    service = _service(tmp_path, batch_size=3, max_retries=5, sample_limit=2)

    settings = service._settings()

    assert (settings.batch_size, settings.max_retries, settings.sample_limit) == (3, 5, 2)


def test_lists_branches_and_entities(tmp_path):
    service = _service(tmp_path)

    assert [b.id for b in service.list_branches()] == ["BR01"]
    assert "sales-return" in [spec.name for spec in service.list_entities()]


def test_default_client_factory_uses_branch_session():
    config = _config()
    client = default_client_factory(config, config.get_branch("BR01"))

    assert client.session_id == "1001"
    assert client.base_url == "https://remote.test/api"


def test_default_client_factory_requires_credentials(monkeypatch):
    monkeypatch.delenv("RECONSYNC_CLIENT_ID", raising=False)
    monkeypatch.delenv("RECONSYNC_SIGNATURE_SECRET", raising=False)
    config = AppConfig(branches=(BranchConfig(id="BR02", name="Second", db_id="1002"),))

    with pytest.raises(ConfigError):
        default_client_factory(config, config.get_branch("BR02"))


def test_build_list_filter_defaults_to_today():
    today = date.today().isoformat()

    order_filter = build_list_filter(get_entity("sales-order"))
    mutation_filter = build_list_filter(get_entity("stock-mutation"))

    assert (order_filter.date_from, order_filter.date_to) == (today, today)
    assert (mutation_filter.date_from, mutation_filter.date_to) == (today, None)
    assert mutation_filter.date_filter_type == "createDate"


def test_build_list_filter_for_master_data_has_no_dates():
    customer_filter = build_list_filter(get_entity("customer"))

    assert (customer_filter.date_from, customer_filter.date_to) == (None, None)
    assert not any(key.startswith("filter.") for key in customer_filter.to_params())
    with pytest.raises(ValueError, match="not filtered by date"):
        build_list_filter(get_entity("item"), date_from="2024-03-01")


def test_customer_sync_lists_whole_catalog(tmp_path):
    service = _service(tmp_path)

    summary = asyncio.run(service.trigger_sync(entity="customer", branch_id="BR01"))

    assert summary.status == "success"
    assert summary.report.synced == 1
    with get_connection(tmp_path / "service.db") as conn:
        assert conn.execute("SELECT customer_id FROM customers").fetchall() == [("1",)]
