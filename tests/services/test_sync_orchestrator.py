"""End-to-end tests for the sync orchestrator against a mocked remote."""

from __future__ import annotations

import asyncio
import json
from contextlib import contextmanager
from pathlib import Path

import httpx
import pytest

from reconsync.domain.models import RunState
from reconsync.entities import get_entity
from reconsync.infrastructure.db import ensure_schema, get_connection
from reconsync.infrastructure.db.repositories import LedgerRepository, SyncRunRepository
from reconsync.infrastructure.http import ListFilter, ListingError, RemoteCatalogClient
from reconsync.infrastructure.observability.metrics import get_metrics
from reconsync.services.sync import SyncAbortedError, SyncOrchestrator, SyncSettings
from reconsync.services.sync import orchestrator as orchestrator_module

MARCH = ListFilter(date_from="2024-03-01", date_to="2024-03-31")


async def _no_sleep(_delay):
    return None


class RemoteStub:
    """In-memory remote serving list.do and detail.do for one endpoint."""

    def __init__(
        self, ids, *, versions=None, fail_detail=None, listing_status=200,
        malformed_lines=(), paging=None,
    ):
        self.ids = list(ids)
        self.versions = dict(versions or {})
        self.fail_detail = dict(fail_detail or {})
        self.listing_status = listing_status
        self.malformed_lines = set(malformed_lines)
        self.paging = paging
        self.detail_calls: list[str] = []
        self.list_params: list[httpx.QueryParams] = []

    def row(self, record_id):
        return {
            "id": record_id,
            "number": f"SO-{record_id}",
            "optLock": self.versions.get(record_id, 1),
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/list.do"):
            self.list_params.append(request.url.params)
            if self.listing_status != 200:
                return httpx.Response(self.listing_status, text="boom")
            return httpx.Response(
                200,
                json={
                    "s": True,
                    "d": [self.row(i) for i in self.ids],
                    "sp": self.paging
                    if self.paging is not None
                    else {"page": 1, "pageSize": 100, "rowCount": len(self.ids)},
                },
            )
        record_id = int(request.url.params["id"])
        self.detail_calls.append(str(record_id))
        if self.fail_detail.get(record_id, 0) > 0:
            self.fail_detail[record_id] -= 1
            return httpx.Response(503, text="unavailable")
        payload = {
            **self.row(record_id),
            "transDate": "05/03/2024",
            "totalAmount": record_id * 10,
            "detailItem": [{"item": {"no": "I-1", "name": "Item"}, "quantity": 1}],
        }
        if record_id in self.malformed_lines:
            payload["detailItem"] = ["oops"]
        return httpx.Response(200, content=json.dumps({"s": True, "d": payload}))

    def client(self):
        return RemoteCatalogClient(
            "https://remote.test/api",
            client_id="client",
            signature_secret="secret",
            session_id="db-1",
            transport=httpx.MockTransport(self.handler),
        )


def _connection_factory(db_path: Path):
    @contextmanager
    def factory():
        with get_connection(db_path) as conn:
            ensure_schema(conn)
            yield conn

    return factory


def _orchestrator(client, db_path, entity="sales-order", **settings):
    return SyncOrchestrator(
        client,
        get_entity(entity),
        _connection_factory(db_path),
        SyncSettings(batch_delay=0, page_delay=0, retry_base_delay=0, **settings),
        scope_name="Main",
        sleep=_no_sleep,
    )


async def _sync(stub, db_path, **kwargs):
    settings = kwargs.pop("settings", {})
    async with stub.client() as client:
        orchestrator = _orchestrator(client, db_path, **settings)
        return await orchestrator.trigger_sync("BR01", MARCH, **kwargs)


def test_transient_failure_is_reported_then_picked_up_next_run(tmp_path):
    db_path = tmp_path / "sync.db"
    stub = RemoteStub([1, 2, 3, 4, 5], fail_detail={3: 3})

    report = asyncio.run(_sync(stub, db_path, batch_size=2, max_retries=2))

    assert report.status == "success"
    assert (report.scanned, report.new, report.updated, report.unchanged) == (5, 5, 0, 0)
    assert report.synced == 4
    assert report.failed == 1
    (sample,) = report.failed_samples
    assert sample.external_id == "3"
    assert sample.error_kind == "transient"
    assert sample.attempts == 3
    assert stub.detail_calls.count("3") == 3

    with get_connection(db_path) as conn:
        ledger_ids = sorted(e.external_id for e in LedgerRepository(conn).load_scope("sales-order", "BR01"))
        assert ledger_ids == ["1", "2", "4", "5"]
        run = SyncRunRepository(conn).get(report.run_id)
        assert run["status"] == "success"
        assert run["synced_count"] == 4
        assert run["failed_count"] == 1

    second = asyncio.run(_sync(stub, db_path, batch_size=2, max_retries=2))

    assert (second.new, second.unchanged, second.synced, second.failed) == (1, 4, 1, 0)


def test_larger_retry_budget_absorbs_the_outage(tmp_path):
    stub = RemoteStub([1, 2, 3, 4, 5], fail_detail={3: 3})

    report = asyncio.run(_sync(stub, tmp_path / "sync.db", batch_size=2, max_retries=3))

    assert report.synced == 5
    assert report.failed == 0


def test_rerun_without_remote_changes_fetches_nothing(tmp_path):
    db_path = tmp_path / "sync.db"
    stub = RemoteStub([1, 2])
    asyncio.run(_sync(stub, db_path))
    stub.detail_calls.clear()

    report = asyncio.run(_sync(stub, db_path))

    assert report.unchanged == 2
    assert report.synced == 0
    assert stub.detail_calls == []


def test_version_bump_is_refetched(tmp_path):
    db_path = tmp_path / "sync.db"
    stub = RemoteStub([1, 2])
    asyncio.run(_sync(stub, db_path))
    stub.versions[2] = 5
    stub.detail_calls.clear()

    report = asyncio.run(_sync(stub, db_path))

    assert report.updated == 1
    assert stub.detail_calls == ["2"]
    with get_connection(db_path) as conn:
        assert LedgerRepository(conn).get("sales-order", "BR01", "2").version_token == 5


def test_mode_all_refetches_unchanged_records(tmp_path):
    db_path = tmp_path / "sync.db"
    stub = RemoteStub([1, 2, 3])
    asyncio.run(_sync(stub, db_path))

    report = asyncio.run(_sync(stub, db_path, mode="all"))

    assert report.mode == "all"
    assert report.unchanged == 3
    assert report.synced == 3
    with get_connection(db_path) as conn:
        count = conn.execute("SELECT COUNT(*) FROM sales_orders").fetchone()[0]
        items = conn.execute("SELECT COUNT(*) FROM sales_order_items").fetchone()[0]
    assert (count, items) == (3, 3)


def test_listing_failure_aborts_with_zero_progress(tmp_path):
    db_path = tmp_path / "sync.db"
    stub = RemoteStub([1, 2], listing_status=500)

    with pytest.raises(SyncAbortedError) as excinfo:
        asyncio.run(_sync(stub, db_path))

    report = excinfo.value.report
    assert report.status == "aborted"
    assert (report.scanned, report.synced, report.failed) == (0, 0, 0)
    assert stub.detail_calls == []
    with get_connection(db_path) as conn:
        run = SyncRunRepository(conn).get(report.run_id)
        assert run["status"] == "aborted"
        assert "HTTP 500" in run["error_message"]
        assert LedgerRepository(conn).count("sales-order", "BR01") == 0


@pytest.mark.parametrize("paging", [{"rowCount": "n/a", "pageSize": 100}, ["page", 1]])
def test_unparseable_listing_aborts_the_run(tmp_path, paging):
    db_path = tmp_path / "sync.db"
    stub = RemoteStub([1, 2], paging=paging)

    with pytest.raises(SyncAbortedError) as excinfo:
        asyncio.run(_sync(stub, db_path))

    report = excinfo.value.report
    assert report.status == "aborted"
    assert "paging block" in report.error
    assert stub.detail_calls == []
    with get_connection(db_path) as conn:
        assert SyncRunRepository(conn).get(report.run_id)["status"] == "aborted"


def test_malformed_detail_fails_only_that_record(tmp_path):
    db_path = tmp_path / "sync.db"
    stub = RemoteStub([1, 2, 3], malformed_lines={2})

    report = asyncio.run(_sync(stub, db_path))

    assert report.status == "success"
    assert (report.synced, report.failed) == (2, 1)
    (sample,) = report.failed_samples
    assert sample.external_id == "2"
    assert sample.error_kind == "persistence"
    assert "not an object" in sample.error
    with get_connection(db_path) as conn:
        ledger_ids = sorted(e.external_id for e in LedgerRepository(conn).load_scope("sales-order", "BR01"))
        assert ledger_ids == ["1", "3"]
        assert SyncRunRepository(conn).get(report.run_id)["status"] == "success"


def test_abort_request_cancels_remaining_batches(tmp_path):
    db_path = tmp_path / "sync.db"
    stub = RemoteStub([1, 2, 3, 4, 5])

    async def run():
        async with stub.client() as client:
            orchestrator = _orchestrator(client, db_path)
            original = client.fetch_detail

            async def fetch_and_abort(endpoint, external_id):
                orchestrator.request_abort()
                return await original(endpoint, external_id)

            client.fetch_detail = fetch_and_abort
            report = await orchestrator.trigger_sync("BR01", MARCH, batch_size=2)
            return report, orchestrator.state

    report, state = asyncio.run(run())

    assert report.status == "cancelled"
    assert report.synced == 2
    assert report.cancelled == 3
    assert report.failed == 0
    assert state is RunState.IDLE
    with get_connection(db_path) as conn:
        assert LedgerRepository(conn).count("sales-order", "BR01") == 2
        assert SyncRunRepository(conn).get(report.run_id)["status"] == "cancelled"


def test_unexpected_error_marks_run_failed(tmp_path, monkeypatch):
    db_path = tmp_path / "sync.db"
    stub = RemoteStub([1])

    def broken_classify(*_args, **_kwargs):
        raise RuntimeError("classifier exploded")

    monkeypatch.setattr(orchestrator_module, "classify", broken_classify)

    with pytest.raises(RuntimeError):
        asyncio.run(_sync(stub, db_path))

    with get_connection(db_path) as conn:
        (run,) = SyncRunRepository(conn).list_recent()
    assert run["status"] == "failed"
    assert run["error_message"] == "classifier exploded"


def test_check_status_previews_without_fetching(tmp_path):
    db_path = tmp_path / "sync.db"
    stub = RemoteStub([1, 2])
    asyncio.run(_sync(stub, db_path))
    stub.ids.append(3)
    stub.versions[2] = 4
    stub.detail_calls.clear()

    async def run():
        async with stub.client() as client:
            return await _orchestrator(client, db_path).check_status("BR01", MARCH)

    status = asyncio.run(run())

    assert (status.total, status.new, status.updated, status.unchanged) == (3, 1, 1, 1)
    assert status.need_sync == 2
    assert status.in_database == 2
    assert [ref.external_id for ref in status.new_samples] == ["3"]
    assert [ref.external_id for ref in status.updated_samples] == ["2"]
    assert stub.detail_calls == []


def test_check_status_propagates_listing_failure(tmp_path):
    stub = RemoteStub([1], listing_status=503)

    async def run():
        async with stub.client() as client:
            return await _orchestrator(client, tmp_path / "sync.db").check_status("BR01", MARCH)

    with pytest.raises(ListingError):
        asyncio.run(run())


def test_check_status_reports_unparseable_listing_as_listing_error(tmp_path):
    stub = RemoteStub([1], paging={"rowCount": 1, "pageSize": "many"})

    async def run():
        async with stub.client() as client:
            return await _orchestrator(client, tmp_path / "sync.db").check_status("BR01", MARCH)

    with pytest.raises(ListingError, match="paging block"):
        asyncio.run(run())


def test_stock_mutations_are_stored_from_listing_rows(tmp_path):
    db_path = tmp_path / "sync.db"
    requests: list[httpx.Request] = []

    def handler(request):
        requests.append(request)
        rows = [
            {
                "id": 71,
                "number": "MUT-71",
                "transDate": "02/03/2024",
                "warehouse": {"id": 4, "name": "Main WH"},
                "totalQuantity": 12,
            },
            {"id": 72, "number": "MUT-72", "transDate": "03/03/2024", "warehouseId": 4},
        ]
        return httpx.Response(
            200, json={"s": True, "d": rows, "sp": {"page": 1, "pageSize": 50, "rowCount": 2}}
        )

    async def run():
        client = RemoteCatalogClient(
            "https://remote.test/api",
            client_id="client",
            signature_secret="secret",
            transport=httpx.MockTransport(handler),
        )
        async with client:
            orchestrator = _orchestrator(client, db_path, entity="stock-mutation")
            return await orchestrator.trigger_sync(
                "BR01", ListFilter(date_from="2024-03-01", date_filter_type="createDate", warehouse_id="4")
            )

    report = asyncio.run(run())

    assert report.synced == 2
    assert all(r.url.path.endswith("/item/stock-mutation-history/list.do") for r in requests)
    params = requests[0].url.params
    assert "fields" not in params
    assert params["filter.createDate.op"] == "GREATER_THAN"
    assert params["warehouseId"] == "4"
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT mutation_id, warehouse_name, total_quantity FROM item_mutations ORDER BY mutation_id"
        ).fetchall()
    assert rows == [("71", "Main WH", 12.0), ("72", None, 0.0)]


def test_run_metrics_are_recorded(tmp_path):
    get_metrics().reset()
    stub = RemoteStub([1])

    asyncio.run(_sync(stub, tmp_path / "sync.db"))

    tally = get_metrics().run_tally("sales-order", "BR01")
    assert tally.by_status == {"success": 1}
    assert tally.synced == 1
    assert get_metrics().fetch_tally("sales-order").by_outcome["success"] == 1
