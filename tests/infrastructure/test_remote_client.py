"""Tests for the remote catalog HTTP client."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
from datetime import datetime, timezone

import httpx
import pytest

from reconsync.infrastructure.http.client import (
    ListFilter,
    ListingError,
    PermanentError,
    RemoteCatalogClient,
    TransientError,
    build_auth_headers,
    classify_error,
    sign_timestamp,
)


def _client(handler) -> RemoteCatalogClient:
    return RemoteCatalogClient(
        "https://remote.test/api/",
        client_id="client-1",
        signature_secret="s3cret",
        session_id="777",
        transport=httpx.MockTransport(handler),
    )


async def _no_sleep(_delay):
    return None


def _fetch_detail(handler, external_id="5"):
    async def run():
        async with _client(handler) as client:
            return await client.fetch_detail("sales-order", external_id)

    return asyncio.run(run())


def _list_all(handler, list_filter=None, **kwargs):
    async def run():
        async with _client(handler) as client:
            return [
                ref
                async for ref in client.list_all(
                    "sales-order", list_filter, page_delay=0, sleep=_no_sleep, **kwargs
                )
            ]

    return asyncio.run(run())


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def test_sign_timestamp_is_hmac_sha256_hex():
    expected = hmac.new(b"key", b"2024-01-01T00:00:00.000Z", hashlib.sha256).hexdigest()

    assert sign_timestamp("2024-01-01T00:00:00.000Z", "key") == expected


def test_auth_headers_carry_bearer_timestamp_signature_and_session():
    moment = datetime(2024, 3, 5, 8, 30, 0, 123000, tzinfo=timezone.utc)

    headers = build_auth_headers("client-1", "s3cret", "777", now=moment)

    assert headers["Authorization"] == "Bearer client-1"
    assert headers["X-Api-Timestamp"] == "2024-03-05T08:30:00.123Z"
    assert headers["X-Api-Signature"] == sign_timestamp("2024-03-05T08:30:00.123Z", "s3cret")
    assert headers["X-Session-ID"] == "777"


def test_auth_headers_without_session():
    headers = build_auth_headers("client-1", "s3cret")

    assert "X-Session-ID" not in headers


def test_requests_are_signed():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"s": True, "d": {"id": 5}})

    _fetch_detail(handler)

    request = seen[0]
    assert request.url.path == "/api/sales-order/detail.do"
    assert request.url.params["id"] == "5"
    assert request.headers["Authorization"] == "Bearer client-1"
    assert request.headers["X-Session-ID"] == "777"
    timestamp = request.headers["X-Api-Timestamp"]
    assert request.headers["X-Api-Signature"] == sign_timestamp(timestamp, "s3cret")


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def test_filter_params_between_dates():
    params = ListFilter(date_from="2024-03-01", date_to="2024-03-31").to_params()

    assert params["filter.transDate.op"] == "BETWEEN"
    assert params["filter.transDate.val"] == ["01/03/2024", "31/03/2024"]
    assert params["fields"] == "id,number,optLock"


def test_filter_params_open_ended():
    params = ListFilter(date_from="2024-03-01", date_filter_type="createDate", fields=None).to_params()

    assert params == {"filter.createDate.op": "GREATER_THAN", "filter.createDate.val": "01/03/2024"}


def test_filter_rejects_bad_date():
    with pytest.raises(ValueError):
        ListFilter(date_from="03/01/2024").to_params()


def test_list_all_walks_every_page_using_reported_page_size():
    pages_requested = []

    def handler(request):
        page = int(request.url.params["sp.page"])
        pages_requested.append(page)
        start = (page - 1) * 2
        rows = [
            {"id": i, "number": f"SO-{i}", "optLock": i}
            for i in range(start + 1, min(start + 2, 5) + 1)
        ]
        return httpx.Response(
            200, json={"s": True, "d": rows, "sp": {"page": page, "pageSize": 2, "rowCount": 5}}
        )

    refs = _list_all(handler, ListFilter(date_from="2024-03-01", date_to="2024-03-01"))

    assert pages_requested == [1, 2, 3]
    assert [r.external_id for r in refs] == ["1", "2", "3", "4", "5"]
    assert refs[2].version_token == 3
    assert refs[0].display_number == "SO-1"


def test_list_all_sleeps_between_pages():
    delays = []

    async def sleep(delay):
        delays.append(delay)

    def handler(request):
        page = int(request.url.params["sp.page"])
        return httpx.Response(
            200,
            json={"s": True, "d": [{"id": page}], "sp": {"page": page, "pageSize": 1, "rowCount": 3}},
        )

    async def run():
        async with _client(handler) as client:
            return [ref async for ref in client.list_all("sales-order", page_delay=0.25, sleep=sleep)]

    refs = asyncio.run(run())

    assert len(refs) == 3
    assert delays == [0.25, 0.25]


def test_list_all_collects_raw_rows_when_asked():
    def handler(request):
        return httpx.Response(
            200,
            json={"s": True, "d": [{"id": 9, "warehouseId": 3}], "sp": {"pageSize": 10, "rowCount": 1}},
        )

    raw_rows = {}
    refs = _list_all(handler, raw_rows=raw_rows)

    assert [r.version_token for r in refs] == [0]
    assert raw_rows == {"9": {"id": 9, "warehouseId": 3}}


def test_listing_failure_on_later_page_raises():
    def handler(request):
        page = int(request.url.params["sp.page"])
        if page == 2:
            return httpx.Response(502, text="bad gateway")
        return httpx.Response(
            200, json={"s": True, "d": [{"id": 1}], "sp": {"pageSize": 1, "rowCount": 2}}
        )

    with pytest.raises(ListingError) as excinfo:
        _list_all(handler)

    assert excinfo.value.status_code == 502


def test_listing_rejected_envelope_raises():
    def handler(request):
        return httpx.Response(200, json={"s": False, "d": ["Access denied"]})

    with pytest.raises(ListingError, match="Access denied"):
        _list_all(handler)


@pytest.mark.parametrize(
    "sp",
    [
        {"rowCount": "n/a", "pageSize": 100},
        {"rowCount": 5, "pageSize": "ten"},
        {"rowCount": 5, "pageSize": 2, "page": [1]},
        ["not", "a", "dict"],
        "page-1",
    ],
)
def test_unparseable_paging_block_is_a_listing_error(sp):
    def handler(request):
        return httpx.Response(200, json={"s": True, "d": [{"id": 1}], "sp": sp})

    with pytest.raises(ListingError, match="page 1"):
        _list_all(handler)


def test_row_that_is_not_an_object_is_a_listing_error():
    def handler(request):
        return httpx.Response(200, json={"s": True, "d": ["oops"], "sp": {"rowCount": 1}})

    with pytest.raises(ListingError, match="row without id"):
        _list_all(handler)


def test_listing_without_paging_totals_is_logged(caplog):
    def handler(request):
        return httpx.Response(200, json={"s": True, "d": [{"id": 1}, {"id": 2}]})

    with caplog.at_level("WARNING"):
        refs = _list_all(handler)

    assert [r.external_id for r in refs] == ["1", "2"]
    assert "omits rowCount/pageSize" in caplog.text


def test_listing_longer_than_page_limit_is_refused():
    pages_requested = []

    def handler(request):
        pages_requested.append(int(request.url.params["sp.page"]))
        return httpx.Response(
            200, json={"s": True, "d": [{"id": 1}], "sp": {"pageSize": 1, "rowCount": 4}}
        )

    with pytest.raises(ListingError, match="more than the limit of 3"):
        _list_all(handler, max_pages=3)

    assert pages_requested == [1]


# ---------------------------------------------------------------------------
# Detail error classification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("status", [500, 502, 503, 429])
def test_server_errors_are_transient(status):
    with pytest.raises(TransientError) as excinfo:
        _fetch_detail(lambda request: httpx.Response(status, text="oops"))

    assert excinfo.value.status_code == status
    assert classify_error(excinfo.value)


@pytest.mark.parametrize("status", [400, 401, 403, 404])
def test_client_errors_are_permanent(status):
    with pytest.raises(PermanentError) as excinfo:
        _fetch_detail(lambda request: httpx.Response(status, text="no"))

    assert not classify_error(excinfo.value)


def test_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransientError, match="Timeout"):
        _fetch_detail(handler)


def test_connection_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransientError, match="Connection error"):
        _fetch_detail(handler)


def test_empty_body_is_permanent():
    with pytest.raises(PermanentError, match="Empty response"):
        _fetch_detail(lambda request: httpx.Response(200, content=b""))


def test_malformed_json_is_permanent():
    with pytest.raises(PermanentError, match="Malformed JSON"):
        _fetch_detail(lambda request: httpx.Response(200, content=b"{not json"))


def test_missing_record_id_is_permanent():
    with pytest.raises(PermanentError, match="Invalid response structure"):
        _fetch_detail(lambda request: httpx.Response(200, json={"s": True, "d": {"number": "X"}}))


def test_pool_exhaustion_message_is_transient():
    body = {"s": False, "d": ["Unable to acquire JDBC Connection"]}

    with pytest.raises(TransientError):
        _fetch_detail(lambda request: httpx.Response(200, json=body))


def test_rejected_detail_is_permanent():
    body = {"s": False, "d": ["Data tidak ditemukan"]}

    with pytest.raises(PermanentError, match="Data tidak ditemukan"):
        _fetch_detail(lambda request: httpx.Response(200, json=body))


def test_detail_payload_is_unwrapped():
    payload = _fetch_detail(
        lambda request: httpx.Response(200, json={"s": True, "d": {"id": 5, "number": "SO-5"}})
    )

    assert payload == {"id": 5, "number": "SO-5"}
