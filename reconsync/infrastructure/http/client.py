"""Async client for the remote catalog's listing and detail endpoints.

The remote exposes, per entity endpoint:

* ``GET {base}/{endpoint}/list.do`` returning
  ``{"s": bool, "d": [{"id", "number", "optLock"}, ...], "sp": {"page", "pageSize", "rowCount"}}``
* ``GET {base}/{endpoint}/detail.do?id=...`` returning ``{"s": bool, "d": {...}}``

Every request is signed: the client id is sent as a bearer token, an ISO
timestamp is signed with HMAC-SHA256 using the branch's signature secret,
and the branch's remote database id travels as ``X-Session-ID``.

Usage:
    client = RemoteCatalogClient(base_url, client_id="...", signature_secret="...")
    async with client:
        async for ref in client.list_all("sales-order", ListFilter.for_today()):
            print(ref.external_id, ref.version_token)
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import math
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import urlparse

import httpx

from reconsync.domain.classifier import parse_version_token
from reconsync.domain.models import RemoteRecordRef
from reconsync.entities.base import iso_to_remote_date
from reconsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_PAGE_DELAY = 0.1
MAX_LIST_PAGES = 1000
LISTING_FIELDS = ("id", "number", "optLock")

# Upstream messages that mean the remote database pool was exhausted.
_POOL_EXHAUSTION_MARKERS = (
    "unable to acquire jdbc connection",
    "connection pool",
    "too many connections",
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class RemoteError(Exception):
    """Base class for failures talking to the remote catalog."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientError(RemoteError):
    """Failure expected to resolve on retry (timeouts, 5xx, pool exhaustion)."""


class PermanentError(RemoteError):
    """Failure that will not resolve on retry (4xx, malformed body, missing id)."""


class ListingError(RemoteError):
    """The listing pass could not be completed; the run must abort."""


def classify_error(exc: BaseException) -> bool:
    """Return True when ``exc`` is worth retrying."""
    if isinstance(exc, TransientError):
        return True
    if isinstance(exc, RemoteError):
        return False
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def sign_timestamp(timestamp: str, secret: str) -> str:
    """Return the hex HMAC-SHA256 of ``timestamp`` keyed by ``secret``."""
    return hmac.new(
        secret.encode("utf-8"), timestamp.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def build_auth_headers(
    client_id: str,
    signature_secret: str,
    session_id: str | None = None,
    now: datetime | None = None,
) -> dict[str, str]:
    moment = now or datetime.now(timezone.utc)
    timestamp = moment.astimezone(timezone.utc).isoformat(
        timespec="milliseconds").replace("+00:00", "Z")
    headers = {
        "Authorization": f"Bearer {client_id}",
        "X-Api-Timestamp": timestamp,
        "X-Api-Signature": sign_timestamp(timestamp, signature_secret),
        "Accept": "application/json",
    }
    if session_id:
        headers["X-Session-ID"] = str(session_id)
    return headers


# ---------------------------------------------------------------------------
# Filters and pages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ListFilter:
    """Scope-local filter for a listing pass.

    Dates are ISO strings (``yyyy-mm-dd``) and are sent in the remote's
    ``dd/mm/yyyy`` format. Without ``date_to`` the filter is open ended.
    """

    date_from: str | None = None
    date_to: str | None = None
    date_filter_type: str | None = "transDate"
    warehouse_id: str | None = None
    fields: tuple[str, ...] | None = LISTING_FIELDS
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_today(cls, date_filter_type: str = "transDate") -> "ListFilter":
        today = date.today().isoformat()
        return cls(date_from=today, date_to=today, date_filter_type=date_filter_type)

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if self.date_filter_type:
            key = f"filter.{self.date_filter_type}"
            date_from = iso_to_remote_date(self.date_from)
            date_to = iso_to_remote_date(self.date_to)
            if date_from and date_to:
                params[f"{key}.op"] = "BETWEEN"
                params[f"{key}.val"] = [date_from, date_to]
            elif date_from:
                params[f"{key}.op"] = "GREATER_THAN"
                params[f"{key}.val"] = date_from
        if self.warehouse_id:
            params["warehouseId"] = str(self.warehouse_id)
        if self.fields:
            params["fields"] = ",".join(self.fields)
        params.update(self.extra)
        return params


@dataclass(frozen=True)
class ListPage:
    items: list[RemoteRecordRef]
    total_rows: int
    page_size: int
    page: int = 1
    rows: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 1
        return max(1, math.ceil(self.total_rows / self.page_size))


def ref_from_row(row: dict[str, Any]) -> RemoteRecordRef:
    number = row.get("number")
    return RemoteRecordRef(
        external_id=str(row["id"]),
        display_number=None if number is None else str(number),
        version_token=parse_version_token(row.get("optLock")),
    )


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class RateLimiter:
    """Host-level throttle for async callers."""

    def __init__(self, requests_per_second: float | None) -> None:
        self.min_interval = 1.0 / requests_per_second if requests_per_second else 0.0
        self._last_seen: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _next_delay(self, host: str) -> float:
        if self.min_interval <= 0:
            return 0.0
        last = self._last_seen.get(host)
        now = time.monotonic()
        if last is None or now - last >= self.min_interval:
            self._last_seen[host] = now
            return 0.0
        delay = self.min_interval - (now - last)
        self._last_seen[host] = now + delay
        return delay

    async def wait(self, host: str) -> None:
        if self.min_interval <= 0:
            return
        async with self._lock:
            delay = self._next_delay(host)
        if delay > 0:
            await asyncio.sleep(delay)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RemoteCatalogClient:
    """Async client for one branch of the remote catalog.

    Attributes:
        base_url: API root, e.g. ``https://host/accurate/api``.
        session_id: Remote database id of the branch (``X-Session-ID``).
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client_id: str,
        signature_secret: str,
        session_id: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        requests_per_second: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session_id = session_id
        self.timeout = timeout
        self._client_id = client_id
        self._signature_secret = signature_secret
        self._transport = transport
        self._rate_limiter = RateLimiter(requests_per_second)
        self._host = urlparse(self.base_url).netloc or self.base_url
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "RemoteCatalogClient":
        await self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: dict[str, Any]) -> httpx.Response:
        client = await self._get_client()
        await self._rate_limiter.wait(self._host)
        # Signatures are timestamped, so headers are rebuilt per request.
        headers = build_auth_headers(
            self._client_id, self._signature_secret, self.session_id
        )
        return await client.get(
            f"{self.base_url}/{path.lstrip('/')}", params=params, headers=headers
        )

    # -- listing -----------------------------------------------------------

    async def list_page(
        self, endpoint: str, list_filter: ListFilter | None = None, page: int = 1
    ) -> ListPage:
        """Fetch one listing page.

        Raises:
            ListingError: On any transport, status or envelope failure.
        """
        params = (list_filter or ListFilter()).to_params()
        params["sp.page"] = page
        try:
            response = await self._get(f"{endpoint}/list.do", params)
        except httpx.HTTPError as exc:
            raise ListingError(f"{endpoint} page {page}: {exc}") from exc

        if response.status_code >= 400:
            raise ListingError(
                f"{endpoint} page {page}: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise ListingError(f"{endpoint} page {page}: malformed JSON") from exc

        if not isinstance(body, dict) or not body.get("s"):
            raise ListingError(
                f"{endpoint} page {page}: {_envelope_message(body) or 'request rejected'}"
            )
        rows = body.get("d")
        if not isinstance(rows, list):
            raise ListingError(f"{endpoint} page {page}: listing has no items array")
        try:
            items = [ref_from_row(row) for row in rows]
        except (AttributeError, KeyError, TypeError) as exc:
            raise ListingError(f"{endpoint} page {page}: row without id") from exc

        sp = body.get("sp")
        if sp is None:
            sp = {}
        if not isinstance(sp, dict):
            raise ListingError(f"{endpoint} page {page}: paging block is not an object")
        if page == 1 and (sp.get("rowCount") is None or sp.get("pageSize") is None):
            logger.warning(
                "%s listing omits rowCount/pageSize; treating it as a single page of %d rows",
                endpoint,
                len(items),
            )
        try:
            total_rows = int(sp.get("rowCount") or len(items))
            page_size = int(sp.get("pageSize") or 0)
            page_number = int(sp.get("page") or page)
        except (TypeError, ValueError) as exc:
            raise ListingError(f"{endpoint} page {page}: invalid paging block {sp!r}") from exc
        return ListPage(
            items=items,
            total_rows=total_rows,
            page_size=page_size,
            page=page_number,
            rows=rows,
        )

    async def list_all(
        self,
        endpoint: str,
        list_filter: ListFilter | None = None,
        *,
        page_delay: float = DEFAULT_PAGE_DELAY,
        raw_rows: dict[str, dict[str, Any]] | None = None,
        max_pages: int = MAX_LIST_PAGES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> AsyncIterator[RemoteRecordRef]:
        """Yield every ref of a listing pass, page by page.

        The total page count comes from the first page. A failure on any page
        raises :class:`ListingError`; the pass cannot be resumed. A listing
        longer than ``max_pages`` is refused rather than truncated. When
        ``raw_rows`` is given, each listing row is stored in it by id.
        """
        first = await self.list_page(endpoint, list_filter, 1)
        total_pages = first.total_pages
        if total_pages > max_pages:
            raise ListingError(
                f"{endpoint} listing has {total_pages} pages, more than the limit of {max_pages}"
            )
        logger.debug("%s listing: %d rows over %d pages",
                     endpoint, first.total_rows, total_pages)

        result = first
        page = 1
        while True:
            if raw_rows is not None:
                raw_rows.update({str(row["id"]): row for row in result.rows})
            for ref in result.items:
                yield ref
            page += 1
            if page > total_pages:
                break
            await sleep(page_delay)
            result = await self.list_page(endpoint, list_filter, page)

    # -- detail ------------------------------------------------------------

    async def fetch_detail(self, endpoint: str, external_id: str) -> dict[str, Any]:
        """Fetch one record's full detail payload.

        Raises:
            TransientError: Timeouts, connection failures, HTTP 5xx/429 and
                upstream connection-pool exhaustion.
            PermanentError: Other HTTP 4xx, empty or malformed bodies and
                envelopes without a record id.
        """
        try:
            response = await self._get(f"{endpoint}/detail.do", {"id": external_id})
        except httpx.TimeoutException as exc:
            raise TransientError(f"Timeout fetching {endpoint} {external_id}") from exc
        except httpx.TransportError as exc:
            raise TransientError(
                f"Connection error fetching {endpoint} {external_id}: {exc}"
            ) from exc

        status = response.status_code
        if status >= 500 or status == 429:
            raise TransientError(
                f"HTTP {status} fetching {endpoint} {external_id}", status_code=status
            )
        if status == 404:
            raise PermanentError(
                f"{endpoint} {external_id} not found", status_code=status
            )
        if status >= 400:
            raise PermanentError(
                f"HTTP {status} fetching {endpoint} {external_id}", status_code=status
            )
        if not response.content.strip():
            raise PermanentError(f"Empty response for {endpoint} {external_id}")
        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise PermanentError(
                f"Malformed JSON for {endpoint} {external_id}") from exc
        return _unwrap_detail(body, endpoint, external_id)


def _envelope_message(body: Any) -> str:
    if not isinstance(body, dict):
        return ""
    message = body.get("d")
    if isinstance(message, list):
        return "; ".join(str(part) for part in message)
    if isinstance(message, str):
        return message
    return ""


def _unwrap_detail(body: Any, endpoint: str, external_id: str) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise PermanentError(f"Invalid response structure for {endpoint} {external_id}")
    if not body.get("s", False):
        message = _envelope_message(body) or "request rejected"
        if any(marker in message.lower() for marker in _POOL_EXHAUSTION_MARKERS):
            raise TransientError(f"{endpoint} {external_id}: {message}")
        raise PermanentError(f"{endpoint} {external_id}: {message}")
    detail = body.get("d")
    if not isinstance(detail, dict) or detail.get("id") in (None, ""):
        raise PermanentError(f"Invalid response structure for {endpoint} {external_id}")
    return detail
