"""HTTP access to the remote catalog."""

from .client import (
    ListFilter,
    ListingError,
    ListPage,
    PermanentError,
    RateLimiter,
    RemoteCatalogClient,
    RemoteError,
    TransientError,
    build_auth_headers,
    classify_error,
    sign_timestamp,
)

__all__ = [
    "ListFilter",
    "ListPage",
    "ListingError",
    "PermanentError",
    "RateLimiter",
    "RemoteCatalogClient",
    "RemoteError",
    "TransientError",
    "build_auth_headers",
    "classify_error",
    "sign_timestamp",
]
