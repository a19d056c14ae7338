"""
reconsync package initializer.

This package keeps a local SQLite store reconciled with a remote
system-of-record that exposes paginated, version-stamped listings and
per-record detail endpoints.

The package exposes a ``__version__`` attribute indicating the installed
version. The version is read from pyproject.toml via importlib.metadata –
this is the single source of truth.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("reconsync")
except PackageNotFoundError:
    # Package is not installed (running from source without pip install -e .)
    __version__ = "0.0.0.dev"

__all__: list[str] = ["__version__"]
