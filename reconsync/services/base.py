"""Base service class with shared connection and infrastructure patterns."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Callable, TypeVar

from reconsync.infrastructure.db import ensure_schema, get_connection
from reconsync.infrastructure.observability import get_logger

ConnectionFactory = Callable[[], AbstractContextManager[sqlite3.Connection]]
T = TypeVar("T")


class BaseService:
    """Base class for service layer implementations.

    Provides a connection factory (injectable for tests), schema
    initialisation on every connection it hands out, and a module logger.

    Example usage:
        service = MyService.from_sqlite_path("/path/to/db.sqlite")
        # Tests pass their own factory:
        service = MyService(lambda: get_connection(tmp_path / "test.db"))
    """

    def __init__(self, connection_factory: ConnectionFactory) -> None:
        self._connection_factory = connection_factory
        self._logger = get_logger(self.__class__.__module__)

    @classmethod
    def from_sqlite_path(cls, db_path: str, *args, **kwargs) -> "BaseService":
        def connection_factory() -> AbstractContextManager[sqlite3.Connection]:
            return get_connection(db_path)

        return cls(connection_factory, *args, **kwargs)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection with the schema applied."""
        with self._connection_factory() as conn:
            ensure_schema(conn)
            yield conn

    def _with_connection(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        with self._connection() as conn:
            return fn(conn)
