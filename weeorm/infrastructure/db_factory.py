"""
Connection factory utilities for weeorm.

Provides centralized management of database handles with proper lifecycle
management. The PoolManager singleton owns the psycopg ConnectionPool used
for PostgreSQL and closes it on application exit. ``connection_scope`` is the
unit-of-work entry point: it checks a handle out, binds it as the current
connection, and returns it when the block completes.

Connection establishment fails fast by default; set ``DB_CONNECT_ATTEMPTS``
above 1 to retry transient failures with exponential backoff via tenacity.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from weeorm.config import Settings, get_settings
from weeorm.errors import ConnectionFailedError
from weeorm.infrastructure.connection import Connection, PostgresConnection, SqliteConnection
from weeorm.infrastructure.session import use_connection
from weeorm.utils.logging import get_logger

log = get_logger(__name__)


class PoolManager:
    """
    Thread-safe singleton for managing the PostgreSQL connection pool.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._pool: Optional[ConnectionPool] = None
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_pool(self, settings: Optional[Settings] = None) -> ConnectionPool:
        """
        Get or create the PostgreSQL connection pool.

        Parameters
        ----------
        settings : Settings, optional
            Source of the DSN and pool bounds. Defaults to ``get_settings()``.

        Returns
        -------
        ConnectionPool
            The managed pool; handles are in autocommit mode with dict rows.
        """
        with self._lock:
            if self._pool is None:
                settings = settings or get_settings()
                self._pool = ConnectionPool(
                    conninfo=settings.dsn,
                    min_size=settings.db_pool_min_size,
                    max_size=settings.db_pool_max_size,
                    kwargs={"autocommit": True, "row_factory": dict_row},
                    open=True,
                )
                log.info(
                    "Connection pool created",
                    extra={
                        "min_size": settings.db_pool_min_size,
                        "max_size": settings.db_pool_max_size,
                    },
                )
            return self._pool

    def close_all(self) -> None:
        """
        Close the managed pool and release its connections.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            if self._pool is not None:
                try:
                    self._pool.close()
                    log.info("Connection pool closed")
                finally:
                    self._pool = None


def _connect(settings: Settings) -> Connection:
    if settings.db_driver == "sqlite":
        return SqliteConnection.connect(settings.db_sqlite_path)
    if settings.db_driver == "postgresql":
        return PostgresConnection.connect(
            settings.dsn, statement_timeout_ms=settings.db_statement_timeout_ms
        )
    raise ConnectionFailedError(f"Unsupported database driver: {settings.db_driver!r}")


def open_connection(settings: Optional[Settings] = None) -> Connection:
    """
    Open a dedicated connection for the configured driver.

    Retries ``ConnectionFailedError`` with exponential backoff up to
    ``settings.db_connect_attempts`` attempts (1 means no retry).

    Raises
    ------
    ConnectionFailedError
        If the connection fails after all attempts.
    """
    settings = settings or get_settings()
    retrying = Retrying(
        stop=stop_after_attempt(settings.db_connect_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(ConnectionFailedError),
        reraise=True,
    )
    return retrying(_connect, settings)


@contextmanager
def connection_scope(settings: Optional[Settings] = None) -> Generator[Connection, None, None]:
    """
    Run one unit of work on its own connection.

    PostgreSQL handles are checked out of the shared pool and returned on
    exit; SQLite handles are opened for the block and closed afterwards. The
    connection is bound as the current connection for the block, and any
    transaction still open on exit is rolled back.

    Example
    -------
        with connection_scope() as conn:
            user = User.find(1)
    """
    settings = settings or get_settings()
    if settings.db_driver == "postgresql":
        pool = PoolManager().get_pool(settings)
        with pool.connection() as raw:
            conn = PostgresConnection(raw)
            conn.apply_statement_timeout(settings.db_statement_timeout_ms)
            with _bound(conn):
                yield conn
        return

    conn = open_connection(settings)
    try:
        with _bound(conn):
            yield conn
    finally:
        conn.close()


@contextmanager
def _bound(conn: Connection) -> Generator[Connection, None, None]:
    try:
        with use_connection(conn):
            yield conn
    finally:
        if conn.in_transaction:
            log.warning("Rolling back transaction left open at end of scope")
            conn.rollback()


__all__ = [
    "PoolManager",
    "connection_scope",
    "open_connection",
]
