"""
Database connection wrapper.

A Connection owns exactly one driver handle and is the only place SQL reaches
the driver. It executes parameterized statements, returns rows as plain dicts,
exposes affected-row counts and the last generated key, controls transactions,
and hands out QueryBuilder instances bound to itself.

Two drivers are supported:
- SqliteConnection: stdlib sqlite3, ``?`` placeholders.
- PostgresConnection: psycopg 3, ``%s`` placeholders.

Both run in autocommit mode; ``begin_transaction``/``commit``/``rollback`` (or
the ``transaction()`` context manager) group statements explicitly.
"""

from __future__ import annotations

import abc
import sqlite3
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence

import psycopg
from psycopg.rows import dict_row

from weeorm.errors import ConnectionFailedError, QueryError, TransactionError
from weeorm.query.builder import QueryBuilder
from weeorm.utils.logging import get_logger

log = get_logger(__name__)

Row = Dict[str, Any]


class Connection(abc.ABC):
    """
    Driver-neutral statement execution over one database handle.

    Subclasses set ``driver``, ``placeholder`` and ``driver_errors`` and
    implement ``last_insert_id``. Drivers that set ``returning_keys`` read
    generated keys from ``INSERT ... RETURNING`` instead.
    """

    driver: str
    placeholder: str = "?"
    driver_errors: tuple = ()
    returning_keys: bool = False

    def __init__(self, raw: Any) -> None:
        self._raw = raw
        self._in_transaction = False
        self._closed = False

    @property
    def raw(self) -> Any:
        """The underlying driver connection."""
        return self._raw

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def closed(self) -> bool:
        return self._closed

    # Statement execution

    def query(self, sql: str, bindings: Optional[Sequence[Any]] = None) -> Any:
        """
        Execute a parameterized statement and return the driver cursor.

        Raises
        ------
        QueryError
            On any driver-level failure, including constraint violations.
        """
        params = list(bindings or [])
        log.debug(f"[SQL] {sql}", extra={"sql": sql, "bindings": params})
        try:
            return self._raw.execute(sql, params)
        except self.driver_errors as exc:
            log.error(f"[SQL FAILED] {exc}", extra={"sql": sql, "bindings": params})
            raise QueryError(str(exc), sql=sql) from exc

    def fetch_one(self, sql: str, bindings: Optional[Sequence[Any]] = None) -> Optional[Row]:
        cursor = self.query(sql, bindings)
        row = cursor.fetchone()
        return dict(row) if row is not None else None

    def fetch_all(self, sql: str, bindings: Optional[Sequence[Any]] = None) -> List[Row]:
        cursor = self.query(sql, bindings)
        return [dict(row) for row in cursor.fetchall()]

    def execute(self, sql: str, bindings: Optional[Sequence[Any]] = None) -> int:
        """Execute a statement and return the number of affected rows."""
        cursor = self.query(sql, bindings)
        return cursor.rowcount

    @abc.abstractmethod
    def last_insert_id(self) -> Any:
        """Return the key generated by the most recent INSERT on this handle."""
        raise NotImplementedError

    # Transactions

    def begin_transaction(self) -> None:
        if self._in_transaction:
            raise TransactionError("A transaction is already active on this connection.")
        self.query("BEGIN")
        self._in_transaction = True
        log.debug("Transaction started", extra={"driver": self.driver})

    def commit(self) -> None:
        if not self._in_transaction:
            raise TransactionError("No active transaction to commit.")
        try:
            self.query("COMMIT")
        finally:
            self._in_transaction = False
        log.debug("Transaction committed", extra={"driver": self.driver})

    def rollback(self) -> None:
        if not self._in_transaction:
            raise TransactionError("No active transaction to roll back.")
        try:
            self.query("ROLLBACK")
        finally:
            self._in_transaction = False
        log.debug("Transaction rolled back", extra={"driver": self.driver})

    @contextmanager
    def transaction(self) -> Generator["Connection", None, None]:
        """
        Run a block inside a transaction.

        Commits when the block completes, rolls back and re-raises otherwise.

        Example
        -------
            with conn.transaction():
                user = User.create({"name": "a"})
                Post.create({"user_id": user.id, "title": "hello"})
        """
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    # Builders

    def table(
        self,
        name: str,
        primary_key: str = "id",
        hydrate: Optional[Callable[[Row], Any]] = None,
    ) -> QueryBuilder:
        """Return a fresh QueryBuilder for ``name`` bound to this connection."""
        return QueryBuilder(name, self, primary_key=primary_key, hydrate=hydrate)

    # Lifecycle

    def close(self) -> None:
        if self._closed:
            return
        self._raw.close()
        self._closed = True
        log.debug("Connection closed", extra={"driver": self.driver})

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{self.__class__.__name__} driver={self.driver} {state}>"


def _dict_row(cursor: sqlite3.Cursor, row: tuple) -> Row:
    return {column[0]: value for column, value in zip(cursor.description, row)}


class SqliteConnection(Connection):
    """Connection over the standard library sqlite3 driver."""

    driver = "sqlite"
    placeholder = "?"
    driver_errors = (sqlite3.Error,)

    @classmethod
    def connect(cls, path: str = ":memory:") -> "SqliteConnection":
        """
        Open a SQLite database file (or ``:memory:``).

        Raises
        ------
        ConnectionFailedError
            If the file cannot be opened.
        """
        try:
            raw = sqlite3.connect(path, isolation_level=None)
        except sqlite3.Error as exc:
            log.error(f"SQLite connection failed: {exc}", extra={"path": path})
            raise ConnectionFailedError(f"Database connection failed: {exc}") from exc
        raw.row_factory = _dict_row
        log.debug("SQLite connection opened", extra={"path": path})
        return cls(raw)

    def last_insert_id(self) -> Any:
        row = self.fetch_one("SELECT last_insert_rowid() AS id")
        return row["id"] if row else None


class PostgresConnection(Connection):
    """Connection over psycopg 3 with dict rows and autocommit."""

    driver = "postgresql"
    placeholder = "%s"
    driver_errors = (psycopg.Error,)
    returning_keys = True

    @classmethod
    def connect(cls, dsn: str, statement_timeout_ms: int = 0) -> "PostgresConnection":
        """
        Open a dedicated PostgreSQL connection.

        Raises
        ------
        ConnectionFailedError
            If the server is unreachable or rejects the credentials.
        """
        try:
            raw = psycopg.connect(dsn, autocommit=True, row_factory=dict_row)
        except psycopg.Error as exc:
            log.error(f"PostgreSQL connection failed: {exc}")
            raise ConnectionFailedError(f"Database connection failed: {exc}") from exc
        conn = cls(raw)
        conn.apply_statement_timeout(statement_timeout_ms)
        log.debug("PostgreSQL connection opened")
        return conn

    def apply_statement_timeout(self, timeout_ms: int) -> None:
        """Set a server-side deadline for every statement; 0 leaves it disabled."""
        if timeout_ms > 0:
            self.query(f"SET statement_timeout = {int(timeout_ms)}")

    def last_insert_id(self) -> Any:
        """
        Last sequence value drawn in this session.

        Query builders use ``INSERT ... RETURNING`` on this driver; this is
        only meaningful right after an insert into a serial-keyed table.
        """
        row = self.fetch_one("SELECT lastval() AS id")
        return row["id"] if row else None


__all__ = ["Connection", "PostgresConnection", "Row", "SqliteConnection"]
