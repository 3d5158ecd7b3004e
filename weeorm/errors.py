"""
Exception hierarchy for weeorm.

Driver exceptions (sqlite3, psycopg) never leak out of the connection layer;
they are wrapped in a DataAccessError subclass and chained with ``from``.
"""

from __future__ import annotations

from typing import Optional


class DataAccessError(Exception):
    """Base class for every database-facing failure."""


class ConnectionFailedError(DataAccessError):
    """The database handle could not be established."""


class NoConnectionError(DataAccessError):
    """No connection is bound to the current context."""


class QueryError(DataAccessError):
    """
    A statement failed to execute.

    Attributes
    ----------
    sql : str | None
        The statement text that failed.
    driver_message : str
        The message reported by the underlying driver.
    """

    def __init__(self, driver_message: str, sql: Optional[str] = None) -> None:
        super().__init__(f"Query failed: {driver_message}")
        self.sql = sql
        self.driver_message = driver_message


class TransactionError(DataAccessError):
    """Transaction control was used out of order."""


class RecordStateError(DataAccessError):
    """The record's lifecycle state does not allow the requested operation."""


class InvalidIdentifierError(ValueError):
    """An identifier, operator or direction failed validation before rendering."""


__all__ = [
    "DataAccessError",
    "ConnectionFailedError",
    "NoConnectionError",
    "QueryError",
    "TransactionError",
    "RecordStateError",
    "InvalidIdentifierError",
]
