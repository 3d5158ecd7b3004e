"""
weeorm - Active Record persistence layer for the wee web framework.

This package provides:

- A Connection wrapper over sqlite3 and psycopg with parameterized execution
  and explicit transactions
- A fluent QueryBuilder rendering SELECT/INSERT/UPDATE/DELETE with ordered
  bind values
- An Active Record Model base with fillable/guarded filtering, timestamps,
  soft deletes, lifecycle hooks and lazily resolved, per-instance cached
  relations
- Pooled, per-context connection scoping for concurrent request handling
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from weeorm.config import Settings, get_settings
from weeorm.domain.model import Model, RecordState
from weeorm.domain.relations import BelongsTo, HasMany, HasOne, relation
from weeorm.errors import (
    ConnectionFailedError,
    DataAccessError,
    InvalidIdentifierError,
    NoConnectionError,
    QueryError,
    RecordStateError,
    TransactionError,
)
from weeorm.infrastructure.connection import Connection, PostgresConnection, SqliteConnection
from weeorm.infrastructure.db_factory import connection_scope, open_connection
from weeorm.infrastructure.session import current_connection, use_connection
from weeorm.query.builder import QueryBuilder
from weeorm.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Connections
    "Connection",
    "PostgresConnection",
    "SqliteConnection",
    "connection_scope",
    "open_connection",
    "current_connection",
    "use_connection",
    # Query building
    "QueryBuilder",
    # Models
    "Model",
    "RecordState",
    "relation",
    "HasOne",
    "HasMany",
    "BelongsTo",
    # Errors
    "DataAccessError",
    "ConnectionFailedError",
    "NoConnectionError",
    "QueryError",
    "TransactionError",
    "RecordStateError",
    "InvalidIdentifierError",
    # Logging
    "configure_logging",
    "get_logger",
]
