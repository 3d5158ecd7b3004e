"""
Infrastructure package for weeorm.

Centralizes database connectivity concerns (driver connections, pooling,
per-context binding). Keep this layer focused on I/O and resource management,
decoupled from the query builder and model logic.
"""

from weeorm.infrastructure.connection import Connection, PostgresConnection, SqliteConnection
from weeorm.infrastructure.db_factory import PoolManager, connection_scope, open_connection
from weeorm.infrastructure.session import bound_connection, current_connection, use_connection

__all__ = [
    "Connection",
    "PostgresConnection",
    "SqliteConnection",
    "PoolManager",
    "connection_scope",
    "open_connection",
    "bound_connection",
    "current_connection",
    "use_connection",
]
