"""
Per-context connection binding.

A context variable stores the Connection owned by the current unit of work, so
models can reach the database without a process-wide singleton and without the
connection being threaded through every call. Each thread and each asyncio task
sees its own binding.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import TYPE_CHECKING, Generator, Optional

from weeorm.errors import NoConnectionError

if TYPE_CHECKING:
    from weeorm.infrastructure.connection import Connection

_current_connection: contextvars.ContextVar[Optional["Connection"]] = contextvars.ContextVar(
    "weeorm_current_connection", default=None
)


def current_connection() -> "Connection":
    """
    Return the Connection bound to the current context.

    Raises
    ------
    NoConnectionError
        If no connection has been bound with ``use_connection``.
    """
    conn = _current_connection.get()
    if conn is None:
        raise NoConnectionError(
            "No database connection bound to this context. "
            "Wrap the call in use_connection() or connection_scope()."
        )
    return conn


def bound_connection() -> Optional["Connection"]:
    """Return the bound Connection, or None."""
    return _current_connection.get()


@contextmanager
def use_connection(conn: "Connection") -> Generator["Connection", None, None]:
    """
    Bind ``conn`` as the current connection for the duration of the block.

    Bindings nest: the previous connection is restored on exit.

    Example
    -------
        with use_connection(conn):
            user = User.find(1)
    """
    token = _current_connection.set(conn)
    try:
        yield conn
    finally:
        _current_connection.reset(token)


__all__ = ["bound_connection", "current_connection", "use_connection"]
