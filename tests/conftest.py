"""
Pytest configuration for weeorm.

Provides fixtures for:
- An in-memory SQLite connection with the sample schema, bound to the test
- Statement capture for asserting on issued SQL
- Settings for PostgreSQL integration tests
"""

from __future__ import annotations

import os
from typing import Generator, List, Tuple

import pytest

from weeorm.config import Settings, get_settings
from weeorm.infrastructure.connection import SqliteConnection
from weeorm.infrastructure.session import use_connection

from sample_models import create_schema


@pytest.fixture
def conn() -> Generator[SqliteConnection, None, None]:
    """
    In-memory SQLite connection with the sample tables, bound as the current
    connection for the duration of the test.
    """
    connection = SqliteConnection.connect(":memory:")
    create_schema(connection)
    with use_connection(connection):
        yield connection
    connection.close()


@pytest.fixture
def statements(conn: SqliteConnection, monkeypatch) -> List[Tuple[str, list]]:
    """
    Capture every (sql, bindings) pair sent through ``conn`` from now on.
    """
    captured: List[Tuple[str, list]] = []
    original_query = conn.query

    def _recording_query(sql, bindings=None):
        captured.append((sql, list(bindings or [])))
        return original_query(sql, bindings)

    monkeypatch.setattr(conn, "query", _recording_query)
    return captured


@pytest.fixture
def fresh_settings() -> Generator[None, None, None]:
    """Clear the cached settings before and after a test that edits the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    PostgreSQL settings for integration tests.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        DB_DRIVER="postgresql",
        DB_HOST=os.getenv("DB_HOST", "localhost"),
        DB_PORT=int(os.getenv("DB_PORT", "5432")),
        DB_USER=os.getenv("DB_USER", "postgres"),
        DB_PASSWORD=os.getenv("DB_PASSWORD", "postgres"),
        DB_NAME=os.getenv("DB_NAME", "wee"),
        DB_STATEMENT_TIMEOUT_MS=5000,
        LOG_LEVEL="DEBUG",
    )
