from __future__ import annotations

import json
import logging

from weeorm.utils.logging import _json_formatter, _logging_config, configure_logging, get_logger

EXPECTED_BINDINGS = [1, "ada"]


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.DEBUG,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_statement_extras() -> None:
    record = _record("[SQL] SELECT * FROM users WHERE id = ? AND name = ?")
    record.sql = "SELECT * FROM users WHERE id = ? AND name = ?"
    record.bindings = EXPECTED_BINDINGS

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "DEBUG"
    assert payload["logger"] == "test.logger"
    assert payload["sql"].startswith("SELECT * FROM users")
    assert payload["bindings"] == EXPECTED_BINDINGS
    assert "lineno" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"model": "User"}

    payload = json.loads(_json_formatter(record))

    assert payload["model"] == "User"


def test_json_formatter_stringifies_unserializable_values() -> None:
    record = _record()
    record.bindings = [object.__new__(object)]

    payload = json.loads(_json_formatter(record))

    assert payload["bindings"][0].startswith("<object object")



def test_logging_config_selects_formatter_and_level() -> None:
    config = _logging_config("DEBUG", "json")

    assert config["handlers"]["default"]["formatter"] == "json"
    assert config["root"]["level"] == "DEBUG"
    assert config["disable_existing_loggers"] is False

def test_statements_are_logged_at_debug(conn, caplog) -> None:
    with caplog.at_level(logging.DEBUG, logger="weeorm.infrastructure.connection"):
        conn.fetch_one("SELECT ? AS answer", [42])

    statement_logs = [r for r in caplog.records if getattr(r, "sql", None) == "SELECT ? AS answer"]
    assert len(statement_logs) == 1
    assert statement_logs[0].bindings == [42]


def test_configure_logging_keeps_module_loggers_enabled() -> None:
    module_logger = get_logger("weeorm.domain.model")

    configure_logging(level="WARNING", json_logs=True)

    assert not module_logger.disabled
    assert logging.getLogger().level == logging.WARNING
