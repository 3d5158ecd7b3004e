"""
Logging setup for weeorm.

Every statement the connection layer sends is logged at DEBUG as
``[SQL] <text>`` with ``sql`` and ``bindings`` attached through ``extra``;
driver failures are logged at ERROR with the same fields. Model code logs
fillable rejections and lifecycle events at DEBUG.

``configure_logging`` installs a single stream handler on the root logger,
either line-oriented for terminals or JSON for log collectors. In JSON mode
the ``extra`` fields appear as top-level keys:

    configure_logging(level="DEBUG", json_logs=True)
    conn.fetch_one("SELECT ? AS ok", [1])
    # {"level": "DEBUG", "logger": "weeorm.infrastructure.connection",
    #  "message": "[SQL] SELECT ? AS ok", "sql": "SELECT ? AS ok", "bindings": [1]}
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields = {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and key != "extra"
    }
    # older call sites pass a nested ``extra={"extra": {...}}`` mapping
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        fields.update(nested)
    return fields


def _json_formatter(record: logging.LogRecord) -> str:
    """Serialize ``record`` to one JSON line; values json cannot encode go through ``str``."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    payload.update(_extra_fields(record))
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def _logging_config(level: str, formatter: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": CONSOLE_FORMAT, "datefmt": CONSOLE_DATEFMT},
            "json": {"()": JsonFormatter},
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
                "level": level,
            }
        },
        "root": {"handlers": ["default"], "level": level},
    }


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
) -> None:
    """
    Install the weeorm handler on the root logger.

    Parameters
    ----------
    level : str
        Root level name. ``"DEBUG"`` includes every executed statement.
    json_logs : bool
        Emit JSON lines instead of ``CONSOLE_FORMAT`` text.
    """
    logging.config.dictConfig(_logging_config(level, "json" if json_logs else "console"))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
