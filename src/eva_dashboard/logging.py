"""
Structured logging for the EVA dashboard.

Log records are emitted as one JSON object per line so round failures,
day finalizations and lifecycle events can be filtered by field. Modules
obtain child loggers of the ``eva_dashboard`` logger via get_logger().
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from eva_dashboard.config import LoggingConfig

ROOT_LOGGER_NAME = "eva_dashboard"

# Plain-text format used when json_format is disabled
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes present on every LogRecord; anything else came in via `extra`
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JSONFormatter(logging.Formatter):
    """
    A logging formatter that outputs log records as JSON objects.

    Each entry has ``timestamp`` (UTC, ISO 8601), ``level``, ``logger`` and
    ``message``, plus every non-None field passed through ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted string representation of the log record.
        """
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in set(record.__dict__.keys()) - _RESERVED_ATTRS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """
    Configure the ``eva_dashboard`` logger from a LoggingConfig.

    Handlers from an earlier call are replaced, and records stop propagating
    to the root logger so uvicorn's own handlers do not print them twice.

    Example:
        >>> logger = setup_logging(LoggingConfig(level="debug"))
        >>> logger.info("Dashboard started", extra={"port": 8547})
    """
    config = config or LoggingConfig()
    level = getattr(logging, config.level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    if config.log_to_stdout:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(
            JSONFormatter() if config.json_format else logging.Formatter(DEFAULT_LOG_FORMAT)
        )
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Logger name, typically ``__name__``. The ``eva_dashboard.``
            prefix is added when missing.

    Returns:
        A child logger of the dashboard's root logger.
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)
