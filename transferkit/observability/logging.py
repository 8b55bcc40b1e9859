"""
Structured JSON logging for transferkit.

Provides JSON-formatted logs for transfer events. Retry attempts, breaker state
changes and terminal failures are all plain ``logging`` records emitted under
the ``transferkit`` logger hierarchy; this module only decides how they look.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from transferkit.config import LoggingConfig

_RESERVED = frozenset(
    [
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
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
    ]
)


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with standard fields:
    - timestamp: ISO 8601 timestamp
    - level: Log level
    - logger: Logger name
    - message: Log message
    - component: Name of the component that owns the logger setup
    - extra: Additional fields from log record (url, status, attempt, ...)
    """

    def __init__(self, component: str, *args, **kwargs):
        """
        Initialize JSON formatter.

        Args:
            component: Name of the application using transferkit (included in all logs)
        """
        super().__init__(*args, **kwargs)
        self.component = component

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "component": self.component,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


def setup_logging(
    component: str,
    level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Setup standard logging configuration for transferkit.

    Args:
        component: Name of the application using transferkit
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatter (recommended for production)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("transferkit")
    logger.setLevel(getattr(logging, level.upper()))

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if json_format:
        formatter: logging.Formatter = JSONFormatter(component=component)
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def setup_logging_from_config(component: str, config: LoggingConfig) -> logging.Logger:
    """Apply a LoggingConfig section."""
    return setup_logging(
        component,
        level=config.level,
        json_format=config.format == "json",
    )
