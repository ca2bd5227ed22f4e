# backend/portfolio_analytics/utils/logging.py
"""
Logging configuration for the portfolio performance API.

This module provides centralized logging setup with:
- Environment-based log levels (LOG_LEVEL)
- Request context on every record (correlation ID and caller user ID)
- JSON format option for log aggregation (LOG_FORMAT=json)
- Suppression of noisy third-party library logs

Usage:
    from portfolio_analytics.utils import setup_logging

    # In main.py, before creating the FastAPI app
    setup_logging()

Log Levels:
    DEBUG   - Per-group pipeline detail, cache hits/misses
    INFO    - Report requests and completion summaries
    WARNING - Missing prices, oversold lots, IRR fallbacks, retries
    ERROR   - Provider or database failures
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from portfolio_analytics.config import settings
from portfolio_analytics.utils.context import get_correlation_id, get_current_user_id

# =============================================================================
# CONSTANTS
# =============================================================================

# timestamp | level | correlation_id | user | logger_name | message
DEFAULT_TEXT_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(correlation_id)s | user=%(user_id)s | "
    "%(name)s | %(message)s"
)
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "no-correlation-id"
NO_USER = "-"

# Third-party loggers to quiet down to WARNING
NOISY_LOGGERS = [
    "yfinance",
    "urllib3",
    "urllib3.connectionpool",
    "httpx",
    "httpcore",
    "peewee",
    "asyncio",
]

# LogRecord attributes that are not "extra" fields
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "correlation_id", "user_id", "message", "taskName",
}


# =============================================================================
# CONTEXT FILTER
# =============================================================================

class RequestContextFilter(logging.Filter):
    """
    Logging filter that stamps request context onto log records.

    Adds 'correlation_id' and 'user_id' so both text and JSON formats can
    reference them. Records emitted outside a request get placeholders.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        user_id = get_current_user_id()
        record.user_id = user_id if user_id is not None else NO_USER
        return True


# =============================================================================
# JSON FORMATTER
# =============================================================================

class JsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.123+00:00",
        "level": "INFO",
        "logger": "portfolio_analytics.services.performance.service",
        "correlation_id": "abc-123-def",
        "user_id": 7,
        "message": "Performance report built: 3 groups, 13 dates",
        "extra": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "user_id": getattr(record, "user_id", NO_USER),
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                extra[key] = str(value)

        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry)


# =============================================================================
# SETUP FUNCTION
# =============================================================================

def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        suppress_noisy_loggers: bool = True,
) -> None:
    """
    Configure application-wide logging with request context support.

    Call once at application startup, before creating the FastAPI app.

    Args:
        level: Log level name. Defaults to settings.log_level.
        log_format: 'text' or 'json'. Defaults to settings.log_format.
        suppress_noisy_loggers: Set third-party loggers to WARNING.

    Example:
        setup_logging(level="DEBUG", log_format="text")
    """
    log_level_str = level or settings.log_level
    log_level = _get_log_level(log_level_str)
    format_type = log_format or settings.log_format

    if format_type.lower() == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt=DEFAULT_TEXT_FORMAT,
            datefmt=DEFAULT_DATE_FORMAT,
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if suppress_noisy_loggers:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(
        f"Logging configured: level={log_level_str}, format={format_type}",
        extra={"config": {"level": log_level_str, "format": format_type}},
    )


def _get_log_level(level_str: str) -> int:
    """
    Convert string log level to logging constant.

    Raises:
        ValueError: If level_str is not a valid log level
    """
    level_str = level_str.upper().strip()

    level_mapping = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    if level_str not in level_mapping:
        valid_levels = ", ".join(level_mapping.keys())
        raise ValueError(
            f"Invalid log level: '{level_str}'. "
            f"Valid levels are: {valid_levels}"
        )

    return level_mapping[level_str]


def get_logger(name: str) -> logging.Logger:
    """Return a standard logger; context fields are added by the root handler's filter."""
    return logging.getLogger(name)
