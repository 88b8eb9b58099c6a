"""Structured logging configuration for civicwatch."""

import logging
import json
import sys
import time
from typing import Dict, Any, Optional
import threading
from contextlib import contextmanager

from .utils import utc_now


# Thread-local storage for context
_context = threading.local()

NOISY_LOGGERS = ["urllib3", "requests", "httpx", "anthropic"]


class StructuredFormatter(logging.Formatter):
    """Custom formatter that outputs structured JSON logs."""

    SENSITIVE_FIELDS = {
        "api_key", "password", "token", "secret", "authorization",
        "subscription_token", "access_token", "private_key"
    }

    RESERVED_ATTRS = {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "getMessage", "exc_info", "exc_text",
        "stack_info", "taskName", "message"
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: The log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            "timestamp": utc_now().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        if hasattr(_context, "data"):
            log_data.update(_context.data)

        for key, value in record.__dict__.items():
            if key in self.RESERVED_ATTRS:
                continue
            if self._is_sensitive_field(key):
                log_data[key] = "[REDACTED]"
            elif isinstance(value, dict) and key == "headers":
                log_data[key] = self._redact_headers(value)
            else:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)

    def _is_sensitive_field(self, field_name: str) -> bool:
        """Check if a field name indicates sensitive data."""
        field_lower = field_name.lower()
        return any(sensitive in field_lower for sensitive in self.SENSITIVE_FIELDS)

    def _redact_headers(self, headers: Dict[str, Any]) -> Dict[str, Any]:
        """Redact sensitive headers such as X-Subscription-Token."""
        redacted = {}
        for key, value in headers.items():
            normalized = key.lower().replace("-", "_")
            if self._is_sensitive_field(normalized):
                redacted[key] = "[REDACTED]"
            else:
                redacted[key] = value
        return redacted


def setup_logging(
    format: str = "text",
    level: str = "INFO",
    log_file: Optional[str] = None
) -> None:
    """Configure logging for the application.

    Args:
        format: Log format ("json" or "text")
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path to write logs to
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if format == "json":
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)


def log_performance(
    logger_name: str,
    operation: str,
    duration_ms: float,
    **kwargs
) -> None:
    """Log how long an operation took."""
    logger = get_logger(logger_name)
    kwargs["duration_ms"] = duration_ms
    logger.info(f"{operation} completed in {duration_ms:.0f}ms", extra=kwargs)


@contextmanager
def log_context(**kwargs):
    """Context manager to add fields to all JSON logs within the context.

    Example:
        with log_context(affair_id="a1", phase="classification"):
            logger.info("Classifying affair")
    """
    if not hasattr(_context, "data"):
        _context.data = {}

    old_context = _context.data.copy()
    _context.data.update(kwargs)

    try:
        yield
    finally:
        _context.data = old_context


class Timer:
    """Context manager for timing operations.

    Example:
        with Timer() as timer:
            run_pass()
        log_performance(__name__, "moderation pass", timer.duration_ms)
    """

    def __init__(self):
        self.start_time = None
        self.end_time = None
        self.duration_ms = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.time()
        self.duration_ms = (self.end_time - self.start_time) * 1000
