"""Error handling module for civicwatch batch operations."""

from .handlers import (
    ErrorHandler,
    ErrorContext,
    ErrorSeverity,
    ErrorCategory,
    ItemError,
    CivicWatchError,
    ExternalServiceError,
    RateLimitError,
    ValidationError,
    PersistenceError,
    ConfigurationError,
)

__all__ = [
    "ErrorHandler",
    "ErrorContext",
    "ErrorSeverity",
    "ErrorCategory",
    "ItemError",
    "CivicWatchError",
    "ExternalServiceError",
    "RateLimitError",
    "ValidationError",
    "PersistenceError",
    "ConfigurationError",
]
