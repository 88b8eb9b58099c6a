"""Error taxonomy and handlers with context preservation."""

import traceback
from typing import Any, Dict, Optional
from datetime import datetime
from contextlib import contextmanager
import threading
from dataclasses import dataclass, field
from enum import Enum
import logging
import sqlite3

import requests

from ..security.audit import AuditLogger
from ..utils import utc_now


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    EXTERNAL_SERVICE = "external_service"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    PERSISTENCE = "persistence"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    operation: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "operation": self.operation,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ItemError:
    """A failure recorded against one item of a batch pass."""
    item_id: str
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, item_id: str, error: Exception) -> "ItemError":
        message = error.message if isinstance(error, CivicWatchError) else str(error)
        return cls(item_id=item_id, error_type=type(error).__name__, message=message)


class CivicWatchError(Exception):
    """Base exception for all civicwatch errors."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.cause = cause
        self.severity = severity
        self.category = category
        self.retryable = retryable
        self.timestamp = utc_now()

        # Capture stack trace
        self.stack_trace = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_message": self.message,
            "context": self.context.to_dict() if self.context else None,
            "cause": str(self.cause) if self.cause else None,
            "severity": self.severity.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
        }


class ExternalServiceError(CivicWatchError):
    """Network failure, timeout or non-success response from a third party."""

    def __init__(
        self,
        message: str,
        service: str = "unknown",
        status_code: Optional[int] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        retryable = status_code in [429, 500, 502, 503, 504] if status_code else True

        if status_code in (401, 403):
            severity = ErrorSeverity.CRITICAL
        elif status_code and status_code >= 500:
            severity = ErrorSeverity.HIGH
        else:
            severity = ErrorSeverity.MEDIUM

        super().__init__(
            message,
            context=context,
            cause=cause,
            severity=severity,
            category=ErrorCategory.EXTERNAL_SERVICE,
            retryable=retryable,
        )
        self.service = service
        self.status_code = status_code


class RateLimitError(ExternalServiceError):
    """The remote service asked us to slow down."""

    def __init__(
        self,
        message: str,
        service: str = "unknown",
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            service=service,
            status_code=429,
            context=context,
            cause=cause,
        )
        self.retry_after = retry_after
        self.severity = ErrorSeverity.HIGH
        self.category = ErrorCategory.RATE_LIMIT
        self.retryable = True


class ValidationError(CivicWatchError):
    """An operation was asked to perform an invalid transition."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            retryable=False,
        )
        self.field = field
        self.value = value


class PersistenceError(CivicWatchError):
    """A transactional write failed and was rolled back."""

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=context,
            cause=cause,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.PERSISTENCE,
            retryable=False,
        )
        self.operation = operation


class ConfigurationError(CivicWatchError):
    """Required setup is missing."""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )
        self.setting = setting


class ErrorHandler:
    """Centralized error handler with context preservation."""

    def __init__(self, audit_logger: Optional[AuditLogger] = None):
        """Initialize error handler.

        Args:
            audit_logger: Optional audit logger instance
        """
        self.audit_logger = audit_logger or AuditLogger()
        self._context_stack = threading.local()
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def error_context(self, **kwargs):
        """Context manager for error context.

        Usage:
            with error_handler.error_context(operation="classify", resource_id="a1"):
                ...
        """
        if not hasattr(self._context_stack, "contexts"):
            self._context_stack.contexts = []

        context = ErrorContext(**kwargs)
        self._context_stack.contexts.append(context)

        try:
            yield context
        finally:
            if self._context_stack.contexts:
                self._context_stack.contexts.pop()

    def get_current_context(self) -> Optional[ErrorContext]:
        """Get current error context."""
        if hasattr(self._context_stack, "contexts") and self._context_stack.contexts:
            return self._context_stack.contexts[-1]
        return None

    def handle_error(
        self,
        error: Exception,
        operation: Optional[str] = None,
        reraise: bool = True,
    ) -> Optional[CivicWatchError]:
        """Handle an error with context preservation.

        Args:
            error: The error to handle
            operation: Operation being performed
            reraise: Whether to re-raise the error

        Returns:
            Wrapped error if applicable
        """
        context = self.get_current_context()
        if operation and context:
            context.operation = operation

        if isinstance(error, CivicWatchError):
            wrapped_error = error
            if not wrapped_error.context and context:
                wrapped_error.context = context
        else:
            wrapped_error = self._wrap_error(error, context)

        self._log_error(wrapped_error)

        if reraise:
            raise wrapped_error

        return wrapped_error

    def _wrap_error(self, error: Exception, context: Optional[ErrorContext]) -> CivicWatchError:
        """Wrap a generic exception in the matching civicwatch error type."""
        error_str = str(error) or error.__class__.__name__

        if isinstance(error, requests.RequestException):
            response = getattr(error, "response", None)
            return ExternalServiceError(
                error_str,
                status_code=getattr(response, "status_code", None),
                context=context,
                cause=error,
            )
        elif isinstance(error, sqlite3.Error):
            operation = context.operation if context else "unknown"
            return PersistenceError(error_str, operation=operation, context=context, cause=error)
        else:
            return CivicWatchError(error_str, context=context, cause=error)

    def _log_error(self, error: CivicWatchError) -> None:
        """Log error with appropriate severity."""
        error_dict = error.to_dict()

        self.audit_logger.log_error(
            error_type=error.__class__.__name__,
            error_message=error.message,
            context=error_dict,
        )

        if error.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(f"Critical error: {error.message}")
        elif error.severity == ErrorSeverity.HIGH:
            self.logger.error(f"Error: {error.message}")
        elif error.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(f"Warning: {error.message}")
        else:
            self.logger.info(f"Info: {error.message}")

