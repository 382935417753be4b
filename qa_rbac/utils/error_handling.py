"""
Error handling and exception management for the RBAC core.

Every error raised by the core is an ``ApplicationError`` classified along two
axes, category and severity, from which three flags are derived:

- ``should_log``: true unless the error is a Low-severity User error
- ``should_alert``: true only for Critical System errors
- ``retryable``: true for non-Critical System errors

Stores surface storage failures as ``DatabaseError`` (System), services raise
business-rule violations as ``BusinessLogicError``/``ConflictError`` and
lookups that miss raise ``NotFoundError`` (User). Collaborating HTTP layers
serialise ``to_dict()`` and use ``status_code``; ``register_error_handlers``
does this for Flask applications.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify

from qa_rbac.utils.logging import get_logger


logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Error categories for classification and handling."""
    USER = "user"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    BUSINESS = "business"
    SYSTEM = "system"


class ErrorSeverity(Enum):
    """Error severity levels for monitoring and alerting."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def classify_status_code(status_code: int) -> Tuple[ErrorCategory, ErrorSeverity]:
    """
    Derive a (category, severity) pair from an HTTP-equivalent status code.

    Used when an error is raised with only a status code.
    """
    if 400 <= status_code < 500:
        if status_code == 401:
            return ErrorCategory.AUTHENTICATION, ErrorSeverity.LOW
        if status_code == 403:
            return ErrorCategory.AUTHORIZATION, ErrorSeverity.LOW
        if status_code == 422:
            return ErrorCategory.VALIDATION, ErrorSeverity.LOW
        if status_code == 409:
            return ErrorCategory.BUSINESS, ErrorSeverity.MEDIUM
        return ErrorCategory.USER, ErrorSeverity.LOW
    if status_code >= 500:
        return ErrorCategory.SYSTEM, ErrorSeverity.CRITICAL
    return ErrorCategory.BUSINESS, ErrorSeverity.MEDIUM


# ==================== CUSTOM EXCEPTION HIERARCHY ====================

class ApplicationError(Exception):
    """
    Base exception class for all application-specific errors.

    Args:
        message: Developer-facing message
        status_code: HTTP-equivalent status code
        category: Error category; derived from ``status_code`` when omitted
        severity: Error severity; derived from ``status_code`` when omitted
        is_operational: False for faults the process cannot reason about
        error_code: Stable machine-readable code, defaults to the class name
        details: Extra structured context
    """

    default_status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        category: Optional[ErrorCategory] = None,
        severity: Optional[ErrorSeverity] = None,
        is_operational: bool = True,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status_code

        derived_category, derived_severity = classify_status_code(self.status_code)
        self.category = category or derived_category
        self.severity = severity or derived_severity

        self.is_operational = is_operational
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.original_error = original_error
        self.correlation_id = str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc)

    @property
    def should_log(self) -> bool:
        return not (
            self.category is ErrorCategory.USER
            and self.severity is ErrorSeverity.LOW
        )

    @property
    def should_alert(self) -> bool:
        return (
            self.category is ErrorCategory.SYSTEM
            and self.severity is ErrorSeverity.CRITICAL
        )

    @property
    def retryable(self) -> bool:
        return (
            self.category is ErrorCategory.SYSTEM
            and self.severity is not ErrorSeverity.CRITICAL
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for logging and response."""
        return {
            'error_code': self.error_code,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'status_code': self.status_code,
            'is_operational': self.is_operational,
            'should_log': self.should_log,
            'should_alert': self.should_alert,
            'retryable': self.retryable,
            'correlation_id': self.correlation_id,
            'timestamp': self.timestamp.isoformat(),
            'details': self.details,
        }

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__}(status={self.status_code}, "
            f"category={self.category.value}, severity={self.severity.value}, "
            f"message={self.message!r})>"
        )


class NotFoundError(ApplicationError):
    """Raised when a Permission, Role or assignment lookup misses."""

    default_status_code = 404

    def __init__(self, message: str = "Resource not found", **kwargs):
        kwargs.setdefault('category', ErrorCategory.USER)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        super().__init__(message, **kwargs)


class ValidationError(ApplicationError):
    """Raised when input validation fails."""

    default_status_code = 422

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.VALIDATION)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        super().__init__(message, **kwargs)
        self.field_errors = field_errors or {}
        if self.field_errors:
            self.details['field_errors'] = self.field_errors


class AuthenticationError(ApplicationError):
    """Raised when the caller's identity cannot be established."""

    default_status_code = 401

    def __init__(self, message: str = "Authentication required", **kwargs):
        kwargs.setdefault('category', ErrorCategory.AUTHENTICATION)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        super().__init__(message, **kwargs)


class AuthorizationError(ApplicationError):
    """Raised when an authenticated caller lacks a permission or role."""

    default_status_code = 403

    def __init__(self, message: str = "Access denied", **kwargs):
        kwargs.setdefault('category', ErrorCategory.AUTHORIZATION)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        super().__init__(message, **kwargs)


class BusinessLogicError(ApplicationError):
    """Raised when a well-formed request violates a domain rule."""

    default_status_code = 400

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('category', ErrorCategory.BUSINESS)
        kwargs.setdefault('severity', ErrorSeverity.MEDIUM)
        super().__init__(message, **kwargs)


class ConflictError(BusinessLogicError):
    """Duplicate name or duplicate active assignment."""

    default_status_code = 409


class DatabaseError(ApplicationError):
    """
    Raised when the storage layer fails.

    Connectivity failures are High severity (503, retryable); anything else is
    Critical (500, alerting). Always non-operational.
    """

    default_status_code = 500

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.SYSTEM)
        kwargs.setdefault('severity', ErrorSeverity.CRITICAL)
        kwargs.setdefault('is_operational', False)
        super().__init__(message, **kwargs)
        self.operation = operation
        if operation:
            self.details['operation'] = operation

    @classmethod
    def unavailable(cls, message: str, **kwargs) -> 'DatabaseError':
        kwargs.setdefault('status_code', 503)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        return cls(message, **kwargs)


class ConstraintViolationError(DatabaseError):
    """
    A uniqueness constraint rejected a write.

    Stays a System error at the storage boundary; services translate it into
    a ``ConflictError``.
    """

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        super().__init__(message, **kwargs)


# ==================== FLASK INTEGRATION ====================

def log_application_error(error: ApplicationError) -> None:
    """Log an error according to its derived flags."""
    if not error.should_log:
        return
    event = error.to_dict()
    # TimeStamper owns 'timestamp'
    event['error_timestamp'] = event.pop('timestamp')
    if error.should_alert:
        logger.critical("application_error_alert", **event)
    elif error.category is ErrorCategory.SYSTEM:
        logger.error("application_error", **event)
    else:
        logger.warning("application_error", **event)


def register_error_handlers(app: Flask) -> None:
    """
    Register JSON error handlers for ``ApplicationError`` subclasses.

    The response body carries the error's category and message; the status
    code comes from the error itself.
    """

    @app.errorhandler(ApplicationError)
    def handle_application_error(error: ApplicationError):
        log_application_error(error)
        body = {
            'success': False,
            'error': error.error_code,
            'category': error.category.value,
            'message': error.message,
            'correlation_id': error.correlation_id,
        }
        if isinstance(error, ValidationError) and error.field_errors:
            body['field_errors'] = error.field_errors
        return jsonify(body), error.status_code


__all__ = [
    'ErrorCategory',
    'ErrorSeverity',
    'classify_status_code',
    'ApplicationError',
    'NotFoundError',
    'ValidationError',
    'AuthenticationError',
    'AuthorizationError',
    'BusinessLogicError',
    'ConflictError',
    'DatabaseError',
    'ConstraintViolationError',
    'log_application_error',
    'register_error_handlers',
]
