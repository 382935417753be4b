"""Shared utilities: structured logging, error hierarchy, time helpers."""

from qa_rbac.utils.logging import configure_logging, get_logger
from qa_rbac.utils.error_handling import (
    ApplicationError,
    AuthenticationError,
    AuthorizationError,
    BusinessLogicError,
    ConflictError,
    ConstraintViolationError,
    DatabaseError,
    ErrorCategory,
    ErrorSeverity,
    NotFoundError,
    ValidationError,
)
from qa_rbac.utils.datetime import now_utc, to_utc

__all__ = [
    'configure_logging',
    'get_logger',
    'ApplicationError',
    'AuthenticationError',
    'AuthorizationError',
    'BusinessLogicError',
    'ConflictError',
    'ConstraintViolationError',
    'DatabaseError',
    'ErrorCategory',
    'ErrorSeverity',
    'NotFoundError',
    'ValidationError',
    'now_utc',
    'to_utc',
]
