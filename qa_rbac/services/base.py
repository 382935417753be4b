"""
Base Service Layer

Common plumbing for the RBAC services: input validation, translation of
late storage constraint violations into business conflicts, and structured
logging of service operations.
"""

from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, TypeVar

from qa_rbac.utils.error_handling import (
    ConflictError,
    ConstraintViolationError,
    ValidationError,
)
from qa_rbac.utils.logging import get_logger


T = TypeVar("T")


def log_service_operation(operation: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator logging a service operation at debug level and its failures.

    Application errors propagate unchanged; the log level follows their
    ``should_log`` flag.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(self, *args, **kwargs) -> T:
            self.logger.debug("service_operation_started", operation=operation)
            try:
                result = func(self, *args, **kwargs)
            except Exception as e:
                if getattr(e, 'should_log', True):
                    self.logger.warning(
                        "service_operation_failed",
                        operation=operation,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                raise
            self.logger.debug("service_operation_completed", operation=operation)
            return result

        return wrapper

    return decorator


class BaseService:
    """
    Base class for the RBAC services.

    Services receive their repositories through their constructors; the
    composition root wires them with ``injector``.
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__module__, service=self.__class__.__name__)

    def validate_input(self, data: Dict[str, Any],
                       required_fields: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Validate input data for service operations.

        Args:
            data: Input data dictionary to validate
            required_fields: Field names that must be present and non-empty

        Returns:
            A copy of ``data`` without ``None`` values

        Raises:
            ValidationError: When ``data`` is not a mapping or a field is missing
        """
        if not isinstance(data, dict):
            raise ValidationError("Input data must be a dictionary")

        if required_fields:
            missing = [
                field for field in required_fields
                if data.get(field) is None or (isinstance(data.get(field), str) and not data[field].strip())
            ]
            if missing:
                raise ValidationError(
                    f"Required fields missing: {', '.join(missing)}",
                    field_errors={field: "required" for field in missing},
                )

        return {key: value for key, value in data.items() if value is not None}

    @contextmanager
    def conflict_on_constraint(self, message: str, **details: Any):
        """Re-raise a storage uniqueness violation as a business conflict."""
        try:
            yield
        except ConstraintViolationError as e:
            self.logger.info("constraint_violation_as_conflict", message=message, **details)
            raise ConflictError(message, details=details, original_error=e) from e


__all__ = ['BaseService', 'log_service_operation']
