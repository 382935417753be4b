"""
Flask authorization decorators.

The authenticated user id is expected on ``flask.g.user_id``, placed there by
the token layer that runs before the view. The decorators validate its shape
against the active backend, resolve the user's effective permissions or roles
through the services on ``current_app.injector`` and raise
``AuthenticationError`` (401) or ``AuthorizationError`` (403); the
application's error handlers render those as JSON.

Example:
    >>> @app.route('/questions', methods=['POST'])
    >>> @require_permission('questions:create')
    >>> def create_question():
    ...     ...
"""

from functools import wraps
from typing import Callable, Iterable

from flask import current_app, g

from qa_rbac.database.adapters import DatabaseAdapter
from qa_rbac.repositories.role import RoleRepository
from qa_rbac.services.permission_resolver import PermissionResolver
from qa_rbac.services.user_role_service import UserRoleService
from qa_rbac.utils.error_handling import AuthenticationError, AuthorizationError
from qa_rbac.utils.logging import get_logger


logger = get_logger(__name__)


def current_user_id() -> str:
    """
    Return the authenticated user id for the current request.

    Raises:
        AuthenticationError: No user id is set, or it is not a valid id for
            the active backend
    """
    user_id = getattr(g, 'user_id', None)
    if not user_id:
        raise AuthenticationError("Authentication required")

    adapter = current_app.injector.get(DatabaseAdapter)
    if not adapter.is_valid_id(user_id):
        logger.warning("malformed_user_id", backend=adapter.kind.value)
        raise AuthenticationError("Invalid user identity")
    return user_id


def _permission_guard(check: Callable[[PermissionResolver, str], bool],
                      required: Iterable[str], mode: str) -> Callable:
    required = list(required)

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_id = current_user_id()
            resolver = current_app.injector.get(PermissionResolver)
            if not check(resolver, user_id):
                logger.info("permission_denied", user_id=user_id, required=required, mode=mode)
                raise AuthorizationError(
                    f"Missing required permission(s): {', '.join(required)}",
                    details={'required': required, 'mode': mode},
                )
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def require_permission(permission: str) -> Callable:
    """Allow the view only for users holding ``permission``."""
    return _permission_guard(
        lambda resolver, user_id: resolver.has_permission(user_id, permission),
        [permission], 'single',
    )


def require_any_permission(*permissions: str) -> Callable:
    return _permission_guard(
        lambda resolver, user_id: resolver.has_any_permission(user_id, permissions),
        permissions, 'any',
    )


def require_all_permissions(*permissions: str) -> Callable:
    return _permission_guard(
        lambda resolver, user_id: resolver.has_all_permissions(user_id, permissions),
        permissions, 'all',
    )


def require_role(role_name: str) -> Callable:
    """
    Allow the view only for users holding the role named ``role_name``
    through an effective assignment.
    """

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_id = current_user_id()
            role = current_app.injector.get(RoleRepository).find_by_name(role_name)
            user_roles = current_app.injector.get(UserRoleService)
            if role is None or not user_roles.has_role(user_id, role.id):
                logger.info("role_denied", user_id=user_id, required_role=role_name)
                raise AuthorizationError(
                    f"Role '{role_name}' required",
                    details={'required_role': role_name},
                )
            return f(*args, **kwargs)

        return decorated_function

    return decorator


__all__ = [
    'current_user_id',
    'require_permission',
    'require_any_permission',
    'require_all_permissions',
    'require_role',
]
