"""
User-role assignment workflow.

An assignment is *effective* while it is active and not past its optional
``expires_at``; every read-side check here evaluates that at call time, so an
expired assignment stops counting immediately even before the sweep flips it
inactive.

At most one active assignment may exist per ``(user_id, role_id)``. The
check-then-create in ``assign_role_to_user`` is backed by a storage-level
unique index over active rows; a write rejected by that index is reported as
the same ``ConflictError`` the pre-check raises.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from qa_rbac.models.entities import UserRoleAssignment
from qa_rbac.repositories.interfaces import IRoleRepository
from qa_rbac.repositories.user_role import UserRoleRepository
from qa_rbac.services.base import BaseService, log_service_operation
from qa_rbac.services.cache import PermissionCache
from qa_rbac.services.role_service import RoleService
from qa_rbac.utils.datetime import now_utc, to_utc
from qa_rbac.utils.error_handling import (
    BusinessLogicError,
    ConflictError,
    NotFoundError,
    ValidationError,
)


class UserRoleService(BaseService):
    """
    Args:
        user_role_repository: Assignment store
        role_repository: Role store, to verify roles being granted
        role_service: Supplies the default role
        cache: Permission cache, invalidated per affected user
    """

    def __init__(self, user_role_repository: UserRoleRepository,
                 role_repository: IRoleRepository,
                 role_service: RoleService,
                 cache: Optional[PermissionCache] = None):
        super().__init__()
        self.user_roles = user_role_repository
        self.roles = role_repository
        self.role_service = role_service
        self.cache = cache or PermissionCache()

    def _require_user_id(self, user_id: str) -> str:
        if not self.user_roles.is_valid_id(user_id):
            raise ValidationError(
                f"Invalid user id: {user_id!r}",
                field_errors={'user_id': "malformed id for the active backend"},
            )
        return user_id

    # ------------------------------------------------------------------ writes

    @log_service_operation('assign_role_to_user')
    def assign_role_to_user(self, user_id: str, role_id: str,
                            assigned_by: Optional[str] = None,
                            expires_at: Optional[datetime] = None) -> UserRoleAssignment:
        """
        Grant ``role_id`` to ``user_id``.

        Raises:
            ValidationError: Malformed user id or an expiry not in the future
            NotFoundError: The role does not exist
            BusinessLogicError: The role is inactive
            ConflictError: The user already holds the role
        """
        self._require_user_id(user_id)
        now = now_utc()
        if expires_at is not None:
            expires_at = to_utc(expires_at)
            if expires_at <= now:
                raise ValidationError(
                    "Role expiry must be in the future",
                    field_errors={'expires_at': "must be in the future"},
                )

        role = self.roles.find_by_id(role_id)
        if not role.is_active:
            raise BusinessLogicError(
                f"Role '{role.name}' is inactive and cannot be assigned",
                details={'role_id': role.id},
            )

        current = self.user_roles.find_active_by_user_and_role(user_id, role.id)
        if current is not None:
            if current.is_effective(now):
                raise ConflictError(
                    f"User already has role '{role.name}'",
                    details={'user_id': user_id, 'role_id': role.id, 'assignment_id': current.id},
                )
            # Expired but not yet swept; it still occupies the active slot
            self.user_roles.update_by_id(current.id, {'is_active': False})

        with self.conflict_on_constraint(
            f"User already has role '{role.name}'", user_id=user_id, role_id=role.id,
        ):
            assignment = self.user_roles.create({
                'user_id': user_id,
                'role_id': role.id,
                'assigned_at': now,
                'assigned_by': assigned_by,
                'expires_at': expires_at,
                'is_active': True,
            })

        self.cache.invalidate_user(user_id)
        self.logger.info(
            "role_assigned",
            user_id=user_id, role_id=role.id, role_name=role.name,
            assignment_id=assignment.id, assigned_by=assigned_by,
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return assignment

    def assign_default_role(self, user_id: str,
                            assigned_by: Optional[str] = None) -> UserRoleAssignment:
        """Grant the default role to a newly registered user."""
        role = self.role_service.get_default_role()
        return self.assign_role_to_user(user_id, role.id, assigned_by=assigned_by)

    @log_service_operation('remove_role_from_user')
    def remove_role_from_user(self, user_id: str, role_id: str) -> UserRoleAssignment:
        """
        Revoke the user's effective assignment of ``role_id``.

        Raises:
            NotFoundError: The user has no effective assignment of the role
        """
        assignment = self.user_roles.find_effective(user_id, role_id)
        if assignment is None:
            raise NotFoundError(
                "User role assignment not found",
                details={'user_id': user_id, 'role_id': role_id},
            )

        revoked = self.user_roles.update_by_id(assignment.id, {'is_active': False})
        self.cache.invalidate_user(user_id)
        self.logger.info("role_removed", user_id=user_id, role_id=role_id, assignment_id=revoked.id)
        return revoked

    @log_service_operation('deactivate_expired_roles')
    def deactivate_expired_roles(self, now: Optional[datetime] = None) -> int:
        """
        Deactivate every active assignment whose expiry has passed.

        Returns:
            Number of assignments deactivated; 0 on a repeated call
        """
        expired = self.user_roles.find_expired_active(now or now_utc())
        affected_users = set()
        for assignment in expired:
            self.user_roles.update_by_id(assignment.id, {'is_active': False})
            affected_users.add(assignment.user_id)

        for user_id in affected_users:
            self.cache.invalidate_user(user_id)

        if expired:
            self.logger.info("expired_roles_deactivated", count=len(expired), users=len(affected_users))
        return len(expired)

    # ------------------------------------------------------------------ reads

    def get_user_roles(self, user_id: str) -> List[UserRoleAssignment]:
        """Full assignment history of a user, active or not."""
        return self.user_roles.find_by_user_id(user_id)

    def get_user_active_roles(self, user_id: str) -> List[UserRoleAssignment]:
        """Assignments of a user that are effective right now."""
        cached = self.cache.get_user_roles(user_id)
        if cached is not None:
            now = now_utc()
            return [a for a in cached if a.is_effective(now)]

        now = now_utc()
        assignments = [a for a in self.user_roles.find_active_by_user_id(user_id) if a.is_effective(now)]
        self.cache.set_user_roles(user_id, assignments)
        return assignments

    def find_assignment(self, user_id: str, role_id: str) -> Optional[UserRoleAssignment]:
        """The effective assignment of ``role_id`` to ``user_id``, if any."""
        return self.user_roles.find_effective(user_id, role_id)

    def has_role(self, user_id: str, role_id: str) -> bool:
        return self.find_assignment(user_id, role_id) is not None

    def has_any_role(self, user_id: str, role_ids: Iterable[str]) -> bool:
        held = {a.role_id for a in self.get_user_active_roles(user_id)}
        return any(role_id in held for role_id in role_ids)

    def has_all_roles(self, user_id: str, role_ids: Iterable[str]) -> bool:
        held = {a.role_id for a in self.get_user_active_roles(user_id)}
        return all(role_id in held for role_id in role_ids)

    def has_role_named(self, user_id: str, role_name: str) -> bool:
        role = self.roles.find_by_name(role_name)
        return role is not None and self.has_role(user_id, role.id)


__all__ = ['UserRoleService']
