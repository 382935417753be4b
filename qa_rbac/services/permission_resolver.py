"""
Effective permission resolution.

A user's permissions are the union of the permission ids of every role they
hold through an effective assignment, where the role itself still exists and
is active. Ids that no longer resolve to a permission record are dropped with
a warning. Yes/no checks consider active permissions only.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Set, Tuple

from qa_rbac.models.entities import Permission, unique_ids
from qa_rbac.repositories.interfaces import IPermissionRepository, IRoleRepository
from qa_rbac.repositories.user_role import UserRoleRepository
from qa_rbac.services.base import BaseService
from qa_rbac.services.cache import PermissionCache
from qa_rbac.utils.datetime import now_utc


class PermissionResolver(BaseService):

    def __init__(self, user_role_repository: UserRoleRepository,
                 role_repository: IRoleRepository,
                 permission_repository: IPermissionRepository,
                 cache: Optional[PermissionCache] = None):
        super().__init__()
        self.user_roles = user_role_repository
        self.roles = role_repository
        self.permissions = permission_repository
        self.cache = cache or PermissionCache()

    def _collect_permission_ids(self, user_id: str,
                                now: datetime) -> Tuple[List[str], Optional[datetime]]:
        """Return the granted permission ids and the soonest expiry behind them."""
        assignments = [a for a in self.user_roles.find_by_user_id(user_id) if a.is_effective(now)]
        expiries = [a.expires_at for a in assignments if a.expires_at is not None]
        valid_until = min(expiries) if expiries else None

        permission_ids = []
        for role_id in unique_ids(a.role_id for a in assignments):
            role = self.roles.find_optional(role_id)
            if role is None:
                self.logger.warning("assigned_role_missing", user_id=user_id, role_id=role_id)
                continue
            if not role.is_active:
                continue
            permission_ids.extend(role.permissions)
        return unique_ids(permission_ids), valid_until

    def get_user_permissions(self, user_id: str) -> List[Permission]:
        """
        Resolve the permission records granted to ``user_id``.

        Inactive permission records are included; see ``get_user_permission_names``
        for the set that authorization checks use.
        """
        now = now_utc()
        cached = self.cache.get_user_permissions(user_id, now=now)
        if cached is not None:
            return cached

        permission_ids, valid_until = self._collect_permission_ids(user_id, now)
        permissions = self.permissions.find_by_ids(permission_ids)

        if len(permissions) != len(permission_ids):
            resolved = {p.id for p in permissions}
            for permission_id in permission_ids:
                if permission_id not in resolved:
                    self.logger.warning("permission_id_unresolved", user_id=user_id,
                                        permission_id=permission_id)

        self.cache.set_user_permissions(user_id, permissions, valid_until=valid_until, now=now)
        return permissions

    def get_user_permission_names(self, user_id: str) -> Set[str]:
        return {p.name for p in self.get_user_permissions(user_id) if p.is_active}

    def has_permission(self, user_id: str, permission_name: str) -> bool:
        return permission_name in self.get_user_permission_names(user_id)

    def has_any_permission(self, user_id: str, permission_names: Iterable[str]) -> bool:
        names = self.get_user_permission_names(user_id)
        return any(name in names for name in permission_names)

    def has_all_permissions(self, user_id: str, permission_names: Iterable[str]) -> bool:
        names = self.get_user_permission_names(user_id)
        return all(name in names for name in permission_names)


__all__ = ['PermissionResolver']
