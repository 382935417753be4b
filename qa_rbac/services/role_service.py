"""
Role management.

Roles reference permissions by id. Attaching ids that do not resolve to an
existing permission is rejected with ``NotFoundError``; detaching is always
allowed and idempotent. Any change to a role's grants or status invalidates
every cached permission set, since the set of holders is not tracked here.
"""

from typing import Any, Dict, Iterable, List, Optional

from qa_rbac.models.entities import Role, unique_ids
from qa_rbac.repositories.interfaces import IPermissionRepository, IRoleRepository
from qa_rbac.services.base import BaseService, log_service_operation
from qa_rbac.services.cache import PermissionCache
from qa_rbac.utils.error_handling import BusinessLogicError, ConflictError, NotFoundError


DEFAULT_ROLE_NAME = 'user'


class RoleService(BaseService):
    """
    Args:
        role_repository: Role store
        permission_repository: Used to verify referenced permission ids
        cache: Permission cache to invalidate on grant changes
        default_role_name: Name of the role granted at registration
    """

    def __init__(self, role_repository: IRoleRepository,
                 permission_repository: IPermissionRepository,
                 cache: Optional[PermissionCache] = None,
                 default_role_name: str = DEFAULT_ROLE_NAME):
        super().__init__()
        self.roles = role_repository
        self.permissions = permission_repository
        self.cache = cache or PermissionCache()
        self.default_role_name = default_role_name

    def _require_permissions(self, permission_ids: Iterable[str]) -> List[str]:
        ids = unique_ids(permission_ids)
        found = {p.id for p in self.permissions.find_by_ids(ids)}
        missing = [pid for pid in ids if pid not in found]
        if missing:
            raise NotFoundError(
                f"Permission(s) not found: {', '.join(missing)}",
                details={'permission_ids': missing},
            )
        return ids

    def _ensure_name_free(self, name: str, exclude_id: Optional[str] = None) -> None:
        existing = self.roles.find_by_name(name)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError(
                f"Role '{name}' already exists",
                details={'name': name, 'existing_id': existing.id},
            )

    # ------------------------------------------------------------------ CRUD

    @log_service_operation('create_role')
    def create(self, data: Dict[str, Any]) -> Role:
        data = self.validate_input(data, ['name'])
        data['permissions'] = self._require_permissions(data.get('permissions') or [])
        self._ensure_name_free(data['name'])

        with self.conflict_on_constraint(f"Role '{data['name']}' already exists", name=data['name']):
            role = self.roles.create(data)

        self.logger.info("role_created", role_id=role.id, name=role.name,
                         permission_count=len(role.permissions))
        return role

    def find_by_id(self, role_id: str) -> Role:
        return self.roles.find_by_id(role_id)

    def find_by_name(self, name: str) -> Optional[Role]:
        return self.roles.find_by_name(name)

    def find_all(self) -> List[Role]:
        return self.roles.find_all()

    @log_service_operation('update_role')
    def update_by_id(self, role_id: str, data: Dict[str, Any]) -> Role:
        data = self.validate_input(data)
        if data.get('name'):
            self._ensure_name_free(data['name'], exclude_id=role_id)
        if 'permissions' in data:
            data['permissions'] = self._require_permissions(data['permissions'])

        with self.conflict_on_constraint("Role name already exists", name=data.get('name')):
            role = self.roles.update_by_id(role_id, data)

        self.cache.invalidate_all_permissions()
        self.logger.info("role_updated", role_id=role.id, fields=sorted(data))
        return role

    def deactivate_role(self, role_id: str) -> Role:
        """Stop honouring a role's grants without touching its assignments."""
        return self.update_by_id(role_id, {'is_active': False})

    def activate_role(self, role_id: str) -> Role:
        return self.update_by_id(role_id, {'is_active': True})

    @log_service_operation('delete_role')
    def delete_by_id(self, role_id: str) -> Role:
        role = self.roles.find_by_id(role_id)
        if role.is_system:
            raise BusinessLogicError(
                f"System role '{role.name}' cannot be deleted",
                details={'role_id': role.id},
            )
        deleted = self.roles.delete_by_id(role_id)
        self.cache.invalidate_all_permissions()
        self.logger.info("role_deleted", role_id=deleted.id, name=deleted.name)
        return deleted

    # ------------------------------------------------------------------ grants

    def assign_permission(self, role_id: str, permission_id: str) -> Role:
        return self.add_permissions_to_role(role_id, [permission_id])

    def remove_permission(self, role_id: str, permission_id: str) -> Role:
        return self.remove_permissions_from_role(role_id, [permission_id])

    @log_service_operation('add_permissions_to_role')
    def add_permissions_to_role(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        ids = self._require_permissions(permission_ids)
        role = self.roles.add_permissions(role_id, ids)
        self.cache.invalidate_all_permissions()
        self.logger.info("role_permissions_added", role_id=role.id, permission_ids=ids)
        return role

    @log_service_operation('remove_permissions_from_role')
    def remove_permissions_from_role(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        ids = unique_ids(permission_ids)
        role = self.roles.remove_permissions(role_id, ids)
        self.cache.invalidate_all_permissions()
        self.logger.info("role_permissions_removed", role_id=role.id, permission_ids=ids)
        return role

    # ------------------------------------------------------------------ queries

    def get_default_role(self) -> Role:
        """
        Return the role granted to newly registered users.

        Raises:
            NotFoundError: When the deployment has not been seeded
        """
        role = self.roles.find_by_name(self.default_role_name)
        if role is None:
            raise NotFoundError(
                f"Default role '{self.default_role_name}' not found",
                details={'name': self.default_role_name},
            )
        return role

    def get_system_roles(self) -> List[Role]:
        return self.roles.find_system_roles()

    def get_active_roles(self) -> List[Role]:
        return self.roles.find_active()


__all__ = ['RoleService', 'DEFAULT_ROLE_NAME']
