"""
Permission catalogue management.

Permission names are globally unique. Duplicates are rejected up front by a
name lookup and, if a concurrent writer slips in between, by the storage
unique index; both surface as ``ConflictError``.
"""

from typing import Any, Dict, List, Optional

from qa_rbac.models.entities import Permission, PermissionCategory
from qa_rbac.repositories.interfaces import IPermissionRepository
from qa_rbac.services.base import BaseService, log_service_operation
from qa_rbac.services.cache import PermissionCache
from qa_rbac.utils.error_handling import ConflictError, ValidationError


REQUIRED_FIELDS = ['name', 'description', 'resource', 'action']


class PermissionService(BaseService):

    def __init__(self, permission_repository: IPermissionRepository,
                 cache: Optional[PermissionCache] = None):
        super().__init__()
        self.permissions = permission_repository
        self.cache = cache or PermissionCache()

    def _validate_category(self, data: Dict[str, Any]) -> None:
        if 'category' not in data:
            return
        try:
            data['category'] = PermissionCategory(data['category'])
        except ValueError:
            raise ValidationError(
                f"Invalid permission category: {data['category']!r}",
                field_errors={'category': f"must be one of {PermissionCategory.values()}"},
            )

    def _ensure_name_free(self, name: str, exclude_id: Optional[str] = None) -> None:
        existing = self.permissions.find_by_name(name)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError(
                f"Permission '{name}' already exists",
                details={'name': name, 'existing_id': existing.id},
            )

    @log_service_operation('create_permission')
    def create(self, data: Dict[str, Any]) -> Permission:
        data = self.validate_input(data, REQUIRED_FIELDS)
        self._validate_category(data)
        self._ensure_name_free(data['name'])

        with self.conflict_on_constraint(f"Permission '{data['name']}' already exists", name=data['name']):
            permission = self.permissions.create(data)

        self.logger.info("permission_created", permission_id=permission.id, name=permission.name)
        return permission

    def find_by_id(self, permission_id: str) -> Permission:
        return self.permissions.find_by_id(permission_id)

    def find_by_name(self, name: str) -> Optional[Permission]:
        return self.permissions.find_by_name(name)

    def find_all(self) -> List[Permission]:
        return self.permissions.find_all()

    def find_by_resource(self, resource: str) -> List[Permission]:
        return self.permissions.find_by_resource(resource)

    def find_by_category(self, category: Any) -> List[Permission]:
        data = {'category': category}
        self._validate_category(data)
        return self.permissions.find_by_category(data['category'])

    def find_active(self) -> List[Permission]:
        return self.permissions.find_active()

    @log_service_operation('update_permission')
    def update_by_id(self, permission_id: str, data: Dict[str, Any]) -> Permission:
        data = self.validate_input(data)
        self._validate_category(data)
        if data.get('name'):
            self._ensure_name_free(data['name'], exclude_id=permission_id)

        with self.conflict_on_constraint("Permission name already exists", name=data.get('name')):
            permission = self.permissions.update_by_id(permission_id, data)

        self.cache.invalidate_all_permissions()
        self.logger.info("permission_updated", permission_id=permission.id, fields=sorted(data))
        return permission

    def deactivate(self, permission_id: str) -> Permission:
        return self.update_by_id(permission_id, {'is_active': False})

    @log_service_operation('delete_permission')
    def delete_by_id(self, permission_id: str) -> Permission:
        """
        Delete a permission.

        Roles keep the dangling id; resolution drops ids that no longer
        resolve. Prefer ``deactivate``.
        """
        permission = self.permissions.delete_by_id(permission_id)
        self.cache.invalidate_all_permissions()
        self.logger.info("permission_deleted", permission_id=permission.id, name=permission.name)
        return permission


__all__ = ['PermissionService']
