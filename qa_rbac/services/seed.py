"""
Default RBAC catalogue and idempotent seeding.

Seeding creates missing permissions and system roles and tops up the grants
of existing system roles; it never removes anything, so running it again is a
no-op.
"""

from typing import Any, Dict, List

from qa_rbac.models.entities import PermissionCategory, Role
from qa_rbac.services.base import BaseService
from qa_rbac.services.permission_service import PermissionService
from qa_rbac.services.role_service import RoleService


def _permission(name: str, description: str, category: PermissionCategory) -> Dict[str, Any]:
    resource, action = name.split(':', 1)
    return {
        'name': name,
        'description': description,
        'resource': resource,
        'action': action,
        'category': category,
    }


DEFAULT_PERMISSIONS: List[Dict[str, Any]] = [
    _permission('questions:create', 'Create questions', PermissionCategory.CONTENT),
    _permission('questions:read', 'Read questions', PermissionCategory.CONTENT),
    _permission('questions:update', 'Update questions', PermissionCategory.CONTENT),
    _permission('questions:delete', 'Delete questions', PermissionCategory.CONTENT),
    _permission('questions:moderate', 'Moderate questions', PermissionCategory.CONTENT),
    _permission('answers:create', 'Create answers', PermissionCategory.CONTENT),
    _permission('answers:read', 'Read answers', PermissionCategory.CONTENT),
    _permission('answers:update', 'Update answers', PermissionCategory.CONTENT),
    _permission('answers:delete', 'Delete answers', PermissionCategory.CONTENT),
    _permission('users:read', 'Read user profiles', PermissionCategory.USER),
    _permission('users:update', 'Update user profiles', PermissionCategory.USER),
    _permission('users:delete', 'Delete users', PermissionCategory.USER),
    _permission('users:manage_roles', 'Assign and revoke user roles', PermissionCategory.USER),
    _permission('system:admin', 'Full system access', PermissionCategory.SYSTEM),
]

_USER_GRANTS = ['questions:create', 'questions:read', 'answers:create', 'answers:read']

DEFAULT_ROLES: List[Dict[str, Any]] = [
    {
        'name': 'user',
        'description': 'Basic user permissions',
        'permissions': _USER_GRANTS,
    },
    {
        'name': 'moderator',
        'description': 'Can moderate content',
        'permissions': _USER_GRANTS + ['questions:moderate', 'answers:delete', 'users:read'],
    },
    {
        'name': 'admin',
        'description': 'Full system access',
        'permissions': ['system:admin'],
    },
]


class RbacSeeder(BaseService):

    def __init__(self, permission_service: PermissionService, role_service: RoleService):
        super().__init__()
        self.permission_service = permission_service
        self.role_service = role_service

    def seed_permissions(self) -> Dict[str, str]:
        """Create missing default permissions; return a name to id map."""
        ids = {}
        for definition in DEFAULT_PERMISSIONS:
            permission = self.permission_service.find_by_name(definition['name'])
            if permission is None:
                permission = self.permission_service.create(dict(definition))
                self.logger.info("permission_seeded", name=permission.name)
            ids[permission.name] = permission.id
        return ids

    def seed_roles(self, permission_ids: Dict[str, str]) -> List[Role]:
        roles = []
        for definition in DEFAULT_ROLES:
            wanted = [permission_ids[name] for name in definition['permissions']]
            role = self.role_service.find_by_name(definition['name'])
            if role is None:
                role = self.role_service.create({
                    'name': definition['name'],
                    'description': definition['description'],
                    'permissions': wanted,
                    'is_system': True,
                })
                self.logger.info("role_seeded", name=role.name)
            elif set(wanted) - set(role.permissions):
                role = self.role_service.add_permissions_to_role(role.id, wanted)
            roles.append(role)
        return roles

    def seed(self) -> Dict[str, int]:
        """
        Seed the default catalogue and verify the default role exists.

        Returns:
            Counts of permissions and roles in the catalogue after seeding
        """
        permission_ids = self.seed_permissions()
        roles = self.seed_roles(permission_ids)
        self.role_service.get_default_role()
        summary = {'permissions': len(permission_ids), 'roles': len(roles)}
        self.logger.info("rbac_seed_completed", **summary)
        return summary


__all__ = ['DEFAULT_PERMISSIONS', 'DEFAULT_ROLES', 'RbacSeeder']
