"""
RBAC service layer: permission and role management, the assignment workflow,
effective permission resolution, caching and seeding.
"""

from qa_rbac.services.cache import PermissionCache
from qa_rbac.services.permission_resolver import PermissionResolver
from qa_rbac.services.permission_service import PermissionService
from qa_rbac.services.role_service import RoleService
from qa_rbac.services.seed import RbacSeeder
from qa_rbac.services.user_role_service import UserRoleService

__all__ = [
    'PermissionCache',
    'PermissionResolver',
    'PermissionService',
    'RbacSeeder',
    'RoleService',
    'UserRoleService',
]
