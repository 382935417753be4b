from qa_rbac.repositories.interfaces import (
    IPermissionRepository,
    IRoleRepository,
    IUserRoleRepository,
)
from qa_rbac.repositories.permission import PermissionRepository
from qa_rbac.repositories.role import RoleRepository
from qa_rbac.repositories.user_role import UserRoleRepository

__all__ = [
    'IPermissionRepository',
    'IRoleRepository',
    'IUserRoleRepository',
    'PermissionRepository',
    'RoleRepository',
    'UserRoleRepository',
]
