"""
RBAC models.

``entities`` holds the backend-agnostic dataclasses every caller sees;
``relational`` holds the SQLAlchemy tables used by the relational backend.
"""

from qa_rbac.models.entities import (
    Permission,
    PermissionCategory,
    Role,
    UserRoleAssignment,
    unique_ids,
)

__all__ = [
    'Permission',
    'PermissionCategory',
    'Role',
    'UserRoleAssignment',
    'unique_ids',
]
