from qa_rbac.auth.decorators import (
    current_user_id,
    require_all_permissions,
    require_any_permission,
    require_permission,
    require_role,
)

__all__ = [
    'current_user_id',
    'require_all_permissions',
    'require_any_permission',
    'require_permission',
    'require_role',
]
