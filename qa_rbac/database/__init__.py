"""
Persistence layer: id schemes, the ``DataSource`` contract and its MongoDB
and PostgreSQL implementations, and the per-backend adapters.
"""

from qa_rbac.database.adapters import (
    DatabaseAdapter,
    MongoDBAdapter,
    PostgreSQLAdapter,
    create_adapter,
)
from qa_rbac.database.base import DataSource, RoleDataSource, UserRoleDataSource
from qa_rbac.database.identity import (
    BackendKind,
    IdScheme,
    ObjectIdScheme,
    UuidScheme,
    get_id_scheme,
    is_id_valid_for_backend,
)

__all__ = [
    'BackendKind',
    'DataSource',
    'DatabaseAdapter',
    'IdScheme',
    'MongoDBAdapter',
    'ObjectIdScheme',
    'PostgreSQLAdapter',
    'RoleDataSource',
    'UserRoleDataSource',
    'UuidScheme',
    'create_adapter',
    'get_id_scheme',
    'is_id_valid_for_backend',
]
