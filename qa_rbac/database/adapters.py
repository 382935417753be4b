"""
Per-backend database adapters.

An adapter bundles the three data sources of one backend with its id scheme
and lifecycle hooks. Exactly one adapter is built per process, from
configuration, in the composition root; it owns an explicitly constructed
client (``MongoClient`` or SQLAlchemy session factory) and is handed to the
rest of the system by injection.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional

from pymongo import MongoClient
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from qa_rbac.database.base import DataSource, RoleDataSource, UserRoleDataSource
from qa_rbac.database.identity import BackendKind, IdScheme, ObjectIdScheme, UuidScheme
from qa_rbac.database.mongodb import (
    MongoPermissionDataSource, MongoRoleDataSource, MongoUserRoleDataSource, mongo_errors,
)
from qa_rbac.database.postgresql import (
    SqlPermissionDataSource, SqlRoleDataSource, SqlUserRoleDataSource, sql_errors,
)
from qa_rbac.models.entities import Permission
from qa_rbac.models.relational import Base
from qa_rbac.utils.logging import get_logger


logger = get_logger(__name__)


class DatabaseAdapter(ABC):
    """Data sources, id scheme and lifecycle of one storage backend."""

    kind: BackendKind
    id_scheme: IdScheme

    @abstractmethod
    def permissions(self) -> DataSource[Permission]:
        pass

    @abstractmethod
    def roles(self) -> RoleDataSource:
        pass

    @abstractmethod
    def user_roles(self) -> UserRoleDataSource:
        pass

    @abstractmethod
    def initialize(self) -> None:
        """Create indexes or tables; safe to call repeatedly."""

    @abstractmethod
    def ping(self) -> bool:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def is_valid_id(self, value: Any) -> bool:
        return self.id_scheme.is_valid_id(value)


class MongoDBAdapter(DatabaseAdapter):
    """
    Document backend over one MongoDB database.

    Args:
        client: Connected ``MongoClient`` (or a compatible test double)
        database_name: Database holding the ``permissions``, ``roles`` and
            ``user_roles`` collections
    """

    kind = BackendKind.MONGODB

    def __init__(self, client: MongoClient, database_name: str):
        self.client = client
        self.database = client[database_name]
        self.id_scheme = ObjectIdScheme()
        self._permissions = MongoPermissionDataSource(self.database['permissions'], self.id_scheme)
        self._roles = MongoRoleDataSource(self.database['roles'], self.id_scheme)
        self._user_roles = MongoUserRoleDataSource(self.database['user_roles'], self.id_scheme)

    def permissions(self) -> MongoPermissionDataSource:
        return self._permissions

    def roles(self) -> MongoRoleDataSource:
        return self._roles

    def user_roles(self) -> MongoUserRoleDataSource:
        return self._user_roles

    def initialize(self) -> None:
        for source in (self._permissions, self._roles, self._user_roles):
            source.ensure_indexes()
        logger.info("mongodb_indexes_ensured", database=self.database.name)

    def ping(self) -> bool:
        with mongo_errors('ping', 'database'):
            self.client.admin.command('ping')
        return True

    def close(self) -> None:
        self.client.close()


class PostgreSQLAdapter(DatabaseAdapter):
    """
    Relational backend over a SQLAlchemy engine.

    Args:
        session_factory: Zero-argument callable returning the current session
        engine: Engine used for schema creation and health checks
    """

    kind = BackendKind.POSTGRESQL

    def __init__(self, session_factory: Callable[[], Session], engine: Engine):
        self.session_factory = session_factory
        self.engine = engine
        self.id_scheme = UuidScheme()
        self._permissions = SqlPermissionDataSource(session_factory, self.id_scheme)
        self._roles = SqlRoleDataSource(session_factory, self.id_scheme)
        self._user_roles = SqlUserRoleDataSource(session_factory, self.id_scheme)

    @classmethod
    def from_url(cls, url: str, **engine_options: Any) -> 'PostgreSQLAdapter':
        """Build an adapter with its own engine and thread-local sessions."""
        engine = create_engine(url, **engine_options)
        return cls(scoped_session(sessionmaker(bind=engine)), engine)

    def permissions(self) -> SqlPermissionDataSource:
        return self._permissions

    def roles(self) -> SqlRoleDataSource:
        return self._roles

    def user_roles(self) -> SqlUserRoleDataSource:
        return self._user_roles

    def initialize(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("relational_schema_ensured", url=self.engine.url.render_as_string(hide_password=True))

    def ping(self) -> bool:
        session = self.session_factory()
        with sql_errors(session, 'ping', 'database'):
            session.execute(text('SELECT 1'))
        return True

    def close(self) -> None:
        remove = getattr(self.session_factory, 'remove', None)
        if remove is not None:
            remove()
        self.engine.dispose()


def create_adapter(config: Mapping[str, Any],
                   session_factory: Optional[Callable[[], Session]] = None,
                   engine: Optional[Engine] = None,
                   mongo_client: Optional[MongoClient] = None) -> DatabaseAdapter:
    """
    Build the adapter selected by ``DATABASE_BACKEND``.

    Pre-built clients may be supplied (the Flask factory passes
    Flask-SQLAlchemy's session and engine); otherwise they are constructed
    from the connection settings in ``config``.

    Raises:
        ValidationError: When the backend name is not supported
    """
    kind = BackendKind.parse(config.get('DATABASE_BACKEND', BackendKind.POSTGRESQL.value))

    if kind is BackendKind.MONGODB:
        client = mongo_client or MongoClient(
            config['MONGODB_URI'],
            serverSelectionTimeoutMS=config.get('MONGODB_SERVER_SELECTION_TIMEOUT_MS', 5000),
        )
        adapter = MongoDBAdapter(client, config['MONGODB_DATABASE'])
    elif session_factory is not None and engine is not None:
        adapter = PostgreSQLAdapter(session_factory, engine)
    else:
        adapter = PostgreSQLAdapter.from_url(
            config['SQLALCHEMY_DATABASE_URI'],
            **dict(config.get('SQLALCHEMY_ENGINE_OPTIONS') or {}),
        )

    logger.info("database_adapter_created", backend=kind.value)
    return adapter


__all__ = [
    'DatabaseAdapter',
    'MongoDBAdapter',
    'PostgreSQLAdapter',
    'create_adapter',
]
