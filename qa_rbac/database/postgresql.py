"""
PostgreSQL (SQLAlchemy) data sources.

Every write follows the same unit of work: mutate records, flush, convert to
an entity, commit. Any SQLAlchemy failure rolls the session back before it is
translated into the application error hierarchy.

The session factory is any zero-argument callable returning a ``Session``:
a ``scoped_session`` or Flask-SQLAlchemy's ``db.session``.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import (
    DisconnectionError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.orm import Session

from qa_rbac.database.base import (
    DataSource, RoleDataSource, UserRoleDataSource, storage_timestamp,
)
from qa_rbac.database.identity import UuidScheme
from qa_rbac.models.entities import Permission, Role, UserRoleAssignment, unique_ids
from qa_rbac.models.relational import (
    PermissionRecord, RolePermissionRecord, RoleRecord, UserRoleRecord,
)
from qa_rbac.utils.error_handling import ConstraintViolationError, DatabaseError
from qa_rbac.utils.logging import get_logger


T = TypeVar("T")

logger = get_logger(__name__)


@contextmanager
def sql_errors(session: Session, operation: str, entity_name: str):
    """Roll back and translate SQLAlchemy failures."""
    try:
        yield session
    except IntegrityError as e:
        session.rollback()
        raise ConstraintViolationError(
            f"Duplicate {entity_name} violates a unique constraint",
            operation=operation,
            original_error=e,
            details={'entity': entity_name},
        ) from e
    except (OperationalError, DisconnectionError) as e:
        session.rollback()
        logger.error("database_unavailable", operation=operation, entity=entity_name, error=str(e))
        raise DatabaseError.unavailable(
            "Database is unavailable", operation=operation, original_error=e,
        ) from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("database_operation_failed", operation=operation, entity=entity_name, error=str(e))
        raise DatabaseError(
            f"Database {operation} failed for {entity_name}", operation=operation, original_error=e,
        ) from e


class SqlDataSource(DataSource[T]):
    """
    ``DataSource`` over one SQLAlchemy mapped table.

    Args:
        session_factory: Zero-argument callable returning the current session
        model: Mapped record class
        entity_class: Entity dataclass produced by this source
        id_scheme: UUID scheme; a fresh one is used when omitted
    """

    def __init__(self, session_factory: Callable[[], Session], model: Type[Any],
                 entity_class: Type[T], id_scheme: Optional[UuidScheme] = None):
        super().__init__(entity_class, id_scheme or UuidScheme())
        self.session_factory = session_factory
        self.model = model

    @property
    def session(self) -> Session:
        return self.session_factory()

    # ------------------------------------------------------------ conversion

    def to_entity(self, record: Any) -> T:
        values = {name: getattr(record, name) for name in self.field_names}
        return self.entity_class(**values)

    def to_record(self, entity: T) -> Any:
        return self.model(**entity.to_storage())

    def apply_changes(self, session: Session, record: Any, changes: Dict[str, Any]) -> None:
        for key, value in changes.items():
            setattr(record, key, value)

    def filter_for(self, key: str, value: Any):
        return getattr(self.model, key) == value

    def ordered(self, query):
        # id only breaks created_at ties deterministically, not by insertion
        return query.order_by(self.model.created_at, self.model.id)

    def _get(self, session: Session, entity_id: Any) -> Any:
        if not self.is_valid_id(entity_id):
            raise self.not_found(entity_id)
        record = session.get(self.model, entity_id)
        if record is None:
            raise self.not_found(entity_id)
        return record

    # ------------------------------------------------------------ contract

    def create(self, data: Dict[str, Any]) -> T:
        entity = self.build_entity(data)
        session = self.session
        with sql_errors(session, 'create', self.entity_name):
            record = self.to_record(entity)
            session.add(record)
            session.flush()
            created = self.to_entity(record)
            session.commit()
        logger.debug("record_created", entity=self.entity_name, id=created.id)
        return created

    def find_by_id(self, entity_id: str) -> T:
        session = self.session
        with sql_errors(session, 'find_by_id', self.entity_name):
            return self.to_entity(self._get(session, entity_id))

    def find_all(self) -> List[T]:
        session = self.session
        with sql_errors(session, 'find_all', self.entity_name):
            return [self.to_entity(r) for r in self.ordered(session.query(self.model)).all()]

    def update_by_id(self, entity_id: str, data: Dict[str, Any]) -> T:
        changes = self.clean_update(data)
        session = self.session
        with sql_errors(session, 'update_by_id', self.entity_name):
            record = self._get(session, entity_id)
            self.apply_changes(session, record, changes)
            session.flush()
            updated = self.to_entity(record)
            session.commit()
        return updated

    def delete_by_id(self, entity_id: str) -> T:
        session = self.session
        with sql_errors(session, 'delete_by_id', self.entity_name):
            record = self._get(session, entity_id)
            deleted = self.to_entity(record)
            session.delete(record)
            session.commit()
        return deleted

    def find_by_fields(self, criteria: Dict[str, Any]) -> List[T]:
        cleaned = self.clean_criteria(criteria)
        if 'id' in cleaned and not self.is_valid_id(cleaned['id']):
            return []
        session = self.session
        with sql_errors(session, 'find_by_fields', self.entity_name):
            query = session.query(self.model)
            for key, value in cleaned.items():
                query = query.filter(self.filter_for(key, value))
            return [self.to_entity(r) for r in self.ordered(query).all()]

    def count_all(self) -> int:
        session = self.session
        with sql_errors(session, 'count_all', self.entity_name):
            return session.query(func.count(self.model.id)).scalar() or 0

    def delete_all(self) -> int:
        session = self.session
        with sql_errors(session, 'delete_all', self.entity_name):
            count = session.query(self.model).delete(synchronize_session=False)
            session.commit()
        return count


class SqlPermissionDataSource(SqlDataSource[Permission]):

    def __init__(self, session_factory: Callable[[], Session], id_scheme: Optional[UuidScheme] = None):
        super().__init__(session_factory, PermissionRecord, Permission, id_scheme)


class SqlRoleDataSource(SqlDataSource[Role], RoleDataSource):
    """Roles whose membership is stored in the ``role_permissions`` join table."""

    def __init__(self, session_factory: Callable[[], Session], id_scheme: Optional[UuidScheme] = None):
        SqlDataSource.__init__(self, session_factory, RoleRecord, Role, id_scheme)

    def to_entity(self, record: RoleRecord) -> Role:
        values = {name: getattr(record, name) for name in self.field_names if name != 'permissions'}
        values['permissions'] = record.permission_ids
        return Role(**values)

    def to_record(self, entity: Role) -> RoleRecord:
        columns = entity.to_storage()
        permission_ids = columns.pop('permissions')
        return RoleRecord(
            **columns,
            permission_links=[RolePermissionRecord(permission_id=pid) for pid in permission_ids],
        )

    def apply_changes(self, session: Session, record: RoleRecord, changes: Dict[str, Any]) -> None:
        permission_ids = changes.pop('permissions', None)
        super().apply_changes(session, record, changes)
        if permission_ids is None:
            return
        # Clear then re-add so the unique (role_id, permission_id) pair never collides mid-flush
        record.permission_links.clear()
        session.flush()
        for pid in unique_ids(permission_ids):
            record.permission_links.append(RolePermissionRecord(permission_id=pid))

    def filter_for(self, key: str, value: Any):
        if key == 'permissions':
            return RoleRecord.permission_links.any(RolePermissionRecord.permission_id == value)
        return super().filter_for(key, value)

    def add_permissions(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        ids = unique_ids(permission_ids)
        session = self.session
        with sql_errors(session, 'add_permissions', self.entity_name):
            record = self._get(session, role_id)
            existing = set(record.permission_ids)
            for pid in ids:
                if pid not in existing:
                    record.permission_links.append(RolePermissionRecord(permission_id=pid))
            record.updated_at = storage_timestamp()
            session.flush()
            role = self.to_entity(record)
            session.commit()
        return role

    def remove_permissions(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        ids = set(permission_ids)
        session = self.session
        with sql_errors(session, 'remove_permissions', self.entity_name):
            record = self._get(session, role_id)
            for link in list(record.permission_links):
                if link.permission_id in ids:
                    record.permission_links.remove(link)
            record.updated_at = storage_timestamp()
            session.flush()
            role = self.to_entity(record)
            session.commit()
        return role

    def delete_all(self) -> int:
        session = self.session
        with sql_errors(session, 'delete_all', self.entity_name):
            session.query(RolePermissionRecord).delete(synchronize_session=False)
            count = session.query(RoleRecord).delete(synchronize_session=False)
            session.commit()
        return count


class SqlUserRoleDataSource(SqlDataSource[UserRoleAssignment], UserRoleDataSource):

    def __init__(self, session_factory: Callable[[], Session], id_scheme: Optional[UuidScheme] = None):
        SqlDataSource.__init__(self, session_factory, UserRoleRecord, UserRoleAssignment, id_scheme)

    def find_expired_active(self, now: Optional[datetime] = None) -> List[UserRoleAssignment]:
        cutoff = storage_timestamp(now)
        session = self.session
        with sql_errors(session, 'find_expired_active', self.entity_name):
            query = session.query(UserRoleRecord).filter(
                UserRoleRecord.is_active.is_(True),
                UserRoleRecord.expires_at.isnot(None),
                UserRoleRecord.expires_at <= cutoff,
            )
            return [self.to_entity(r) for r in self.ordered(query).all()]


__all__ = [
    'SqlDataSource',
    'SqlPermissionDataSource',
    'SqlRoleDataSource',
    'SqlUserRoleDataSource',
    'sql_errors',
]
