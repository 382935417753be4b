"""
MongoDB data sources.

Each entity lives in its own collection. The entity ``id`` is the string form
of the document's ``_id`` ObjectId; role membership is an embedded array of
permission id strings maintained with ``$addToSet``/``$pullAll``.

Datetimes are written as naive UTC (BSON stores UTC milliseconds) and
normalised back to aware UTC on read, so the client does not need
``tz_aware=True``.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError

from qa_rbac.database.base import (
    DataSource, RoleDataSource, UserRoleDataSource, storage_timestamp,
)
from qa_rbac.database.identity import ObjectIdScheme
from qa_rbac.models.entities import Permission, Role, UserRoleAssignment, unique_ids
from qa_rbac.utils.error_handling import ConstraintViolationError, DatabaseError
from qa_rbac.utils.logging import get_logger


T = TypeVar("T")

logger = get_logger(__name__)

# Present only while an assignment is active; backs the sparse unique index
ACTIVE_PAIR_FIELD = 'active_pair'


@contextmanager
def mongo_errors(operation: str, entity_name: str):
    """Translate pymongo failures into the application error hierarchy."""
    try:
        yield
    except DuplicateKeyError as e:
        raise ConstraintViolationError(
            f"Duplicate {entity_name} violates a unique index",
            operation=operation,
            original_error=e,
            details={'entity': entity_name, 'key': getattr(e, 'details', None)},
        ) from e
    except ConnectionFailure as e:
        logger.error("mongodb_unavailable", operation=operation, entity=entity_name, error=str(e))
        raise DatabaseError.unavailable(
            "MongoDB is unavailable", operation=operation, original_error=e,
        ) from e
    except PyMongoError as e:
        logger.error("mongodb_operation_failed", operation=operation, entity=entity_name, error=str(e))
        raise DatabaseError(
            f"MongoDB {operation} failed for {entity_name}", operation=operation, original_error=e,
        ) from e


def to_bson(value: Any) -> Any:
    if isinstance(value, datetime):
        return storage_timestamp(value).replace(tzinfo=None)
    if isinstance(value, list):
        return [to_bson(item) for item in value]
    return value


class MongoDataSource(DataSource[T]):
    """
    ``DataSource`` over one pymongo collection.

    Args:
        collection: Target collection
        entity_class: Entity dataclass stored in the collection
        id_scheme: ObjectId scheme; a fresh one is used when omitted
    """

    internal_fields = ()

    def __init__(self, collection: Collection, entity_class: Type[T],
                 id_scheme: Optional[ObjectIdScheme] = None):
        super().__init__(entity_class, id_scheme or ObjectIdScheme())
        self.collection = collection

    # ------------------------------------------------------------ conversion

    def to_entity(self, document: Dict[str, Any]) -> T:
        values = {
            key: value for key, value in document.items()
            if key in self.field_names and key not in self.internal_fields
        }
        values['id'] = str(document['_id'])
        return self.entity_class(**values)

    def to_document(self, entity: T) -> Dict[str, Any]:
        document = {key: to_bson(value) for key, value in entity.to_storage().items()}
        document['_id'] = ObjectId(document.pop('id'))
        return document

    def object_id(self, entity_id: Any) -> Optional[ObjectId]:
        if not self.is_valid_id(entity_id):
            return None
        return ObjectId(entity_id)

    def to_query(self, criteria: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Build a filter document; ``None`` means nothing can match."""
        query = {}
        for key, value in self.clean_criteria(criteria).items():
            if key == 'id':
                oid = self.object_id(value)
                if oid is None:
                    return None
                query['_id'] = oid
            else:
                query[key] = to_bson(value)
        return query

    # ------------------------------------------------------------ contract

    def create(self, data: Dict[str, Any]) -> T:
        entity = self.build_entity(data)
        document = self.to_document(entity)
        with mongo_errors('create', self.entity_name):
            self.collection.insert_one(document)
        logger.debug("document_created", entity=self.entity_name, id=entity.id)
        return self.to_entity(document)

    def find_by_id(self, entity_id: str) -> T:
        oid = self.object_id(entity_id)
        if oid is None:
            raise self.not_found(entity_id)
        with mongo_errors('find_by_id', self.entity_name):
            document = self.collection.find_one({'_id': oid})
        if document is None:
            raise self.not_found(entity_id)
        return self.to_entity(document)

    def find_all(self) -> List[T]:
        with mongo_errors('find_all', self.entity_name):
            documents = list(self.collection.find({}).sort('_id', ASCENDING))
        return [self.to_entity(doc) for doc in documents]

    def build_update(self, oid: ObjectId, changes: Dict[str, Any]) -> Dict[str, Any]:
        return {'$set': {key: to_bson(value) for key, value in changes.items()}}

    def update_by_id(self, entity_id: str, data: Dict[str, Any]) -> T:
        oid = self.object_id(entity_id)
        if oid is None:
            raise self.not_found(entity_id)
        changes = self.clean_update(data)
        with mongo_errors('update_by_id', self.entity_name):
            update = self.build_update(oid, changes)
            document = self.collection.find_one_and_update(
                {'_id': oid}, update, return_document=ReturnDocument.AFTER,
            )
        if document is None:
            raise self.not_found(entity_id)
        return self.to_entity(document)

    def delete_by_id(self, entity_id: str) -> T:
        oid = self.object_id(entity_id)
        if oid is None:
            raise self.not_found(entity_id)
        with mongo_errors('delete_by_id', self.entity_name):
            document = self.collection.find_one_and_delete({'_id': oid})
        if document is None:
            raise self.not_found(entity_id)
        return self.to_entity(document)

    def find_by_fields(self, criteria: Dict[str, Any]) -> List[T]:
        query = self.to_query(criteria)
        if query is None:
            return []
        with mongo_errors('find_by_fields', self.entity_name):
            documents = list(self.collection.find(query).sort('_id', ASCENDING))
        return [self.to_entity(doc) for doc in documents]

    def count_all(self) -> int:
        with mongo_errors('count_all', self.entity_name):
            return self.collection.count_documents({})

    def delete_all(self) -> int:
        with mongo_errors('delete_all', self.entity_name):
            result = self.collection.delete_many({})
        return result.deleted_count

    def ensure_indexes(self) -> None:
        pass


class MongoPermissionDataSource(MongoDataSource[Permission]):

    def __init__(self, collection: Collection, id_scheme: Optional[ObjectIdScheme] = None):
        super().__init__(collection, Permission, id_scheme)

    def ensure_indexes(self) -> None:
        with mongo_errors('ensure_indexes', self.entity_name):
            self.collection.create_index([('name', ASCENDING)], unique=True, name='uq_permissions_name')
            self.collection.create_index([('resource', ASCENDING)], name='idx_permissions_resource')
            self.collection.create_index([('category', ASCENDING)], name='idx_permissions_category')


class MongoRoleDataSource(MongoDataSource[Role], RoleDataSource):
    """Roles with an embedded ``permissions`` id array."""

    def __init__(self, collection: Collection, id_scheme: Optional[ObjectIdScheme] = None):
        MongoDataSource.__init__(self, collection, Role, id_scheme)

    def ensure_indexes(self) -> None:
        with mongo_errors('ensure_indexes', self.entity_name):
            self.collection.create_index([('name', ASCENDING)], unique=True, name='uq_roles_name')
            self.collection.create_index([('is_system', ASCENDING)], name='idx_roles_is_system')

    def build_update(self, oid: ObjectId, changes: Dict[str, Any]) -> Dict[str, Any]:
        if 'permissions' in changes:
            changes['permissions'] = unique_ids(changes['permissions'])
        return super().build_update(oid, changes)

    def _update_membership(self, role_id: str, operation: str, update: Dict[str, Any]) -> Role:
        oid = self.object_id(role_id)
        if oid is None:
            raise self.not_found(role_id)
        update['$set'] = {'updated_at': to_bson(storage_timestamp())}
        with mongo_errors(operation, self.entity_name):
            document = self.collection.find_one_and_update(
                {'_id': oid}, update, return_document=ReturnDocument.AFTER,
            )
        if document is None:
            raise self.not_found(role_id)
        return self.to_entity(document)

    def add_permissions(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        ids = unique_ids(permission_ids)
        return self._update_membership(
            role_id, 'add_permissions', {'$addToSet': {'permissions': {'$each': ids}}},
        )

    def remove_permissions(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        ids = unique_ids(permission_ids)
        return self._update_membership(
            role_id, 'remove_permissions', {'$pullAll': {'permissions': ids}},
        )


class MongoUserRoleDataSource(MongoDataSource[UserRoleAssignment], UserRoleDataSource):
    """
    User-role assignments.

    The ``active_pair`` key (``"{user_id}:{role_id}"``) is written while an
    assignment is active and unset when it is deactivated; a unique sparse
    index on it allows one active assignment per pair and any number of
    inactive ones.
    """

    internal_fields = (ACTIVE_PAIR_FIELD,)

    def __init__(self, collection: Collection, id_scheme: Optional[ObjectIdScheme] = None):
        MongoDataSource.__init__(self, collection, UserRoleAssignment, id_scheme)

    @staticmethod
    def active_pair(user_id: str, role_id: str) -> str:
        return f"{user_id}:{role_id}"

    def ensure_indexes(self) -> None:
        with mongo_errors('ensure_indexes', self.entity_name):
            self.collection.create_index(
                [(ACTIVE_PAIR_FIELD, ASCENDING)],
                unique=True, sparse=True, name='uq_user_roles_active_pair',
            )
            self.collection.create_index(
                [('user_id', ASCENDING), ('is_active', ASCENDING)], name='idx_user_roles_user_active',
            )
            self.collection.create_index(
                [('expires_at', ASCENDING), ('is_active', ASCENDING)], name='idx_user_roles_expiry',
            )

    def to_document(self, entity: UserRoleAssignment) -> Dict[str, Any]:
        document = super().to_document(entity)
        if entity.is_active:
            document[ACTIVE_PAIR_FIELD] = self.active_pair(entity.user_id, entity.role_id)
        return document

    def build_update(self, oid: ObjectId, changes: Dict[str, Any]) -> Dict[str, Any]:
        update = super().build_update(oid, changes)
        if not {'is_active', 'user_id', 'role_id'} & set(changes):
            return update

        current = self.collection.find_one({'_id': oid})
        if current is None:
            return update
        merged = {**current, **changes}
        if merged.get('is_active'):
            update['$set'][ACTIVE_PAIR_FIELD] = self.active_pair(merged['user_id'], merged['role_id'])
        else:
            update['$unset'] = {ACTIVE_PAIR_FIELD: ""}
        return update

    def find_expired_active(self, now: Optional[datetime] = None) -> List[UserRoleAssignment]:
        cutoff = to_bson(now or storage_timestamp())
        query = {'is_active': True, 'expires_at': {'$ne': None, '$lte': cutoff}}
        with mongo_errors('find_expired_active', self.entity_name):
            documents = list(self.collection.find(query).sort('_id', ASCENDING))
        return [self.to_entity(doc) for doc in documents]


__all__ = [
    'ACTIVE_PAIR_FIELD',
    'MongoDataSource',
    'MongoPermissionDataSource',
    'MongoRoleDataSource',
    'MongoUserRoleDataSource',
    'mongo_errors',
]
