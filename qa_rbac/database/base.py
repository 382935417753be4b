"""
Backend-agnostic data-access contract.

``DataSource[T]`` is implemented once per storage backend. Both
implementations must be observably identical: same entity types, same field
names, same error types for the same situations. Shared validation of
create/update/query payloads lives here so the two backends cannot drift.

List reads return entities oldest first by ``created_at``. Entities created
within the same millisecond share a timestamp, and their relative order is
unspecified and may differ between backends.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from qa_rbac.database.identity import IdScheme
from qa_rbac.models.entities import Role, UserRoleAssignment
from qa_rbac.utils.datetime import now_utc, to_utc
from qa_rbac.utils.error_handling import NotFoundError, ValidationError


T = TypeVar("T")

IMMUTABLE_FIELDS = frozenset({'id', 'created_at', 'updated_at'})


def storage_timestamp(value: Optional[datetime] = None) -> Optional[datetime]:
    """
    Normalise a datetime to aware UTC with millisecond precision.

    BSON datetimes only keep milliseconds; applying the same truncation on the
    relational side keeps both backends returning equal values.
    """
    if value is None:
        value = now_utc()
    value = to_utc(value)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def storage_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return storage_timestamp(value)
    return value


class DataSource(ABC, Generic[T]):
    """
    Generic CRUD contract over one entity type.

    Args:
        entity_class: Entity dataclass produced by this source
        id_scheme: Id scheme of the owning backend
    """

    entity_name: str = "Entity"

    def __init__(self, entity_class: Type[T], id_scheme: IdScheme):
        self.entity_class = entity_class
        self.id_scheme = id_scheme
        self.entity_name = entity_class.__name__

    # ------------------------------------------------------------------ contract

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> T:
        """Persist a new entity, populating id, timestamps and defaults."""

    @abstractmethod
    def find_by_id(self, entity_id: str) -> T:
        """Return the entity or raise ``NotFoundError``."""

    @abstractmethod
    def find_all(self) -> List[T]:
        """Every entity, oldest ``created_at`` first."""

    @abstractmethod
    def update_by_id(self, entity_id: str, data: Dict[str, Any]) -> T:
        """Apply a sparse update and return the updated entity."""

    @abstractmethod
    def delete_by_id(self, entity_id: str) -> T:
        """Delete the entity and return it as it was."""

    @abstractmethod
    def find_by_fields(self, criteria: Dict[str, Any]) -> List[T]:
        """Exact-match conjunction over the supplied non-null fields."""

    @abstractmethod
    def count_all(self) -> int:
        pass

    @abstractmethod
    def delete_all(self) -> int:
        pass

    def find_by_field(self, field: str, value: Any) -> List[T]:
        return self.find_by_fields({field: value})

    # ------------------------------------------------------------------ helpers

    @property
    def field_names(self) -> List[str]:
        return self.entity_class.field_names()

    def not_found(self, entity_id: Any) -> NotFoundError:
        return NotFoundError(
            f"{self.entity_name} not found",
            details={'entity': self.entity_name, 'id': entity_id},
        )

    def is_valid_id(self, entity_id: Any) -> bool:
        return self.id_scheme.is_valid_id(entity_id)

    def build_entity(self, data: Dict[str, Any]) -> T:
        """Build a new, unsaved entity from a create payload."""
        now = storage_timestamp()
        values = {
            key: storage_value(value)
            for key, value in data.items()
            if key in self.field_names and key not in IMMUTABLE_FIELDS and value is not None
        }
        values['id'] = self.id_scheme.create_id()
        values['created_at'] = now
        values['updated_at'] = now
        try:
            return self.entity_class(**values)
        except TypeError as e:
            raise ValidationError(
                f"Incomplete {self.entity_name} payload: {e}",
                details={'entity': self.entity_name},
            ) from e

    def clean_update(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Drop ``None`` values, unknown keys and immutable fields; stamp ``updated_at``."""
        changes = {
            key: storage_value(value)
            for key, value in (data or {}).items()
            if value is not None and key in self.field_names and key not in IMMUTABLE_FIELDS
        }
        changes['updated_at'] = storage_timestamp()
        return changes

    def clean_criteria(self, criteria: Dict[str, Any]) -> Dict[str, Any]:
        unknown = sorted(key for key in criteria if key not in self.field_names)
        if unknown:
            raise ValidationError(
                f"Unknown {self.entity_name} field(s): {', '.join(unknown)}",
                field_errors={key: "unknown field" for key in unknown},
            )
        return {key: storage_value(value) for key, value in criteria.items() if value is not None}


class RoleDataSource(DataSource[Role]):
    """
    Role contract extended with atomic membership operations.

    All membership operations are idempotent and raise ``NotFoundError`` when
    the role does not exist. ``update_by_id`` with a ``permissions`` key
    replaces the membership set.
    """

    def find_by_name(self, name: str) -> Optional[Role]:
        matches = self.find_by_fields({'name': name})
        return matches[0] if matches else None

    def find_system_roles(self) -> List[Role]:
        return self.find_by_fields({'is_system': True})

    def find_active(self) -> List[Role]:
        return self.find_by_fields({'is_active': True})

    def assign_permission(self, role_id: str, permission_id: str) -> Role:
        return self.add_permissions(role_id, [permission_id])

    def remove_permission(self, role_id: str, permission_id: str) -> Role:
        return self.remove_permissions(role_id, [permission_id])

    @abstractmethod
    def add_permissions(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        pass

    @abstractmethod
    def remove_permissions(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        pass


class UserRoleDataSource(DataSource[UserRoleAssignment]):
    """Assignment contract extended with the expiry sweep query."""

    @abstractmethod
    def find_expired_active(self, now: Optional[datetime] = None) -> List[UserRoleAssignment]:
        """Active assignments whose ``expires_at`` is at or before ``now``."""


__all__ = [
    'DataSource',
    'RoleDataSource',
    'UserRoleDataSource',
    'IMMUTABLE_FIELDS',
    'storage_timestamp',
    'storage_value',
]
