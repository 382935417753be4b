"""
RBAC Domain Entities

Backend-agnostic representations of permissions, roles and user-role
assignments. Both data sources convert their storage records into these
dataclasses so callers observe identical values whichever backend is active:
string ids, snake_case field names and timezone-aware UTC timestamps.

``Role.permissions`` models a set of permission ids but is exposed as an
insertion-ordered list without duplicates.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from qa_rbac.utils.datetime import now_utc, parse_datetime, to_utc


class PermissionCategory(Enum):
    """Grouping of permissions by the area of the platform they govern."""
    CONTENT = "content"
    USER = "user"
    SYSTEM = "system"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


def unique_ids(ids: Iterable[str]) -> List[str]:
    """Collapse duplicate ids while keeping first-seen order."""
    return list(dict.fromkeys(ids))


_DATETIME_FIELDS = ('created_at', 'updated_at', 'assigned_at', 'expires_at')


class EntityMixin:
    """Serialisation helpers shared by the RBAC entities."""

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert the entity to a JSON-compatible dictionary."""
        result = {}
        for name in self.field_names():
            value = getattr(self, name)
            if isinstance(value, datetime):
                value = to_utc(value).isoformat()
            elif isinstance(value, Enum):
                value = value.value
            elif isinstance(value, list):
                value = list(value)
            result[name] = value
        return result

    def to_storage(self) -> Dict[str, Any]:
        """Field values as stored: enums by value, datetimes kept as objects."""
        result = {}
        for name in self.field_names():
            value = getattr(self, name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, list):
                value = list(value)
            result[name] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Rebuild an entity from ``to_dict`` output; unknown keys are ignored."""
        kwargs = {}
        for name in cls.field_names():
            if name not in data:
                continue
            value = data[name]
            if name in _DATETIME_FIELDS and isinstance(value, str):
                value = parse_datetime(value)
            kwargs[name] = value
        return cls(**kwargs)


@dataclass
class Permission(EntityMixin):
    """
    A named capability, conventionally ``resource:action``.

    Deactivating a permission is preferred over deleting it; resolution
    helpers that answer yes/no questions consider active permissions only.
    """

    id: str
    name: str
    description: str
    resource: str
    action: str
    category: PermissionCategory = PermissionCategory.CONTENT
    is_active: bool = True
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        if not isinstance(self.category, PermissionCategory):
            self.category = PermissionCategory(self.category)
        self.created_at = to_utc(self.created_at)
        self.updated_at = to_utc(self.updated_at)

    def __repr__(self):
        return f"<Permission {self.name} (ID: {self.id}, Active: {self.is_active})>"


@dataclass
class Role(EntityMixin):
    """A named bundle of permission ids."""

    id: str
    name: str
    description: str = ""
    permissions: List[str] = field(default_factory=list)
    is_system: bool = False
    is_active: bool = True
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        self.permissions = unique_ids(self.permissions or [])
        self.created_at = to_utc(self.created_at)
        self.updated_at = to_utc(self.updated_at)

    def has_permission_id(self, permission_id: str) -> bool:
        return permission_id in self.permissions

    def __repr__(self):
        return f"<Role {self.name} (ID: {self.id}, Active: {self.is_active})>"


@dataclass
class UserRoleAssignment(EntityMixin):
    """
    One grant of a role to a user.

    Revocation flips ``is_active``; rows are never physically removed by the
    assignment workflow. An assignment is *effective* while it is active and
    its optional ``expires_at`` lies in the future.
    """

    id: str
    user_id: str
    role_id: str
    assigned_at: datetime = field(default_factory=now_utc)
    assigned_by: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        self.assigned_at = to_utc(self.assigned_at)
        self.expires_at = to_utc(self.expires_at)
        self.created_at = to_utc(self.created_at)
        self.updated_at = to_utc(self.updated_at)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or now_utc())

    def is_effective(self, now: Optional[datetime] = None) -> bool:
        return self.is_active and not self.is_expired(now)

    def __repr__(self):
        return (
            f"<UserRoleAssignment user={self.user_id} role={self.role_id} "
            f"(Active: {self.is_active})>"
        )


__all__ = [
    'PermissionCategory',
    'Permission',
    'Role',
    'UserRoleAssignment',
    'unique_ids',
]
