"""
Unit tests for the RBAC entities.
"""

from datetime import datetime, timedelta, timezone

import pytest

from qa_rbac.database.base import storage_timestamp
from qa_rbac.models.entities import (
    Permission,
    PermissionCategory,
    Role,
    UserRoleAssignment,
    unique_ids,
)


NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_assignment(**overrides):
    values = {
        'id': '507f1f77bcf86cd799439011',
        'user_id': '507f1f77bcf86cd799439012',
        'role_id': '507f1f77bcf86cd799439013',
        'assigned_at': NOW,
    }
    values.update(overrides)
    return UserRoleAssignment(**values)


class TestUserRoleAssignment:

    def test_without_expiry_is_effective_while_active(self):
        assignment = make_assignment()

        assert assignment.is_effective(NOW + timedelta(days=3650))
        assert not assignment.is_expired(NOW)

    def test_expiry_boundary_is_exclusive(self):
        assignment = make_assignment(expires_at=NOW + timedelta(hours=1))

        assert assignment.is_effective(NOW + timedelta(minutes=59))
        assert not assignment.is_effective(NOW + timedelta(hours=1))
        assert assignment.is_expired(NOW + timedelta(hours=1))

    def test_inactive_is_never_effective(self):
        assert not make_assignment(is_active=False).is_effective(NOW)

    def test_naive_datetimes_are_taken_as_utc(self):
        assignment = make_assignment(assigned_at=datetime(2024, 5, 1, 12, 0, 0))

        assert assignment.assigned_at == NOW
        assert assignment.assigned_at.tzinfo is not None


class TestRole:

    def test_permissions_are_deduplicated_in_order(self):
        role = Role(id='r1', name='moderator', permissions=['b', 'a', 'b', 'c', 'a'])

        assert role.permissions == ['b', 'a', 'c']
        assert role.has_permission_id('c')
        assert not role.has_permission_id('d')

    def test_defaults(self):
        role = Role(id='r1', name='user')

        assert role.permissions == []
        assert role.is_system is False
        assert role.is_active is True

    def test_unique_ids_keeps_first_seen_order(self):
        assert unique_ids(['x', 'y', 'x', 'z', 'y']) == ['x', 'y', 'z']


class TestPermission:

    def test_category_coerced_from_value(self):
        permission = Permission(
            id='p1', name='users:read', description='Read users',
            resource='users', action='read', category='user',
        )

        assert permission.category is PermissionCategory.USER

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError):
            Permission(id='p1', name='x:y', description='', resource='x', action='y', category='misc')

    def test_dict_round_trip(self):
        permission = Permission(
            id='p1', name='system:admin', description='Full system access',
            resource='system', action='admin', category=PermissionCategory.SYSTEM,
            created_at=NOW, updated_at=NOW,
        )
        data = permission.to_dict()

        assert data['category'] == 'system'
        assert data['created_at'] == NOW.isoformat()
        assert Permission.from_dict(data) == permission

    def test_to_storage_keeps_datetimes(self):
        data = Permission(id='p1', name='a:b', description='', resource='a', action='b').to_storage()

        assert isinstance(data['created_at'], datetime)
        assert data['category'] == 'content'


class TestStorageTimestamp:

    def test_truncates_to_milliseconds(self):
        value = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)

        assert storage_timestamp(value).microsecond == 123000

    def test_converts_to_utc(self):
        value = datetime(2024, 5, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))

        assert storage_timestamp(value) == NOW
        assert storage_timestamp(value).utcoffset() == timedelta(0)
