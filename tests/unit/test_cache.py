"""
Unit tests for the Redis permission cache.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import redis

from qa_rbac.models.entities import Permission, UserRoleAssignment
from qa_rbac.services.cache import PERMISSIONS_KEY, ROLES_KEY, PermissionCache


USER = '507f1f77bcf86cd799439012'


@pytest.fixture
def permission():
    stamp = datetime(2024, 5, 1, tzinfo=timezone.utc)
    return Permission(
        id='507f1f77bcf86cd799439011', name='questions:read', description='Read questions',
        resource='questions', action='read', created_at=stamp, updated_at=stamp,
    )


class TestPermissionCache:

    def test_disabled_without_client(self, permission):
        cache = PermissionCache()

        assert cache.enabled is False
        cache.set_user_permissions(USER, [permission])
        assert cache.get_user_permissions(USER) is None
        assert cache.invalidate_all_permissions() == 0

    def test_permissions_round_trip(self, fake_redis, permission):
        cache = PermissionCache(fake_redis, ttl_seconds=60)

        assert cache.get_user_permissions(USER) is None
        cache.set_user_permissions(USER, [permission])

        assert cache.get_user_permissions(USER) == [permission]
        assert fake_redis.ttls[PERMISSIONS_KEY.format(user_id=USER)] == 60

    def test_empty_list_is_a_hit(self, fake_redis):
        cache = PermissionCache(fake_redis)
        cache.set_user_permissions(USER, [])

        assert cache.get_user_permissions(USER) == []

    def test_roles_round_trip(self, fake_redis):
        cache = PermissionCache(fake_redis)
        assignment = UserRoleAssignment(
            id='a1', user_id=USER, role_id='r1',
            assigned_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
            expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
        )
        cache.set_user_roles(USER, [assignment])

        cached = cache.get_user_roles(USER)
        assert cached[0].expires_at == assignment.expires_at
        assert cached[0].role_id == 'r1'

    def test_invalidate_user_drops_both_entries(self, fake_redis, permission):
        cache = PermissionCache(fake_redis)
        cache.set_user_permissions(USER, [permission])
        cache.set_user_roles(USER, [])

        cache.invalidate_user(USER)

        assert PERMISSIONS_KEY.format(user_id=USER) not in fake_redis.store
        assert ROLES_KEY.format(user_id=USER) not in fake_redis.store

    def test_invalidate_all_permissions_keeps_role_entries(self, fake_redis, permission):
        cache = PermissionCache(fake_redis)
        cache.set_user_permissions('u1', [permission])
        cache.set_user_permissions('u2', [permission])
        cache.set_user_roles('u1', [])

        assert cache.invalidate_all_permissions() == 2
        assert list(fake_redis.store) == [ROLES_KEY.format(user_id='u1')]

    def test_redis_errors_are_misses(self, permission):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("connection refused")
        client.setex.side_effect = redis.ConnectionError("connection refused")
        client.delete.side_effect = redis.TimeoutError("timed out")
        cache = PermissionCache(client)

        assert cache.get_user_permissions(USER) is None
        cache.set_user_permissions(USER, [permission])
        cache.invalidate_user(USER)

    def test_corrupt_entry_is_a_miss(self, fake_redis):
        fake_redis.store[PERMISSIONS_KEY.format(user_id=USER)] = '{not json'
        cache = PermissionCache(fake_redis)

        assert cache.get_user_permissions(USER) is None

    def test_entry_is_a_miss_once_valid_until_passes(self, fake_redis, permission):
        cache = PermissionCache(fake_redis, ttl_seconds=300)
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        valid_until = now + timedelta(seconds=60)

        cache.set_user_permissions(USER, [permission], valid_until=valid_until, now=now)

        assert fake_redis.ttls[PERMISSIONS_KEY.format(user_id=USER)] == 60
        assert cache.get_user_permissions(USER, now=now + timedelta(seconds=59)) == [permission]
        assert cache.get_user_permissions(USER, now=valid_until) is None

    def test_ttl_not_raised_by_distant_expiry(self, fake_redis, permission):
        cache = PermissionCache(fake_redis, ttl_seconds=300)
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        cache.set_user_permissions(USER, [permission], valid_until=now + timedelta(days=1), now=now)

        assert fake_redis.ttls[PERMISSIONS_KEY.format(user_id=USER)] == 300

    def test_already_expired_entry_not_written(self, fake_redis, permission):
        cache = PermissionCache(fake_redis)
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        cache.set_user_permissions(USER, [permission], valid_until=now, now=now)

        assert fake_redis.store == {}
