"""
Effective permission resolution over both storage backends.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from qa_rbac.services.cache import PERMISSIONS_KEY, PermissionCache
from qa_rbac.services.permission_resolver import PermissionResolver
from qa_rbac.services.role_service import RoleService
from qa_rbac.services.user_role_service import UserRoleService
from qa_rbac.utils.datetime import now_utc


@pytest.fixture
def catalogue(make_permission):
    """Four permissions keyed by name."""
    permissions = [
        make_permission(resource='questions', action='read'),
        make_permission(resource='questions', action='create'),
        make_permission(resource='answers', action='create'),
        make_permission(resource='system', action='admin', category='system'),
    ]
    return {p.name: p for p in permissions}


class TestPermissionResolver:

    def test_user_without_roles_has_nothing(self, resolver, user_id):
        assert resolver.get_user_permissions(user_id) == []
        assert resolver.get_user_permission_names(user_id) == set()
        assert not resolver.has_permission(user_id, 'questions:read')

    def test_union_across_roles_is_deduplicated(self, resolver, user_role_service, make_role,
                                                catalogue, user_id):
        writer = make_role(permissions=[catalogue['questions:read'].id, catalogue['questions:create'].id])
        answerer = make_role(permissions=[catalogue['questions:read'].id, catalogue['answers:create'].id])
        user_role_service.assign_role_to_user(user_id, writer.id)
        user_role_service.assign_role_to_user(user_id, answerer.id)

        permissions = resolver.get_user_permissions(user_id)

        assert len(permissions) == 3
        assert {p.name for p in permissions} == {'questions:read', 'questions:create', 'answers:create'}

    def test_any_and_all(self, resolver, user_role_service, make_role, catalogue, user_id):
        role = make_role(permissions=[catalogue['questions:read'].id])
        user_role_service.assign_role_to_user(user_id, role.id)

        assert resolver.has_permission(user_id, 'questions:read')
        assert resolver.has_any_permission(user_id, ['system:admin', 'questions:read'])
        assert not resolver.has_any_permission(user_id, [])
        assert not resolver.has_all_permissions(user_id, ['system:admin', 'questions:read'])
        assert resolver.has_all_permissions(user_id, ['questions:read'])

    def test_deleted_permission_is_dropped(self, resolver, user_role_service, permission_service,
                                           make_role, catalogue, user_id):
        role = make_role(permissions=[catalogue['questions:read'].id, catalogue['system:admin'].id])
        user_role_service.assign_role_to_user(user_id, role.id)

        permission_service.delete_by_id(catalogue['system:admin'].id)

        assert resolver.get_user_permission_names(user_id) == {'questions:read'}

    def test_inactive_permission_returned_but_not_granted(self, resolver, user_role_service,
                                                          permission_service, make_role,
                                                          catalogue, user_id):
        role = make_role(permissions=[catalogue['questions:read'].id])
        user_role_service.assign_role_to_user(user_id, role.id)

        permission_service.deactivate(catalogue['questions:read'].id)

        assert [p.name for p in resolver.get_user_permissions(user_id)] == ['questions:read']
        assert not resolver.has_permission(user_id, 'questions:read')

    def test_inactive_role_grants_nothing(self, resolver, user_role_service, role_service,
                                          make_role, catalogue, user_id):
        role = make_role(permissions=[catalogue['questions:read'].id])
        assignment = user_role_service.assign_role_to_user(user_id, role.id)

        role_service.deactivate_role(role.id)
        assert not resolver.has_permission(user_id, 'questions:read')
        assert user_role_service.find_assignment(user_id, role.id) == assignment

        role_service.activate_role(role.id)
        assert resolver.has_permission(user_id, 'questions:read')

    def test_deleted_role_is_skipped(self, resolver, user_role_service, role_service,
                                     make_role, catalogue, user_id):
        kept = make_role(permissions=[catalogue['answers:create'].id])
        dropped = make_role(permissions=[catalogue['questions:read'].id])
        user_role_service.assign_role_to_user(user_id, kept.id)
        user_role_service.assign_role_to_user(user_id, dropped.id)

        role_service.delete_by_id(dropped.id)

        assert resolver.get_user_permission_names(user_id) == {'answers:create'}

    def test_expired_assignment_grants_nothing(self, resolver, user_role_repository, make_role,
                                               catalogue, user_id):
        role = make_role(permissions=[catalogue['system:admin'].id])
        now = now_utc()
        user_role_repository.create({
            'user_id': user_id, 'role_id': role.id,
            'assigned_at': now - timedelta(days=1), 'expires_at': now - timedelta(seconds=1),
        })

        assert not resolver.has_permission(user_id, 'system:admin')

    def test_revoked_assignment_grants_nothing(self, resolver, user_role_service, make_role,
                                               catalogue, user_id):
        role = make_role(permissions=[catalogue['system:admin'].id])
        user_role_service.assign_role_to_user(user_id, role.id)
        user_role_service.remove_role_from_user(user_id, role.id)

        assert not resolver.has_permission(user_id, 'system:admin')


class TestCachedResolution:
    """Resolution through a Redis cache; writes must invalidate before returning."""

    @pytest.fixture
    def redis_cache(self, fake_redis):
        return PermissionCache(fake_redis, ttl_seconds=300)

    @pytest.fixture
    def cached(self, redis_cache, user_role_repository, role_repository, permission_repository):
        roles = RoleService(role_repository, permission_repository, redis_cache)
        return {
            'roles': roles,
            'user_roles': UserRoleService(user_role_repository, role_repository, roles, redis_cache),
            'resolver': PermissionResolver(user_role_repository, role_repository,
                                           permission_repository, redis_cache),
        }

    def test_second_lookup_served_from_cache(self, cached, fake_redis, make_role, catalogue, user_id):
        role = make_role(permissions=[catalogue['questions:read'].id])
        cached['user_roles'].assign_role_to_user(user_id, role.id)
        resolver = cached['resolver']

        first = resolver.get_user_permissions(user_id)
        assert PERMISSIONS_KEY.format(user_id=user_id) in fake_redis.store

        with patch.object(resolver.permissions, 'find_by_ids') as find_by_ids:
            assert resolver.get_user_permissions(user_id) == first
            find_by_ids.assert_not_called()

    def test_assignment_change_invalidates_user(self, cached, fake_redis, make_role, catalogue, user_id):
        role = make_role(permissions=[catalogue['questions:read'].id])
        resolver = cached['resolver']

        assert not resolver.has_permission(user_id, 'questions:read')
        cached['user_roles'].assign_role_to_user(user_id, role.id)
        assert resolver.has_permission(user_id, 'questions:read')

        cached['user_roles'].remove_role_from_user(user_id, role.id)
        assert not resolver.has_permission(user_id, 'questions:read')

    def test_role_grant_change_invalidates_all_users(self, cached, make_role, catalogue, adapter):
        role = make_role(permissions=[catalogue['questions:read'].id])
        users = [adapter.id_scheme.create_id() for _ in range(2)]
        for user in users:
            cached['user_roles'].assign_role_to_user(user, role.id)
            assert not cached['resolver'].has_permission(user, 'answers:create')

        cached['roles'].add_permissions_to_role(role.id, [catalogue['answers:create'].id])

        for user in users:
            assert cached['resolver'].has_permission(user, 'answers:create')

    def test_cached_roles_respect_expiry(self, cached, make_role, user_id):
        role = make_role()
        user_roles = cached['user_roles']
        user_roles.assign_role_to_user(user_id, role.id, expires_at=now_utc() + timedelta(hours=1))

        assert len(user_roles.get_user_active_roles(user_id)) == 1
        later = now_utc() + timedelta(hours=2)
        with patch('qa_rbac.services.user_role_service.now_utc', return_value=later):
            assert user_roles.get_user_active_roles(user_id) == []

    def test_cached_permissions_respect_expiry(self, cached, fake_redis, make_role, catalogue, user_id):
        role = make_role(permissions=[catalogue['system:admin'].id])
        resolver = cached['resolver']
        cached['user_roles'].assign_role_to_user(user_id, role.id, expires_at=now_utc() + timedelta(seconds=60))

        assert resolver.has_permission(user_id, 'system:admin')
        assert PERMISSIONS_KEY.format(user_id=user_id) in fake_redis.store

        later = now_utc() + timedelta(seconds=120)
        with patch('qa_rbac.services.permission_resolver.now_utc', return_value=later):
            assert not resolver.has_permission(user_id, 'system:admin')

    def test_cache_entry_bounded_by_soonest_expiry(self, cached, fake_redis, make_role,
                                                   catalogue, user_id):
        lasting = make_role(permissions=[catalogue['questions:read'].id])
        temporary = make_role(permissions=[catalogue['system:admin'].id])
        cached['user_roles'].assign_role_to_user(user_id, lasting.id)
        cached['user_roles'].assign_role_to_user(user_id, temporary.id,
                                                 expires_at=now_utc() + timedelta(seconds=60))

        assert cached['resolver'].get_user_permission_names(user_id) == {'questions:read', 'system:admin'}
        assert fake_redis.ttls[PERMISSIONS_KEY.format(user_id=user_id)] <= 60

        later = now_utc() + timedelta(seconds=120)
        with patch('qa_rbac.services.permission_resolver.now_utc', return_value=later):
            assert cached['resolver'].get_user_permission_names(user_id) == {'questions:read'}
