"""
Dependency injection wiring.

``RbacModule`` binds the process-wide database adapter and permission cache,
and provides every repository and service as a singleton built on them. The
Flask factory installs it into an ``injector.Injector`` stored on
``app.injector``; scripts and tests can build the same graph without Flask.
"""

from typing import Optional

import redis
from injector import Binder, Injector, Module, provider, singleton

from qa_rbac.database.adapters import DatabaseAdapter
from qa_rbac.repositories.interfaces import (
    IPermissionRepository,
    IRoleRepository,
    IUserRoleRepository,
)
from qa_rbac.repositories.permission import PermissionRepository
from qa_rbac.repositories.role import RoleRepository
from qa_rbac.repositories.user_role import UserRoleRepository
from qa_rbac.services.cache import DEFAULT_TTL_SECONDS, PermissionCache
from qa_rbac.services.permission_resolver import PermissionResolver
from qa_rbac.services.permission_service import PermissionService
from qa_rbac.services.role_service import DEFAULT_ROLE_NAME, RoleService
from qa_rbac.services.seed import RbacSeeder
from qa_rbac.services.user_role_service import UserRoleService


class RbacModule(Module):
    """
    Args:
        adapter: Database adapter selected at startup
        cache_client: Redis client, or ``None`` to run without a cache
        cache_ttl: Expiry of cached entries in seconds
        default_role_name: Role granted to newly registered users
    """

    def __init__(self, adapter: DatabaseAdapter,
                 cache_client: Optional[redis.Redis] = None,
                 cache_ttl: int = DEFAULT_TTL_SECONDS,
                 default_role_name: str = DEFAULT_ROLE_NAME):
        self.adapter = adapter
        self.cache = PermissionCache(cache_client, cache_ttl)
        self.default_role_name = default_role_name

    def configure(self, binder: Binder) -> None:
        binder.bind(DatabaseAdapter, to=self.adapter)
        binder.bind(PermissionCache, to=self.cache)

    # -------------------------------------------------------------- repositories

    @singleton
    @provider
    def provide_permission_repository(self, adapter: DatabaseAdapter) -> PermissionRepository:
        return PermissionRepository(adapter.permissions())

    @singleton
    @provider
    def provide_role_repository(self, adapter: DatabaseAdapter) -> RoleRepository:
        return RoleRepository(adapter.roles())

    @singleton
    @provider
    def provide_user_role_repository(self, adapter: DatabaseAdapter) -> UserRoleRepository:
        return UserRoleRepository(adapter.user_roles())

    @provider
    def provide_permission_repository_interface(self, repository: PermissionRepository) -> IPermissionRepository:
        return repository

    @provider
    def provide_role_repository_interface(self, repository: RoleRepository) -> IRoleRepository:
        return repository

    @provider
    def provide_user_role_repository_interface(self, repository: UserRoleRepository) -> IUserRoleRepository:
        return repository

    # -------------------------------------------------------------- services

    @singleton
    @provider
    def provide_permission_service(self, permissions: PermissionRepository,
                                   cache: PermissionCache) -> PermissionService:
        return PermissionService(permissions, cache)

    @singleton
    @provider
    def provide_role_service(self, roles: RoleRepository, permissions: PermissionRepository,
                             cache: PermissionCache) -> RoleService:
        return RoleService(roles, permissions, cache, self.default_role_name)

    @singleton
    @provider
    def provide_user_role_service(self, user_roles: UserRoleRepository, roles: RoleRepository,
                                  role_service: RoleService, cache: PermissionCache) -> UserRoleService:
        return UserRoleService(user_roles, roles, role_service, cache)

    @singleton
    @provider
    def provide_permission_resolver(self, user_roles: UserRoleRepository, roles: RoleRepository,
                                    permissions: PermissionRepository,
                                    cache: PermissionCache) -> PermissionResolver:
        return PermissionResolver(user_roles, roles, permissions, cache)

    @singleton
    @provider
    def provide_seeder(self, permission_service: PermissionService,
                       role_service: RoleService) -> RbacSeeder:
        return RbacSeeder(permission_service, role_service)


def build_injector(adapter: DatabaseAdapter, cache_client: Optional[redis.Redis] = None,
                   cache_ttl: int = DEFAULT_TTL_SECONDS,
                   default_role_name: str = DEFAULT_ROLE_NAME) -> Injector:
    return Injector([RbacModule(adapter, cache_client, cache_ttl, default_role_name)])


__all__ = ['RbacModule', 'build_injector']
