"""
Pytest configuration and shared fixtures.

Every storage-facing fixture is parametrised over both backends: the
relational path runs on in-memory SQLite (one shared connection through
``StaticPool``) and the document path on ``mongomock``. Tests that take
``adapter`` or any service fixture therefore run once per backend.
"""

import fnmatch
from typing import Any, Dict, Iterator, List, Optional

import mongomock
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from qa_rbac.app import create_app
from qa_rbac.container import build_injector
from qa_rbac.database.adapters import MongoDBAdapter, PostgreSQLAdapter
from qa_rbac.repositories.permission import PermissionRepository
from qa_rbac.repositories.role import RoleRepository
from qa_rbac.repositories.user_role import UserRoleRepository
from qa_rbac.services.cache import PermissionCache
from qa_rbac.services.permission_resolver import PermissionResolver
from qa_rbac.services.permission_service import PermissionService
from qa_rbac.services.role_service import RoleService
from qa_rbac.services.seed import RbacSeeder
from qa_rbac.services.user_role_service import UserRoleService


# =============================================================================
# PYTEST CONFIGURATION AND MARKERS
# =============================================================================

def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests for individual components and functions")
    config.addinivalue_line("markers", "integration: Integration tests against a storage backend")
    config.addinivalue_line("markers", "auth: Authorization decorator tests")
    config.addinivalue_line("markers", "database: Data-access contract tests")


def pytest_collection_modifyitems(config, items):
    """Apply markers based on test location."""
    for item in items:
        path = str(item.fspath)
        if "unit" in path:
            item.add_marker(pytest.mark.unit)
        elif "integration" in path:
            item.add_marker(pytest.mark.integration)

        if "decorator" in path:
            item.add_marker(pytest.mark.auth)
        elif "data_source" in path:
            item.add_marker(pytest.mark.database)


# =============================================================================
# CACHE DOUBLE
# =============================================================================

class FakeRedis:
    """In-memory stand-in for the subset of ``redis.Redis`` the cache uses."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def scan_iter(self, match: str = '*') -> Iterator[str]:
        return iter([key for key in list(self.store) if fnmatch.fnmatchcase(key, match)])


@pytest.fixture
def fake_redis():
    return FakeRedis()


# =============================================================================
# STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def sql_adapter():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    adapter = PostgreSQLAdapter(scoped_session(sessionmaker(bind=engine)), engine)
    adapter.initialize()
    yield adapter
    adapter.close()


@pytest.fixture
def mongo_adapter():
    adapter = MongoDBAdapter(mongomock.MongoClient(), 'qa_rbac_test')
    adapter.initialize()
    yield adapter
    adapter.close()


@pytest.fixture(params=['postgresql', 'mongodb'])
def adapter(request):
    """The same test body against each backend."""
    fixture_name = 'sql_adapter' if request.param == 'postgresql' else 'mongo_adapter'
    return request.getfixturevalue(fixture_name)


@pytest.fixture
def other_adapter_id(adapter):
    """An id well-formed for the backend that is *not* under test."""
    if adapter.kind.value == 'postgresql':
        return '507f1f77bcf86cd799439011'
    return 'c9bf9e57-1685-4c89-bafb-ff5af830be8a'


@pytest.fixture
def user_id(adapter):
    return adapter.id_scheme.create_id()


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def cache():
    """Caching disabled; cache behaviour has dedicated tests."""
    return PermissionCache()


@pytest.fixture
def permission_repository(adapter):
    return PermissionRepository(adapter.permissions())


@pytest.fixture
def role_repository(adapter):
    return RoleRepository(adapter.roles())


@pytest.fixture
def user_role_repository(adapter):
    return UserRoleRepository(adapter.user_roles())


@pytest.fixture
def permission_service(permission_repository, cache):
    return PermissionService(permission_repository, cache)


@pytest.fixture
def role_service(role_repository, permission_repository, cache):
    return RoleService(role_repository, permission_repository, cache)


@pytest.fixture
def user_role_service(user_role_repository, role_repository, role_service, cache):
    return UserRoleService(user_role_repository, role_repository, role_service, cache)


@pytest.fixture
def resolver(user_role_repository, role_repository, permission_repository, cache):
    return PermissionResolver(user_role_repository, role_repository, permission_repository, cache)


@pytest.fixture
def seeder(permission_service, role_service):
    return RbacSeeder(permission_service, role_service)


@pytest.fixture
def injector(adapter):
    return build_injector(adapter)


@pytest.fixture
def make_permission(permission_service):
    """Create a permission from a factory payload."""
    from tests.factories import PermissionPayloadFactory

    def _make(**overrides: Any):
        return permission_service.create(PermissionPayloadFactory(**overrides))

    return _make


@pytest.fixture
def make_role(role_service):
    from tests.factories import RolePayloadFactory

    def _make(permissions: Optional[List[str]] = None, **overrides: Any):
        return role_service.create(RolePayloadFactory(permissions=permissions or [], **overrides))

    return _make


# =============================================================================
# FLASK APPLICATION FIXTURES
# =============================================================================

@pytest.fixture
def app(adapter):
    """Flask application wired to the backend under test."""
    application = create_app('testing', adapter=adapter)
    with application.app_context():
        yield application


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def runner(app):
    return app.test_cli_runner()
