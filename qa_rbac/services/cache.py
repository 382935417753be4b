"""
Redis cache for resolved permissions and active roles.

Cache-aside only: services read through ``get_*`` and populate with ``set_*``
after a miss; writes that change what a user may do invalidate the affected
keys before returning. Redis faults are logged and treated as misses so a
cache outage never blocks an authorization decision.
"""

import json
import math
from datetime import datetime
from typing import Any, Callable, List, Optional, Type, TypeVar

import redis

from qa_rbac.models.entities import Permission, UserRoleAssignment
from qa_rbac.utils.datetime import now_utc, parse_datetime
from qa_rbac.utils.logging import get_logger


T = TypeVar("T")

logger = get_logger(__name__)

PERMISSIONS_KEY = 'rbac:permissions:user:{user_id}'
ROLES_KEY = 'rbac:roles:user:{user_id}'
DEFAULT_TTL_SECONDS = 300


def create_redis_client(url: str) -> redis.Redis:
    return redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )


class PermissionCache:
    """
    Per-user cache of effective permissions and active role assignments.

    Args:
        client: Redis client; ``None`` disables caching
        ttl_seconds: Expiry applied to every entry
    """

    def __init__(self, client: Optional[redis.Redis] = None, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _guard(self, operation: str, func: Callable[[], T], default: T) -> T:
        if self.client is None:
            return default
        try:
            return func()
        except (redis.RedisError, ValueError, TypeError) as e:
            logger.warning("permission_cache_error", operation=operation, error=str(e))
            return default

    def _read(self, key: str, entity_class: Type[T]) -> Optional[List[T]]:
        def read():
            raw = self.client.get(key)
            if raw is None:
                return None
            return [entity_class.from_dict(item) for item in json.loads(raw)]

        return self._guard('get', read, None)

    def _write(self, key: str, entities: List[Any]) -> None:
        def write():
            payload = json.dumps([entity.to_dict() for entity in entities])
            self.client.setex(key, self.ttl_seconds, payload)

        self._guard('set', write, None)

    # -------------------------------------------------------------- permissions

    def get_user_permissions(self, user_id: str,
                             now: Optional[datetime] = None) -> Optional[List[Permission]]:
        """
        Return the cached permissions of ``user_id``, or ``None`` on a miss.

        An entry whose ``valid_until`` is at or before ``now`` is a miss: one of
        the assignments it was resolved from has expired since.
        """
        def read():
            raw = self.client.get(PERMISSIONS_KEY.format(user_id=user_id))
            if raw is None:
                return None
            entry = json.loads(raw)
            if not isinstance(entry, dict):
                return None
            valid_until = parse_datetime(entry.get('valid_until'))
            if valid_until is not None and valid_until <= (now or now_utc()):
                return None
            return [Permission.from_dict(item) for item in entry['permissions']]

        return self._guard('get', read, None)

    def set_user_permissions(self, user_id: str, permissions: List[Permission],
                             valid_until: Optional[datetime] = None,
                             now: Optional[datetime] = None) -> None:
        """
        Cache the resolved permissions of ``user_id``.

        Args:
            valid_until: Soonest expiry among the assignments the permissions
                came from; the entry is neither served nor kept past it
            now: Reference time for the Redis TTL
        """
        ttl = self.ttl_seconds
        if valid_until is not None:
            remaining = (valid_until - (now or now_utc())).total_seconds()
            if remaining <= 0:
                return
            ttl = min(ttl, max(1, math.ceil(remaining)))

        def write():
            payload = json.dumps({
                'valid_until': valid_until.isoformat() if valid_until else None,
                'permissions': [permission.to_dict() for permission in permissions],
            })
            self.client.setex(PERMISSIONS_KEY.format(user_id=user_id), ttl, payload)

        self._guard('set', write, None)

    # -------------------------------------------------------------- roles

    def get_user_roles(self, user_id: str) -> Optional[List[UserRoleAssignment]]:
        return self._read(ROLES_KEY.format(user_id=user_id), UserRoleAssignment)

    def set_user_roles(self, user_id: str, assignments: List[UserRoleAssignment]) -> None:
        self._write(ROLES_KEY.format(user_id=user_id), assignments)

    # -------------------------------------------------------------- invalidation

    def invalidate_user(self, user_id: str) -> None:
        """Drop both cached entries of one user."""
        keys = [PERMISSIONS_KEY.format(user_id=user_id), ROLES_KEY.format(user_id=user_id)]
        self._guard('invalidate_user', lambda: self.client.delete(*keys), 0)
        logger.debug("permission_cache_invalidated", user_id=user_id)

    def invalidate_all_permissions(self) -> int:
        """Drop every user's cached permissions, e.g. after a role's grants change."""

        def invalidate():
            pattern = PERMISSIONS_KEY.format(user_id='*')
            keys = list(self.client.scan_iter(match=pattern))
            if not keys:
                return 0
            return self.client.delete(*keys)

        removed = self._guard('invalidate_all_permissions', invalidate, 0)
        logger.debug("permission_cache_flushed", removed=removed)
        return removed


__all__ = ['PermissionCache', 'create_redis_client', 'PERMISSIONS_KEY', 'ROLES_KEY']
