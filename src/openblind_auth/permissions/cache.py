"""Cache stores for resolved permission sets.

Implementations:
- InMemoryPermissionCache: process-local dict with TTL (dev/single instance)
- RedisPermissionCache: shared across instances, Redis handles expiry

Both keep entries for at most the configured TTL. There is no write-through
invalidation when roles or grants change; callers that need it use
PermissionResolver.invalidate().
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, NamedTuple, Protocol

from openblind_auth.common.models import utcnow

logger = logging.getLogger(__name__)


class PermissionRef(NamedTuple):
    """An atomic (resource, action) capability."""

    resource: str
    action: str

    @property
    def name(self) -> str:
        return f"{self.resource}.{self.action}"

    @classmethod
    def parse(cls, value: str | tuple[str, str] | PermissionRef) -> PermissionRef:
        """Accept "routes.update", ("routes", "update") or a PermissionRef."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            resource, sep, action = value.rpartition(".")
            if not sep or not resource or not action:
                raise ValueError(f"Permission must look like 'resource.action': {value!r}")
            return cls(resource, action)
        resource, action = value
        return cls(resource, action)


PermissionSet = frozenset[PermissionRef]


class PermissionCache(Protocol):
    """Per-identity store of resolved permission sets."""

    async def get(
        self, identity_id: str, now: datetime | None = None
    ) -> PermissionSet | None: ...

    async def set(
        self, identity_id: str, permissions: PermissionSet, now: datetime | None = None
    ) -> None: ...

    async def delete(self, identity_id: str) -> None: ...

    async def clear(self) -> None: ...


@dataclass(slots=True)
class _CacheItem:
    permissions: PermissionSet
    expires_at: datetime


class InMemoryPermissionCache:
    """Process-local permission cache with TTL and an injectable clock.

    Expired entries are dropped when read and swept out on every write, so
    identities that never come back do not pile up. Concurrent writers for the
    same identity are allowed; the last write wins.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._store: dict[str, _CacheItem] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._store)

    async def get(
        self, identity_id: str, now: datetime | None = None
    ) -> PermissionSet | None:
        now = now or self._clock()
        with self._lock:
            item = self._store.get(identity_id)
            if item is None:
                return None
            if now >= item.expires_at:
                self._store.pop(identity_id, None)
                return None
            return item.permissions

    async def set(
        self, identity_id: str, permissions: PermissionSet, now: datetime | None = None
    ) -> None:
        now = now or self._clock()
        with self._lock:
            expired = [key for key, item in self._store.items() if now >= item.expires_at]
            for key in expired:
                del self._store[key]
            self._store[identity_id] = _CacheItem(
                permissions=frozenset(permissions), expires_at=now + self.ttl
            )

    async def delete(self, identity_id: str) -> None:
        with self._lock:
            self._store.pop(identity_id, None)

    async def clear(self) -> None:
        with self._lock:
            self._store.clear()


class RedisPermissionCache:
    """Redis-backed permission cache shared by every API instance.

    Values are JSON lists of [resource, action] pairs stored with SETEX.
    Redis failures are logged and treated as cache misses, so a Redis outage
    degrades to one storage read per check instead of failing requests.
    """

    def __init__(
        self,
        redis_client: Any,
        ttl_seconds: int = 300,
        key_prefix: str = "openblind:perms:",
    ) -> None:
        self._client = redis_client
        self.ttl_seconds = int(ttl_seconds)
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisPermissionCache:
        from redis.asyncio import Redis

        return cls(Redis.from_url(url, decode_responses=True), **kwargs)

    def _key(self, identity_id: str) -> str:
        return f"{self.key_prefix}{identity_id}"

    async def get(
        self, identity_id: str, now: datetime | None = None
    ) -> PermissionSet | None:
        from redis.exceptions import RedisError

        try:
            data = await self._client.get(self._key(identity_id))
        except RedisError:
            logger.warning("Permission cache read failed for %s", identity_id, exc_info=True)
            return None
        if data is None:
            return None
        try:
            pairs = json.loads(data)
            return frozenset(PermissionRef(resource, action) for resource, action in pairs)
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning("Discarding corrupt permission cache entry for %s", identity_id)
            return None

    async def set(
        self, identity_id: str, permissions: PermissionSet, now: datetime | None = None
    ) -> None:
        from redis.exceptions import RedisError

        payload = json.dumps(sorted([p.resource, p.action] for p in permissions))
        try:
            await self._client.setex(self._key(identity_id), self.ttl_seconds, payload)
        except RedisError:
            logger.warning("Permission cache write failed for %s", identity_id, exc_info=True)

    async def delete(self, identity_id: str) -> None:
        from redis.exceptions import RedisError

        try:
            await self._client.delete(self._key(identity_id))
        except RedisError:
            logger.warning("Permission cache delete failed for %s", identity_id, exc_info=True)

    async def clear(self) -> None:
        from redis.exceptions import RedisError

        try:
            keys = [key async for key in self._client.scan_iter(match=f"{self.key_prefix}*")]
            if keys:
                await self._client.delete(*keys)
        except RedisError:
            logger.warning("Permission cache clear failed", exc_info=True)
