"""Permission resolver: role-derived permission sets with a TTL cache."""

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from openblind_auth.common.models import utcnow
from openblind_auth.identity.roles import RoleService
from openblind_auth.permissions.cache import (
    InMemoryPermissionCache,
    PermissionCache,
    PermissionRef,
    PermissionSet,
)

logger = logging.getLogger(__name__)


class PermissionResolver:
    """Resolves the (resource, action) pairs reachable through an identity's roles.

    A cache hit inside the TTL returns without touching storage. A miss
    reads the role store and refreshes the entry. Two tasks missing for the
    same identity at once both compute the same set; the later write wins.
    """

    def __init__(
        self,
        roles: RoleService,
        cache: PermissionCache | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._roles = roles
        self.cache = cache if cache is not None else InMemoryPermissionCache(clock=clock)
        self._clock = clock

    async def resolve(
        self,
        session: AsyncSession,
        identity_id: str,
        now: datetime | None = None,
    ) -> PermissionSet:
        now = now or self._clock()
        cached = await self.cache.get(identity_id, now)
        if cached is not None:
            return cached

        permissions = await self._roles.permissions_for(session, identity_id)
        by_id = {p.id: PermissionRef(p.resource, p.action) for p in permissions}
        resolved = frozenset(by_id.values())

        await self.cache.set(identity_id, resolved, now)
        logger.debug(
            "Resolved %d permissions for identity %s", len(resolved), identity_id
        )
        return resolved

    async def has_permission(
        self,
        session: AsyncSession,
        identity_id: str,
        resource: str,
        action: str,
        now: datetime | None = None,
    ) -> bool:
        resolved = await self.resolve(session, identity_id, now)
        return PermissionRef(resource, action) in resolved

    async def invalidate(self, identity_id: str | None = None) -> None:
        """Evict one identity's entry, or every entry when identity_id is None."""
        if identity_id is None:
            await self.cache.clear()
        else:
            await self.cache.delete(identity_id)
