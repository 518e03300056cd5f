"""User administration: account CRUD on behalf of an authenticated actor.

Gates (role, permission, ownership) are applied by the router before any of
these run. The service enforces the rules that hold whoever the actor is:
nobody deletes or deactivates their own account, and only admins change a
role or the active flag.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from openblind_auth.audit.service import AuditSink
from openblind_auth.common.exceptions import IdentityNotFoundError, InvalidOperationError
from openblind_auth.common.models import utcnow
from openblind_auth.identity.models import IdentityModel, IdentityRole
from openblind_auth.identity.passwords import hash_password
from openblind_auth.identity.roles import RoleService
from openblind_auth.identity.service import IdentityService
from openblind_auth.permissions.resolver import PermissionResolver
from openblind_auth.sessions.service import SessionManager

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(days=30)


@dataclass
class UserStats:
    total: int
    active: int
    recent: int
    by_role: dict[str, int] = field(default_factory=dict)


class UserAdminService:
    """Account management used by the /users routes."""

    def __init__(
        self,
        identities: IdentityService,
        roles: RoleService,
        sessions: SessionManager,
        resolver: PermissionResolver,
        audit: AuditSink,
        bcrypt_rounds: int = 12,
    ):
        self.identities = identities
        self.roles = roles
        self.sessions = sessions
        self.resolver = resolver
        self.audit = audit
        self.bcrypt_rounds = bcrypt_rounds

    async def get_user(self, session: AsyncSession, identity_id: str) -> IdentityModel:
        identity = await self.identities.find_by_id(session, identity_id)
        if identity is None:
            raise IdentityNotFoundError()
        return identity

    async def list_users(
        self,
        session: AsyncSession,
        role: str | None = None,
        is_active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[IdentityModel], int]:
        """Return one page of identities and the total matching the filters."""
        users = await self.identities.list_identities(
            session, role=role, is_active=is_active, limit=limit, offset=offset
        )
        total = await self.identities.count_identities(
            session, role=role, is_active=is_active
        )
        return users, total

    async def stats(self, session: AsyncSession, now: datetime | None = None) -> UserStats:
        now = now or utcnow()
        count = self.identities.count_identities
        return UserStats(
            total=await count(session),
            active=await count(session, is_active=True),
            recent=await count(session, created_since=now - RECENT_WINDOW),
            by_role={r.value: await count(session, role=r.value) for r in IdentityRole},
        )

    async def create_user(
        self,
        session: AsyncSession,
        actor: IdentityModel,
        email: str,
        password: str,
        role: IdentityRole | str = IdentityRole.USER,
        display_name: str = "",
    ) -> IdentityModel:
        password_hash = await hash_password(password, self.bcrypt_rounds)
        identity = await self.identities.create(
            session, email, password_hash, role=role, display_name=display_name
        )
        await self.roles.assign(session, identity.id, identity.role)
        self.audit.append(
            "user.create_admin", "identities", identity.id, actor.id,
            {"email": identity.email, "role": identity.role},
        )
        logger.info("User %s created by %s", identity.email, actor.email)
        return identity

    async def update_user(
        self,
        session: AsyncSession,
        actor: IdentityModel,
        identity_id: str,
        display_name: str | None = None,
        role: IdentityRole | str | None = None,
        is_active: bool | None = None,
    ) -> IdentityModel:
        """Apply a partial update. ``role`` and ``is_active`` are ignored unless the actor is an admin."""
        identity = await self.get_user(session, identity_id)
        is_admin = actor.role == IdentityRole.ADMIN.value
        if not is_admin:
            role = None
            is_active = None
        if is_active is False and identity.id == actor.id:
            raise InvalidOperationError("You cannot deactivate your own account")

        old_role = identity.role
        changes = {
            name: value
            for name, value in (
                ("display_name", display_name),
                ("role", IdentityRole(role).value if role is not None else None),
                ("is_active", is_active),
            )
            if value is not None
        }
        await self.identities.update(session, identity.id, **changes)
        if identity.role != old_role:
            await self._move_role(session, identity.id, old_role, identity.role)

        self.audit.append(
            "user.update", "identities", identity.id, actor.id, {"changes": changes}
        )
        return identity

    async def set_status(
        self,
        session: AsyncSession,
        actor: IdentityModel,
        identity_id: str,
        is_active: bool,
    ) -> IdentityModel:
        if identity_id == actor.id and not is_active:
            raise InvalidOperationError("You cannot deactivate your own account")
        identity = await self.get_user(session, identity_id)
        await self.identities.update(session, identity.id, is_active=is_active)
        self.audit.append(
            "user.status_change", "identities", identity.id, actor.id,
            {"is_active": is_active},
        )
        logger.info(
            "User %s %s by %s",
            identity.email, "activated" if is_active else "deactivated", actor.email,
        )
        return identity

    async def reset_password(
        self,
        session: AsyncSession,
        actor: IdentityModel,
        identity_id: str,
        new_password: str,
    ) -> int:
        """Set a new password and end every session of the identity. Returns sessions ended."""
        identity = await self.get_user(session, identity_id)
        new_hash = await hash_password(new_password, self.bcrypt_rounds)
        await self.identities.update(session, identity.id, password_hash=new_hash)
        ended = await self.sessions.destroy_all(session, identity.id)
        self.audit.append(
            "user.password_change_admin", "identities", identity.id, actor.id,
            {"sessions_ended": ended},
        )
        logger.info("Password reset for %s by %s", identity.email, actor.email)
        return ended

    async def delete_user(
        self, session: AsyncSession, actor: IdentityModel, identity_id: str
    ) -> None:
        if identity_id == actor.id:
            raise InvalidOperationError("You cannot delete your own account")
        identity = await self.get_user(session, identity_id)
        email = identity.email
        await self.identities.delete(session, identity.id)
        await self.resolver.invalidate(identity_id)
        self.audit.append(
            "user.delete", "identities", identity_id, actor.id, {"email": email}
        )
        logger.info("User %s deleted by %s", email, actor.email)

    async def _move_role(
        self, session: AsyncSession, identity_id: str, old_role: str, new_role: str
    ) -> None:
        await self.roles.unassign(session, identity_id, old_role)
        await self.roles.assign(session, identity_id, new_role)
        await self.resolver.invalidate(identity_id)
