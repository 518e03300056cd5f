"""Identity store: CRUD over identity rows."""

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from openblind_auth.common.exceptions import DuplicateEmailError
from openblind_auth.identity.models import IdentityModel, IdentityRole, identity_roles
from openblind_auth.sessions.models import SessionModel

UPDATABLE_FIELDS = ("display_name", "role", "is_active", "last_login", "password_hash")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class IdentityService:
    """Identity management operations."""

    async def find_by_email(
        self, session: AsyncSession, email: str
    ) -> IdentityModel | None:
        result = await session.execute(
            select(IdentityModel).where(IdentityModel.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def find_by_id(
        self, session: AsyncSession, identity_id: str
    ) -> IdentityModel | None:
        return await session.get(IdentityModel, identity_id)

    async def create(
        self,
        session: AsyncSession,
        email: str,
        password_hash: str,
        role: IdentityRole | str = IdentityRole.USER,
        display_name: str = "",
        is_active: bool = True,
    ) -> IdentityModel:
        """Insert an identity. Raises DuplicateEmailError if the email is taken."""
        if await self.find_by_email(session, email) is not None:
            raise DuplicateEmailError()
        identity = IdentityModel(
            email=normalize_email(email),
            password_hash=password_hash,
            role=IdentityRole(role).value,
            display_name=display_name,
            is_active=is_active,
        )
        session.add(identity)
        await session.flush()
        return identity

    async def update(
        self, session: AsyncSession, identity_id: str, **fields
    ) -> IdentityModel | None:
        identity = await self.find_by_id(session, identity_id)
        if identity is None:
            return None
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update identity fields: {sorted(unknown)}")
        if "role" in fields and fields["role"] is not None:
            fields["role"] = IdentityRole(fields["role"]).value
        for field, value in fields.items():
            if value is not None:
                setattr(identity, field, value)
        await session.flush()
        return identity

    async def delete(self, session: AsyncSession, identity_id: str) -> bool:
        identity = await self.find_by_id(session, identity_id)
        if identity is None:
            return False
        # SQLite does not enforce ON DELETE CASCADE unless foreign_keys is on.
        await session.execute(
            delete(SessionModel).where(SessionModel.identity_id == identity_id)
        )
        await session.execute(
            delete(identity_roles).where(identity_roles.c.identity_id == identity_id)
        )
        await session.delete(identity)
        await session.flush()
        return True

    async def list_identities(
        self,
        session: AsyncSession,
        role: str | None = None,
        is_active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[IdentityModel]:
        query = select(IdentityModel)
        if role is not None:
            query = query.where(IdentityModel.role == role)
        if is_active is not None:
            query = query.where(IdentityModel.is_active == is_active)
        query = query.order_by(IdentityModel.created_at.desc()).offset(offset).limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    async def count_identities(
        self,
        session: AsyncSession,
        role: str | None = None,
        is_active: bool | None = None,
        created_since: datetime | None = None,
    ) -> int:
        query = select(func.count()).select_from(IdentityModel)
        if role is not None:
            query = query.where(IdentityModel.role == role)
        if is_active is not None:
            query = query.where(IdentityModel.is_active == is_active)
        if created_since is not None:
            query = query.where(IdentityModel.created_at >= created_since)
        result = await session.execute(query)
        return result.scalar_one()
