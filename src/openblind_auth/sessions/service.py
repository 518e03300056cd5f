"""Session manager: server-side session records bound to token fingerprints."""

import hashlib
import hmac
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from openblind_auth.common.exceptions import AuthenticationError, AuthenticationFailure
from openblind_auth.common.models import utcnow
from openblind_auth.identity.models import IdentityModel
from openblind_auth.sessions.models import SessionModel


def fingerprint_token(raw_token: str, secret: str) -> str:
    """HMAC-SHA256 of a raw bearer token, hex. Deterministic, so it can be indexed."""
    return hmac.new(secret.encode(), raw_token.encode(), hashlib.sha256).hexdigest()


class SessionManager:
    """Creates, validates and destroys session rows.

    Raw tokens never reach the database; rows are located by the keyed
    fingerprint of the presented token.
    """

    def __init__(self, secret: str, ttl_seconds: int = 86400):
        self._secret = secret
        self.ttl = timedelta(seconds=ttl_seconds)

    def fingerprint(self, raw_token: str) -> str:
        return fingerprint_token(raw_token, self._secret)

    async def create(
        self,
        session: AsyncSession,
        identity: IdentityModel,
        raw_token: str,
        origin_ip: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> SessionModel:
        now = now or utcnow()
        record = SessionModel(
            identity_id=identity.id,
            token_fingerprint=self.fingerprint(raw_token),
            origin_ip=origin_ip,
            user_agent=user_agent,
            expires_at=now + self.ttl,
            created_at=now,
        )
        session.add(record)
        await session.flush()
        return record

    async def validate(
        self,
        session: AsyncSession,
        raw_token: str,
        now: datetime | None = None,
    ) -> tuple[SessionModel, IdentityModel]:
        """Return the live session for a token together with its identity.

        Raises:
            AuthenticationError: SessionNotFound, SessionExpired or IdentityInactive.
        """
        now = now or utcnow()
        result = await session.execute(
            select(SessionModel, IdentityModel)
            .join(IdentityModel, IdentityModel.id == SessionModel.identity_id)
            .where(SessionModel.token_fingerprint == self.fingerprint(raw_token))
        )
        row = result.first()
        if row is None:
            raise AuthenticationError(AuthenticationFailure.SESSION_NOT_FOUND)

        record, identity = row
        if record.expires_at <= now:
            raise AuthenticationError(AuthenticationFailure.SESSION_EXPIRED)
        if not identity.is_active:
            raise AuthenticationError(AuthenticationFailure.IDENTITY_INACTIVE)
        return record, identity

    async def get(self, session: AsyncSession, session_id: str) -> SessionModel | None:
        return await session.get(SessionModel, session_id)

    async def destroy(self, session: AsyncSession, session_id: str) -> bool:
        result = await session.execute(
            delete(SessionModel).where(SessionModel.id == session_id)
        )
        return result.rowcount > 0

    async def destroy_all(
        self,
        session: AsyncSession,
        identity_id: str,
        except_session_id: str | None = None,
    ) -> int:
        query = delete(SessionModel).where(SessionModel.identity_id == identity_id)
        if except_session_id is not None:
            query = query.where(SessionModel.id != except_session_id)
        result = await session.execute(query)
        return result.rowcount

    async def sweep_expired(
        self, session: AsyncSession, now: datetime | None = None
    ) -> int:
        """Delete every session with expires_at <= now. Returns the removed count."""
        now = now or utcnow()
        result = await session.execute(
            delete(SessionModel).where(SessionModel.expires_at <= now)
        )
        return result.rowcount

    async def list_for_identity(
        self,
        session: AsyncSession,
        identity_id: str,
        now: datetime | None = None,
    ) -> list[SessionModel]:
        """Live sessions of an identity, most recent first."""
        now = now or utcnow()
        result = await session.execute(
            select(SessionModel)
            .where(
                SessionModel.identity_id == identity_id,
                SessionModel.expires_at > now,
            )
            .order_by(SessionModel.created_at.desc())
        )
        return list(result.scalars().all())
