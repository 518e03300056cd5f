"""Auth service: login, logout and per-request authentication."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from openblind_auth.audit.service import AuditSink
from openblind_auth.common.exceptions import (
    AuthenticationError,
    AuthenticationFailure,
    IdentityNotFoundError,
    InvalidPasswordError,
)
from openblind_auth.common.models import utcnow
from openblind_auth.identity.models import IdentityModel, IdentityRole
from openblind_auth.identity.passwords import hash_password, verify_password
from openblind_auth.identity.roles import RoleService
from openblind_auth.identity.service import IdentityService
from openblind_auth.sessions.models import SessionModel
from openblind_auth.sessions.service import SessionManager
from openblind_auth.tokens.codec import TokenClaims, TokenCodec

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    identity: IdentityModel
    token: str
    expires_at: datetime
    session: SessionModel


@dataclass
class AuthContext:
    """An authenticated request: who is calling, through which session."""

    identity: IdentityModel
    session: SessionModel
    claims: TokenClaims


class AuthService:
    """Ties the token codec, session manager and identity store together."""

    def __init__(
        self,
        codec: TokenCodec,
        sessions: SessionManager,
        identities: IdentityService,
        roles: RoleService,
        audit: AuditSink,
        bcrypt_rounds: int = 12,
    ):
        self.codec = codec
        self.sessions = sessions
        self.identities = identities
        self.roles = roles
        self.audit = audit
        self.bcrypt_rounds = bcrypt_rounds

    async def login(
        self,
        session: AsyncSession,
        email: str,
        password: str,
        origin_ip: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> LoginResult:
        """Check credentials, issue a token and persist its session.

        Unknown email, wrong password and deactivated identity all fail with
        InvalidCredentials, and none of them writes a session row.
        """
        now = now or utcnow()
        identity = await self.identities.find_by_email(session, email)
        if (
            identity is None
            or not identity.is_active
            or not await verify_password(password, identity.password_hash)
        ):
            identity_id = identity.id if identity is not None else None
            logger.warning("Failed login for %s", email)
            self.audit.append(
                "user.login_failed", "identities", identity_id, identity_id,
                {"email": email, "ip": origin_ip}, now,
            )
            raise AuthenticationError(AuthenticationFailure.INVALID_CREDENTIALS)

        return await self._start_session(
            session, identity, origin_ip, user_agent, now, action="user.login"
        )

    async def register(
        self,
        session: AsyncSession,
        email: str,
        password: str,
        display_name: str = "",
        origin_ip: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> LoginResult:
        """Create a user-role identity and log it in."""
        now = now or utcnow()
        password_hash = await hash_password(password, self.bcrypt_rounds)
        identity = await self.identities.create(
            session, email, password_hash,
            role=IdentityRole.USER, display_name=display_name,
        )
        if await self.roles.get_role(session, IdentityRole.USER.value) is not None:
            await self.roles.assign(session, identity.id, IdentityRole.USER.value)

        self.audit.append(
            "user.register", "identities", identity.id, identity.id,
            {"email": identity.email}, now,
        )
        logger.info("New user registered: %s", identity.email)
        return await self._start_session(
            session, identity, origin_ip, user_agent, now, action="user.login"
        )

    async def logout(
        self,
        session: AsyncSession,
        session_id: str,
        actor_id: str | None = None,
    ) -> None:
        destroyed = await self.sessions.destroy(session, session_id)
        self.audit.append(
            "user.logout", "sessions", session_id, actor_id,
            {"destroyed": destroyed},
        )
        logger.info("Session %s logged out by %s", session_id, actor_id)

    async def authenticate(
        self,
        session: AsyncSession,
        raw_token: str | None,
        now: datetime | None = None,
    ) -> AuthContext:
        """Verify a bearer token and the live session bound to it.

        Raises:
            AuthenticationError: with the precise failure kind.
        """
        if not raw_token:
            raise AuthenticationError(AuthenticationFailure.MISSING_TOKEN)
        now = now or utcnow()
        claims = self.codec.verify(raw_token, now)
        record, identity = await self.sessions.validate(session, raw_token, now)
        if identity.id != claims.identity_id:
            # A fingerprint collision across identities cannot authenticate.
            raise AuthenticationError(AuthenticationFailure.SESSION_NOT_FOUND)
        return AuthContext(identity=identity, session=record, claims=claims)

    async def change_password(
        self,
        session: AsyncSession,
        context: AuthContext,
        current_password: str,
        new_password: str,
    ) -> int:
        """Replace the password and end every other session. Returns sessions ended."""
        identity = context.identity
        if not await verify_password(current_password, identity.password_hash):
            raise InvalidPasswordError()
        new_hash = await hash_password(new_password, self.bcrypt_rounds)
        await self.identities.update(session, identity.id, password_hash=new_hash)
        ended = await self.sessions.destroy_all(
            session, identity.id, except_session_id=context.session.id
        )
        self.audit.append(
            "user.password_change", "identities", identity.id, identity.id,
            {"sessions_ended": ended},
        )
        return ended

    async def update_profile(
        self,
        session: AsyncSession,
        context: AuthContext,
        display_name: str | None = None,
    ) -> IdentityModel:
        """Update the caller's own profile fields. Role and status are not profile fields."""
        identity = await self.identities.update(
            session, context.identity.id, display_name=display_name
        )
        if identity is None:
            raise IdentityNotFoundError()
        self.audit.append(
            "user.profile_update", "identities", identity.id, identity.id,
            {"display_name": display_name},
        )
        return identity

    async def _start_session(
        self,
        session: AsyncSession,
        identity: IdentityModel,
        origin_ip: str | None,
        user_agent: str | None,
        now: datetime,
        action: str,
    ) -> LoginResult:
        issued = self.codec.issue(identity, now)
        record = await self.sessions.create(
            session, identity, issued.token, origin_ip, user_agent, now
        )
        identity.last_login = now
        await session.flush()

        self.audit.append(
            action, "identities", identity.id, identity.id,
            {"email": identity.email, "ip": origin_ip, "session_id": record.id}, now,
        )
        logger.info("User logged in: %s", identity.email)
        return LoginResult(
            identity=identity,
            token=issued.token,
            expires_at=record.expires_at,
            session=record,
        )
