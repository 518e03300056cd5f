"""Bearer-token authentication and authorization dependencies."""

from fastapi import Depends, Header, Request

from openblind_auth.auth.service import AuthContext
from openblind_auth.authz.guard import PermissionRequirement
from openblind_auth.common.exceptions import AuthenticationError, AuthenticationFailure


def extract_bearer(authorization: str | None) -> str:
    """Return the raw token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise AuthenticationError(AuthenticationFailure.MISSING_TOKEN)
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError(AuthenticationFailure.MISSING_TOKEN)
    return token.strip()


async def get_auth_context(
    request: Request,
    authorization: str | None = Header(None),
) -> AuthContext:
    """FastAPI dependency that authenticates the bearer token on the request."""
    from openblind_auth.deps import get_auth_service, get_db

    token = extract_bearer(authorization)
    svc = get_auth_service()
    db = get_db()
    async with db.get_session() as session:
        context = await svc.authenticate(session, token)
    request.state.auth = context
    return context


async def get_optional_auth_context(
    request: Request,
    authorization: str | None = Header(None),
) -> AuthContext | None:
    """Like get_auth_context, but anonymous callers get ``None`` instead of a 401.

    Only authentication failures are absorbed; a storage outage still fails
    the request.
    """
    if not authorization:
        return None
    try:
        return await get_auth_context(request, authorization)
    except AuthenticationError:
        return None


def require_permissions(*required: PermissionRequirement):
    """FastAPI dependency factory: every listed permission is required (admins pass)."""

    async def dependency(
        context: AuthContext = Depends(get_auth_context),
    ) -> AuthContext:
        from openblind_auth.deps import get_db, get_guard

        guard = get_guard()
        db = get_db()
        async with db.get_session() as session:
            decision = await guard.authorize(session, context.identity, required)
        decision.raise_if_denied()
        return context

    return dependency


def require_roles(*roles: str):
    """FastAPI dependency factory: the caller's role must be one of ``roles``."""

    async def dependency(
        context: AuthContext = Depends(get_auth_context),
    ) -> AuthContext:
        from openblind_auth.deps import get_guard

        decision = await get_guard().require_role(context.identity, roles)
        decision.raise_if_denied()
        return context

    return dependency
