"""User API router: profile access and account administration."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from openblind_auth.auth.schemas import IdentityResponse
from openblind_auth.auth.service import AuthContext
from openblind_auth.common.security import (
    get_auth_context,
    require_permissions,
    require_roles,
)
from openblind_auth.identity.models import IdentityRole
from openblind_auth.users.schemas import (
    PasswordReset,
    PasswordResetResponse,
    RevokeSessionsResponse,
    StatusUpdate,
    UserCreate,
    UserListResponse,
    UserStatsResponse,
    UserUpdate,
)

router = APIRouter(prefix="/users", tags=["users"])


def _get_service():
    from openblind_auth.deps import get_user_admin_service
    return get_user_admin_service()


def _get_db():
    from openblind_auth.deps import get_db
    return get_db()


async def _require_owner(context: AuthContext, identity_id: str) -> None:
    from openblind_auth.deps import get_guard

    decision = await get_guard().require_ownership(context.identity, identity_id)
    decision.raise_if_denied()


# ── Admin only ──

@router.get("", response_model=UserListResponse)
async def list_users(
    role: Optional[IdentityRole] = None,
    is_active: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _admin: AuthContext = Depends(require_roles("admin")),
):
    db = _get_db()
    async with db.get_session() as session:
        users, total = await _get_service().list_users(
            session,
            role=role.value if role is not None else None,
            is_active=is_active,
            limit=limit,
            offset=offset,
        )
        return UserListResponse(
            users=[IdentityResponse.model_validate(u) for u in users],
            total=total,
            limit=limit,
            offset=offset,
        )


@router.get("/stats", response_model=UserStatsResponse)
async def user_stats(_admin: AuthContext = Depends(require_roles("admin"))):
    db = _get_db()
    async with db.get_session() as session:
        stats = await _get_service().stats(session)
    return UserStatsResponse(
        total=stats.total, active=stats.active, recent=stats.recent, by_role=stats.by_role
    )


@router.post("", response_model=IdentityResponse, status_code=201)
async def create_user(
    body: UserCreate,
    _role: AuthContext = Depends(require_roles("admin")),
    context: AuthContext = Depends(require_permissions("users.create")),
):
    db = _get_db()
    async with db.get_session() as session:
        identity = await _get_service().create_user(
            session, context.identity, body.email, body.password,
            role=body.role, display_name=body.display_name,
        )
        return IdentityResponse.model_validate(identity)


@router.put("/{identity_id}/password", response_model=PasswordResetResponse)
async def reset_password(
    identity_id: str,
    body: PasswordReset,
    _role: AuthContext = Depends(require_roles("admin")),
    context: AuthContext = Depends(require_permissions("users.update")),
):
    db = _get_db()
    async with db.get_session() as session:
        ended = await _get_service().reset_password(
            session, context.identity, identity_id, body.new_password
        )
    return PasswordResetResponse(sessions_ended=ended)


@router.patch("/{identity_id}/status", response_model=IdentityResponse)
async def set_user_status(
    identity_id: str,
    body: StatusUpdate,
    _role: AuthContext = Depends(require_roles("admin")),
    context: AuthContext = Depends(require_permissions("users.update")),
):
    db = _get_db()
    async with db.get_session() as session:
        identity = await _get_service().set_status(
            session, context.identity, identity_id, body.is_active
        )
        return IdentityResponse.model_validate(identity)


@router.delete("/{identity_id}", status_code=204)
async def delete_user(
    identity_id: str,
    _role: AuthContext = Depends(require_roles("admin")),
    context: AuthContext = Depends(require_permissions("users.delete")),
):
    db = _get_db()
    async with db.get_session() as session:
        await _get_service().delete_user(session, context.identity, identity_id)
    return Response(status_code=204)


# ── Owner or admin ──

@router.get("/{identity_id}", response_model=IdentityResponse)
async def get_user(
    identity_id: str,
    context: AuthContext = Depends(require_permissions("users.read")),
):
    await _require_owner(context, identity_id)
    db = _get_db()
    async with db.get_session() as session:
        identity = await _get_service().get_user(session, identity_id)
        return IdentityResponse.model_validate(identity)


@router.put("/{identity_id}", response_model=IdentityResponse)
async def update_user(
    identity_id: str,
    body: UserUpdate,
    context: AuthContext = Depends(require_permissions("users.update")),
):
    await _require_owner(context, identity_id)
    db = _get_db()
    async with db.get_session() as session:
        identity = await _get_service().update_user(
            session, context.identity, identity_id,
            display_name=body.display_name, role=body.role, is_active=body.is_active,
        )
        return IdentityResponse.model_validate(identity)


@router.delete("/{identity_id}/sessions", response_model=RevokeSessionsResponse)
async def revoke_user_sessions(
    identity_id: str,
    context: AuthContext = Depends(get_auth_context),
):
    from openblind_auth.deps import get_audit_service, get_session_manager

    await _require_owner(context, identity_id)
    db = _get_db()
    async with db.get_session() as session:
        revoked = await get_session_manager().destroy_all(session, identity_id)
    get_audit_service().append(
        "user.sessions_revoked", "identities", identity_id, context.identity.id,
        {"sessions_revoked": revoked},
    )
    return RevokeSessionsResponse(sessions_revoked=revoked)
