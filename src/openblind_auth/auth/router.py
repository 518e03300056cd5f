"""Auth API router: login, logout, token verification and the caller's own profile."""

from fastapi import APIRouter, Depends, Request

from openblind_auth.auth.schemas import (
    ChangePasswordRequest,
    ChangePasswordResponse,
    IdentityResponse,
    LoginRequest,
    LoginResponse,
    ProfileUpdate,
    RegisterRequest,
    SessionResponse,
    VerifyResponse,
)
from openblind_auth.auth.service import AuthContext
from openblind_auth.common.security import get_auth_context

router = APIRouter(prefix="/auth", tags=["auth"])


def _get_service():
    from openblind_auth.deps import get_auth_service
    return get_auth_service()


def _get_db():
    from openblind_auth.deps import get_db
    return get_db()


def _client_info(request: Request) -> tuple[str | None, str | None]:
    origin_ip = request.client.host if request.client else None
    return origin_ip, request.headers.get("user-agent")


@router.post("/register", response_model=LoginResponse, status_code=201)
async def register(body: RegisterRequest, request: Request):
    svc = _get_service()
    db = _get_db()
    origin_ip, user_agent = _client_info(request)
    async with db.get_session() as session:
        result = await svc.register(
            session, body.email, body.password,
            display_name=body.display_name,
            origin_ip=origin_ip, user_agent=user_agent,
        )
        return LoginResponse(
            identity=IdentityResponse.model_validate(result.identity),
            token=result.token,
            expires_at=result.expires_at,
        )


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, request: Request):
    svc = _get_service()
    db = _get_db()
    origin_ip, user_agent = _client_info(request)
    async with db.get_session() as session:
        result = await svc.login(
            session, body.email, body.password,
            origin_ip=origin_ip, user_agent=user_agent,
        )
        return LoginResponse(
            identity=IdentityResponse.model_validate(result.identity),
            token=result.token,
            expires_at=result.expires_at,
        )


@router.post("/logout", status_code=204)
async def logout(context: AuthContext = Depends(get_auth_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.logout(session, context.session.id, actor_id=context.identity.id)


@router.get("/verify", response_model=VerifyResponse)
async def verify(context: AuthContext = Depends(get_auth_context)):
    return VerifyResponse(
        identity=IdentityResponse.model_validate(context.identity),
        session_id=context.session.id,
        expires_at=context.session.expires_at,
    )


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(context: AuthContext = Depends(get_auth_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        records = await svc.sessions.list_for_identity(session, context.identity.id)
        return [
            SessionResponse(
                id=r.id,
                origin_ip=r.origin_ip,
                user_agent=r.user_agent,
                expires_at=r.expires_at,
                created_at=r.created_at,
                current=r.id == context.session.id,
            )
            for r in records
        ]


@router.put("/change-password", response_model=ChangePasswordResponse)
async def change_password(
    body: ChangePasswordRequest,
    context: AuthContext = Depends(get_auth_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        ended = await svc.change_password(
            session, context, body.current_password, body.new_password
        )
        return ChangePasswordResponse(sessions_ended=ended)


@router.get("/profile", response_model=IdentityResponse)
async def get_profile(context: AuthContext = Depends(get_auth_context)):
    return IdentityResponse.model_validate(context.identity)


@router.put("/profile", response_model=IdentityResponse)
async def update_profile(
    body: ProfileUpdate,
    context: AuthContext = Depends(get_auth_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        identity = await svc.update_profile(session, context, display_name=body.display_name)
        return IdentityResponse.model_validate(identity)
