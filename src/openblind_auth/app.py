"""FastAPI application factory for OpenBlind auth."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from openblind_auth.common.config import get_settings
from openblind_auth.common.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DuplicateEmailError,
    IdentityNotFoundError,
    InvalidOperationError,
    InvalidPasswordError,
    OpenBlindError,
    RoleNotFoundError,
    StorageUnavailableError,
)
from openblind_auth.common.logging import setup_logging
from openblind_auth.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[OpenBlindError], int]] = [
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (IdentityNotFoundError, 404),
    (RoleNotFoundError, 404),
    (DuplicateEmailError, 409),
    (InvalidPasswordError, 400),
    (InvalidOperationError, 400),
    (StorageUnavailableError, 500),
]


def _error_response(exc: OpenBlindError) -> JSONResponse:
    status = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        500,
    )
    detail = getattr(getattr(exc, "kind", None), "value", "")
    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
    if status == 500:
        body = ErrorResponse(error="Internal server error", code=exc.code)
    else:
        body = ErrorResponse(error=exc.message, code=exc.code, detail=detail)
    return JSONResponse(status_code=status, content=body.model_dump(), headers=headers)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from openblind_auth.deps import (
            get_audit_service,
            get_db,
            get_role_service,
            get_session_sweeper,
        )
        db = get_db()
        await db.init()
        await db.create_all()
        async with db.get_session() as session:
            await get_role_service().seed_defaults(session)
        sweeper = get_session_sweeper()
        sweeper.start()
        yield
        # Shutdown
        await sweeper.stop()
        await get_audit_service().drain()
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(OpenBlindError)
    async def openblind_error_handler(request: Request, exc: OpenBlindError):
        if isinstance(exc, StorageUnavailableError):
            logger.error("Storage unavailable on %s %s", request.method, request.url.path)
        return _error_response(exc)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from openblind_auth.auth.router import router as auth_router
    from openblind_auth.users.router import router as users_router

    prefix = settings.api_prefix
    app.include_router(auth_router, prefix=prefix)
    app.include_router(users_router, prefix=prefix)

    return app
