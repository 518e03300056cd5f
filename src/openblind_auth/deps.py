"""Dependency injection singletons for OpenBlind auth."""

from openblind_auth.common.config import get_settings
from openblind_auth.common.database import DatabaseManager
from openblind_auth.audit.service import AuditService
from openblind_auth.auth.service import AuthService
from openblind_auth.authz.guard import AuthorizationGuard
from openblind_auth.identity.roles import RoleService
from openblind_auth.identity.service import IdentityService
from openblind_auth.permissions.cache import (
    InMemoryPermissionCache,
    PermissionCache,
    RedisPermissionCache,
)
from openblind_auth.permissions.resolver import PermissionResolver
from openblind_auth.sessions.service import SessionManager
from openblind_auth.sessions.sweeper import SessionSweeper
from openblind_auth.tokens.codec import TokenCodec
from openblind_auth.users.service import UserAdminService

_db: DatabaseManager | None = None
_codec: TokenCodec | None = None
_sessions: SessionManager | None = None
_sweeper: SessionSweeper | None = None
_identities: IdentityService | None = None
_roles: RoleService | None = None
_cache: PermissionCache | None = None
_resolver: PermissionResolver | None = None
_audit: AuditService | None = None
_guard: AuthorizationGuard | None = None
_auth: AuthService | None = None
_users: UserAdminService | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_token_codec() -> TokenCodec:
    global _codec
    if _codec is None:
        settings = get_settings()
        _codec = TokenCodec(
            settings.jwt_secret,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            ttl_seconds=settings.token_ttl_seconds,
            algorithm=settings.jwt_algorithm,
        )
    return _codec


def get_session_manager() -> SessionManager:
    global _sessions
    if _sessions is None:
        settings = get_settings()
        _sessions = SessionManager(
            settings.session_secret, ttl_seconds=settings.session_ttl_seconds
        )
    return _sessions


def get_session_sweeper() -> SessionSweeper:
    global _sweeper
    if _sweeper is None:
        _sweeper = SessionSweeper(
            get_db(),
            get_session_manager(),
            interval_seconds=get_settings().sweep_interval_seconds,
        )
    return _sweeper


def get_identity_service() -> IdentityService:
    global _identities
    if _identities is None:
        _identities = IdentityService()
    return _identities


def get_role_service() -> RoleService:
    global _roles
    if _roles is None:
        _roles = RoleService()
    return _roles


def get_permission_cache() -> PermissionCache:
    global _cache
    if _cache is None:
        settings = get_settings()
        if settings.permission_cache_backend == "redis":
            _cache = RedisPermissionCache.from_url(
                settings.redis_url,
                ttl_seconds=settings.permission_cache_ttl_seconds,
                key_prefix=settings.redis_key_prefix,
            )
        else:
            _cache = InMemoryPermissionCache(
                ttl_seconds=settings.permission_cache_ttl_seconds
            )
    return _cache


def get_permission_resolver() -> PermissionResolver:
    global _resolver
    if _resolver is None:
        _resolver = PermissionResolver(get_role_service(), get_permission_cache())
    return _resolver


def get_audit_service() -> AuditService:
    global _audit
    if _audit is None:
        _audit = AuditService(get_db())
    return _audit


def get_guard() -> AuthorizationGuard:
    global _guard
    if _guard is None:
        _guard = AuthorizationGuard(get_permission_resolver(), get_audit_service())
    return _guard


def get_auth_service() -> AuthService:
    global _auth
    if _auth is None:
        _auth = AuthService(
            get_token_codec(),
            get_session_manager(),
            get_identity_service(),
            get_role_service(),
            get_audit_service(),
            bcrypt_rounds=get_settings().bcrypt_rounds,
        )
    return _auth


def get_user_admin_service() -> UserAdminService:
    global _users
    if _users is None:
        _users = UserAdminService(
            get_identity_service(),
            get_role_service(),
            get_session_manager(),
            get_permission_resolver(),
            get_audit_service(),
            bcrypt_rounds=get_settings().bcrypt_rounds,
        )
    return _users


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _codec, _sessions, _sweeper, _identities, _roles
    global _cache, _resolver, _audit, _guard, _auth, _users
    _db = None
    _codec = None
    _sessions = None
    _sweeper = None
    _identities = None
    _roles = None
    _cache = None
    _resolver = None
    _audit = None
    _guard = None
    _auth = None
    _users = None
