"""OpenBlind auth configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "jwt_secret": "insecure-jwt-secret-change-me",
    "session_secret": "insecure-session-secret-change-me",
}


class OpenBlindSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OPENBLIND_")

    environment: str = "development"
    log_level: str = "INFO"

    # Token signing
    jwt_secret: str = "insecure-jwt-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "openblind-api"
    jwt_audience: str = "openblind-app"
    token_ttl_seconds: int = 86400  # 24 hours

    # Sessions: fingerprints are HMAC-SHA256(session_secret, raw token)
    session_secret: str = "insecure-session-secret-change-me"
    session_ttl_seconds: int = 86400  # 24 hours
    sweep_interval_seconds: int = 3600

    # Permission cache
    permission_cache_ttl_seconds: int = 300  # 5 minutes
    permission_cache_backend: str = "memory"  # memory | redis
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "openblind:perms:"

    # Passwords
    bcrypt_rounds: int = 12

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/openblind_auth.db"

    # API
    api_title: str = "OpenBlind Auth"
    api_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000"]

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"OPENBLIND_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if self.jwt_secret == self.session_secret:
            warnings.warn(
                "OPENBLIND_JWT_SECRET and OPENBLIND_SESSION_SECRET are identical; "
                "use distinct secrets for token signing and session fingerprints",
                UserWarning,
                stacklevel=2,
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default secrets; set OPENBLIND_JWT_SECRET and "
                "OPENBLIND_SESSION_SECRET for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> OpenBlindSettings:
    settings = OpenBlindSettings()
    settings.validate_for_production()
    return settings
