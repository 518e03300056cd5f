"""
Bearer token codec: signed JWTs carrying identity claims.

Claims: sub (identity id), email, role, iat, exp, iss, aud, jti.

Expiry is compared against the caller's clock rather than PyJWT's, so a
codec driven by a fixed ``now`` behaves the same in tests and in production.
The codec performs no I/O.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt

from openblind_auth.common.exceptions import AuthenticationError, AuthenticationFailure
from openblind_auth.common.models import utcnow

REQUIRED_CLAIMS = ["sub", "email", "role", "iat", "exp", "iss", "aud"]


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of a bearer token."""

    identity_id: str
    email: str
    role: str
    issued_at: datetime
    expires_at: datetime
    issuer: str
    audience: str
    token_id: str = ""


@dataclass(frozen=True)
class IssuedToken:
    token: str
    claims: TokenClaims

    @property
    def expires_at(self) -> datetime:
        return self.claims.expires_at


def _from_timestamp(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class TokenCodec:
    """Issues and verifies HMAC-signed JWTs.

    Example:
        codec = TokenCodec(secret)
        issued = codec.issue(identity)
        claims = codec.verify(issued.token)
    """

    def __init__(
        self,
        secret: str,
        issuer: str = "openblind-api",
        audience: str = "openblind-app",
        ttl_seconds: int = 86400,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret:
            raise ValueError("Token signing secret must not be empty")
        self._secret = secret
        self.issuer = issuer
        self.audience = audience
        self.ttl = timedelta(seconds=ttl_seconds)
        self.algorithm = algorithm
        self._clock = clock

    def issue(self, identity: Any, now: datetime | None = None) -> IssuedToken:
        """Sign a token for an identity (anything with id, email and role)."""
        now = now or self._clock()
        issued_at = int(now.timestamp())
        expires_at = issued_at + int(self.ttl.total_seconds())
        payload = {
            "sub": str(identity.id),
            "email": identity.email,
            "role": identity.role,
            "iat": issued_at,
            "exp": expires_at,
            "iss": self.issuer,
            "aud": self.audience,
            "jti": secrets.token_hex(16),
        }
        token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        return IssuedToken(token=token, claims=self._to_claims(payload))

    def verify(self, token: str, now: datetime | None = None) -> TokenClaims:
        """Check signature, issuer, audience and expiry.

        Raises:
            AuthenticationError: MalformedToken, InvalidSignature or ExpiredToken.
        """
        if not token:
            raise AuthenticationError(AuthenticationFailure.MALFORMED_TOKEN)
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={
                    "require": REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except jwt.InvalidSignatureError:
            raise AuthenticationError(AuthenticationFailure.INVALID_SIGNATURE)
        except (jwt.InvalidIssuerError, jwt.InvalidAudienceError):
            # Signed, but not minted for this service.
            raise AuthenticationError(AuthenticationFailure.INVALID_SIGNATURE)
        except jwt.InvalidTokenError:
            raise AuthenticationError(AuthenticationFailure.MALFORMED_TOKEN)

        try:
            claims = self._to_claims(payload)
        except (TypeError, ValueError, OverflowError):
            raise AuthenticationError(AuthenticationFailure.MALFORMED_TOKEN)

        now = now or self._clock()
        if claims.expires_at <= now:
            raise AuthenticationError(AuthenticationFailure.EXPIRED_TOKEN)
        return claims

    @staticmethod
    def _to_claims(payload: dict[str, Any]) -> TokenClaims:
        return TokenClaims(
            identity_id=str(payload["sub"]),
            email=str(payload["email"]),
            role=str(payload["role"]),
            issued_at=_from_timestamp(payload["iat"]),
            expires_at=_from_timestamp(payload["exp"]),
            issuer=str(payload["iss"]),
            audience=str(payload["aud"]),
            token_id=str(payload.get("jti", "")),
        )
