"""OpenBlind auth: session tokens, role-based permissions and ownership checks."""

from openblind_auth.client import AuthClient
from openblind_auth.common.exceptions import (
    AuthenticationError,
    AuthenticationFailure,
    AuthorizationError,
    AuthorizationFailure,
    StorageUnavailableError,
)
from openblind_auth.tokens.codec import TokenClaims, TokenCodec

__all__ = [
    "AuthClient",
    "AuthenticationError",
    "AuthenticationFailure",
    "AuthorizationError",
    "AuthorizationFailure",
    "StorageUnavailableError",
    "TokenClaims",
    "TokenCodec",
]
__version__ = "0.1.0"
