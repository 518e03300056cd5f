"""OpenBlind auth exception hierarchy."""

from enum import Enum


class AuthenticationFailure(str, Enum):
    """Why a request could not be authenticated (401)."""

    MISSING_TOKEN = "MissingToken"
    MALFORMED_TOKEN = "MalformedToken"
    INVALID_SIGNATURE = "InvalidSignature"
    EXPIRED_TOKEN = "ExpiredToken"
    SESSION_NOT_FOUND = "SessionNotFound"
    SESSION_EXPIRED = "SessionExpired"
    IDENTITY_INACTIVE = "IdentityInactive"
    INVALID_CREDENTIALS = "InvalidCredentials"


class AuthorizationFailure(str, Enum):
    """Why an authenticated request was refused (403)."""

    INSUFFICIENT_PERMISSION = "InsufficientPermission"
    INSUFFICIENT_ROLE = "InsufficientRole"
    NOT_OWNER = "NotOwner"


_AUTHENTICATION_MESSAGES = {
    AuthenticationFailure.MISSING_TOKEN: "Access token is required",
    AuthenticationFailure.MALFORMED_TOKEN: "Invalid token",
    AuthenticationFailure.INVALID_SIGNATURE: "Invalid token",
    AuthenticationFailure.EXPIRED_TOKEN: "Token expired",
    AuthenticationFailure.SESSION_NOT_FOUND: "Invalid or expired token",
    AuthenticationFailure.SESSION_EXPIRED: "Invalid or expired token",
    AuthenticationFailure.IDENTITY_INACTIVE: "Account is inactive",
    AuthenticationFailure.INVALID_CREDENTIALS: "Invalid credentials",
}

_AUTHORIZATION_MESSAGES = {
    AuthorizationFailure.INSUFFICIENT_PERMISSION: "Insufficient permissions",
    AuthorizationFailure.INSUFFICIENT_ROLE: "Insufficient role permissions",
    AuthorizationFailure.NOT_OWNER: "Access denied: You can only access your own resources",
}


class OpenBlindError(Exception):
    """Base exception for all OpenBlind auth errors."""

    def __init__(self, message: str = "", code: str = "OPENBLIND_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class AuthenticationError(OpenBlindError):
    """Raised when a caller cannot be authenticated. Never retried; re-authenticate."""

    def __init__(self, kind: AuthenticationFailure, message: str | None = None):
        self.kind = kind
        super().__init__(
            message or _AUTHENTICATION_MESSAGES[kind], code="AUTHENTICATION_FAILED"
        )


class AuthorizationError(OpenBlindError):
    """Raised when an authenticated caller fails a role, permission or ownership gate."""

    def __init__(self, kind: AuthorizationFailure, message: str | None = None):
        self.kind = kind
        super().__init__(message or _AUTHORIZATION_MESSAGES[kind], code="FORBIDDEN")


class StorageUnavailableError(OpenBlindError):
    """Raised when a backing store fails transiently. Details are logged, not returned."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, code="STORAGE_UNAVAILABLE")


class IdentityNotFoundError(OpenBlindError):
    """Raised when an identity cannot be found in the identity store."""

    def __init__(self, message: str = "User not found"):
        super().__init__(message, code="NOT_FOUND")


class DuplicateEmailError(OpenBlindError):
    """Raised when registering an email that already exists."""

    def __init__(self, message: str = "Email already registered"):
        super().__init__(message, code="DUPLICATE_EMAIL")


class RoleNotFoundError(OpenBlindError):
    """Raised when a role or permission name is unknown to the role store."""

    def __init__(self, message: str = "Role not found"):
        super().__init__(message, code="NOT_FOUND")


class InvalidPasswordError(OpenBlindError):
    """Raised when a password change presents the wrong current password."""

    def __init__(self, message: str = "Current password is incorrect"):
        super().__init__(message, code="INVALID_PASSWORD")


class InvalidOperationError(OpenBlindError):
    """Raised for a well-formed request the caller may not make, e.g. deleting themselves."""

    def __init__(self, message: str = "Operation not allowed"):
        super().__init__(message, code="INVALID_OPERATION")
