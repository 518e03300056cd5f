"""Pydantic schemas for user administration endpoints."""

from typing import Optional

from pydantic import BaseModel, Field

from openblind_auth.auth.schemas import IdentityResponse
from openblind_auth.identity.models import IdentityRole


class StatusUpdate(BaseModel):
    is_active: bool


class RevokeSessionsResponse(BaseModel):
    sessions_revoked: int


class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128)
    display_name: str = Field("", max_length=200)
    role: IdentityRole = IdentityRole.USER


class UserUpdate(BaseModel):
    """Partial update. ``role`` and ``is_active`` only take effect for admins."""

    display_name: Optional[str] = Field(None, max_length=200)
    role: Optional[IdentityRole] = None
    is_active: Optional[bool] = None


class PasswordReset(BaseModel):
    new_password: str = Field(..., min_length=6, max_length=128)


class PasswordResetResponse(BaseModel):
    sessions_ended: int


class UserListResponse(BaseModel):
    users: list[IdentityResponse]
    total: int
    limit: int
    offset: int


class UserStatsResponse(BaseModel):
    total: int
    active: int
    recent: int
    by_role: dict[str, int]
