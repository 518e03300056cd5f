"""Pydantic schemas for auth endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class IdentityResponse(BaseModel):
    """An identity without its password hash."""

    id: str
    email: str
    display_name: str = ""
    role: str
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=1, max_length=128)


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128)
    display_name: str = Field("", max_length=200)


class LoginResponse(BaseModel):
    identity: IdentityResponse
    token: str
    expires_at: datetime


class SessionResponse(BaseModel):
    id: str
    origin_ip: Optional[str] = None
    user_agent: Optional[str] = None
    expires_at: datetime
    created_at: datetime
    current: bool = False

    model_config = {"from_attributes": True}


class VerifyResponse(BaseModel):
    identity: IdentityResponse
    session_id: str
    expires_at: datetime


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=6, max_length=128)


class ChangePasswordResponse(BaseModel):
    sessions_ended: int


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(None, max_length=200)
