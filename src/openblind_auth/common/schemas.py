"""Shared Pydantic schemas for OpenBlind auth."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "openblind-auth"


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: str = ""
