"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class SuccessResponse(BaseModel):
    """Bare success acknowledgement (refresh, logout)."""

    success: bool = True


class AuthUserResponse(BaseModel):
    """Login/registration response; user never includes password fields."""

    success: bool = True
    user: dict[str, Any]


class AuthMeResponse(BaseModel):
    """Current user endpoint response payload."""

    user: dict[str, Any]
