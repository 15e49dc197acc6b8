"""Public API response contracts."""

from auth_plugin.api.contracts.models import (
    ApiErrorResponse,
    AuthMeResponse,
    AuthUserResponse,
    HealthResponse,
    SuccessResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AuthMeResponse",
    "AuthUserResponse",
    "HealthResponse",
    "SuccessResponse",
]
