"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException

from auth_plugin.auth.errors import (
    AuthError,
    ConfigurationError,
    DuplicateUserError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    OAuthError,
    StoreError,
)


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_MISSING_FIELDS = "AUTH_MISSING_FIELDS"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_USER_NOT_FOUND = "AUTH_USER_NOT_FOUND"
    AUTH_REGISTRATION_FAILED = "AUTH_REGISTRATION_FAILED"
    AUTH_PROVIDER_UNAVAILABLE = "AUTH_PROVIDER_UNAVAILABLE"
    AUTH_OAUTH_FAILED = "AUTH_OAUTH_FAILED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
        )


def to_error_payload(detail: Any, status_code: int) -> dict[str, str]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
        return {"error_code": error_code, "message": message}
    return {
        "error_code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }


# Resolved along the exception MRO, so subclasses override their bases.
_AUTH_ERROR_STATUS: dict[type[AuthError], tuple[int, ApiErrorCode]] = {
    InvalidTokenError: (401, ApiErrorCode.AUTH_TOKEN_INVALID),
    InvalidCredentialsError: (401, ApiErrorCode.AUTH_INVALID_CREDENTIALS),
    NotFoundError: (404, ApiErrorCode.AUTH_USER_NOT_FOUND),
    OAuthError: (401, ApiErrorCode.AUTH_OAUTH_FAILED),
    DuplicateUserError: (400, ApiErrorCode.AUTH_REGISTRATION_FAILED),
    StoreError: (503, ApiErrorCode.STORE_UNAVAILABLE),
    ConfigurationError: (500, ApiErrorCode.CONFIGURATION_ERROR),
}


def api_error_from(exc: AuthError, *, status_code: int | None = None) -> ApiError:
    """Translate domain error into ``ApiError`` with its default HTTP status."""
    for klass in type(exc).__mro__:
        if klass in _AUTH_ERROR_STATUS:
            default_status, error_code = _AUTH_ERROR_STATUS[klass]
            break
    else:
        default_status, error_code = 500, ApiErrorCode.INTERNAL_SERVER_ERROR
    return ApiError(
        status_code=status_code or default_status,
        error_code=error_code,
        message=exc.message,
    )
