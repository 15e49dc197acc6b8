"""Request authentication dependencies reading the access token cookie."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Request

from auth_plugin.api.errors import ApiError, ApiErrorCode
from auth_plugin.auth.errors import ConfigurationError, InvalidTokenError
from auth_plugin.auth.models import AccessClaims, User
from auth_plugin.auth.repository import CredentialStore
from auth_plugin.auth.tokens import ACCESS_COOKIE, TokenService


def _missing_token() -> ApiError:
    return ApiError(
        status_code=401,
        error_code=ApiErrorCode.AUTH_MISSING_TOKEN,
        message="No token provided",
    )


def _invalid_token() -> ApiError:
    return ApiError(
        status_code=401,
        error_code=ApiErrorCode.AUTH_TOKEN_INVALID,
        message="Invalid token",
    )


def _verify_cookie(request: Request, tokens: TokenService) -> AccessClaims:
    """Verify access cookie or raise 401 ``ApiError``."""
    token = request.cookies.get(ACCESS_COOKIE) or ""
    if not token:
        raise _missing_token()
    try:
        return tokens.verify_access(token)
    except InvalidTokenError as exc:
        raise _invalid_token() from exc


def require_auth(tokens: TokenService) -> Callable[[Request], Awaitable[AccessClaims]]:
    """Build dependency that rejects requests without a valid access token."""

    async def strict_auth(request: Request) -> AccessClaims:
        """Attach decoded claims to ``request.state.user``."""
        claims = _verify_cookie(request, tokens)
        request.state.user = claims
        return claims

    return strict_auth


def require_user(
    tokens: TokenService, store: CredentialStore
) -> Callable[[Request], Awaitable[User]]:
    """Build dependency that also loads the full user from the store.

    Store failures propagate unchanged and are not reported as token errors.
    """

    async def user_auth(request: Request) -> User:
        """Attach hydrated user to ``request.state.user``."""
        claims = _verify_cookie(request, tokens)
        user = await store.get_by_id(claims.user_id)
        if user is None:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_USER_NOT_FOUND,
                message="User not found",
            )
        request.state.user = user
        return user

    return user_auth


def optional_auth(
    tokens: TokenService,
) -> Callable[[Request], Awaitable[AccessClaims | None]]:
    """Build dependency that never rejects; claims are ``None`` when unusable."""

    async def maybe_auth(request: Request) -> AccessClaims | None:
        """Attach claims when the cookie verifies, otherwise ``None``."""
        request.state.user = None
        token = request.cookies.get(ACCESS_COOKIE) or ""
        if not token:
            return None
        try:
            claims = tokens.verify_access(token)
        except (InvalidTokenError, ConfigurationError):
            return None
        request.state.user = claims
        return claims

    return maybe_auth
