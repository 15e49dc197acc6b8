"""Authentication API router: local login, tokens and OAuth handshakes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse

from auth_plugin.api.contracts import (
    ApiErrorResponse,
    AuthMeResponse,
    AuthUserResponse,
    SuccessResponse,
)
from auth_plugin.api.errors import ApiError, ApiErrorCode, api_error_from
from auth_plugin.auth.errors import (
    DuplicateUserError,
    InvalidCredentialsError,
    InvalidTokenError,
    OAuthError,
    StoreError,
)
from auth_plugin.auth.handshake import STATE_COOKIE, ReturnToStore, safe_return_to
from auth_plugin.auth.middleware import require_auth
from auth_plugin.auth.models import (
    AccessClaims,
    LoginRequest,
    NewUser,
    RegisterRequest,
    UserUpdate,
)
from auth_plugin.auth.providers import OAuthProvider, ProviderRegistry
from auth_plugin.auth.repository import CredentialStore, utcnow
from auth_plugin.auth.tokens import REFRESH_COOKIE, TokenService
from auth_plugin.core.config import OAuthConfig

LOGGER = logging.getLogger(__name__)
MAX_NAME_LENGTH = 200


def _missing_fields() -> ApiError:
    return ApiError(
        status_code=400,
        error_code=ApiErrorCode.AUTH_MISSING_FIELDS,
        message="Email and password are required",
    )


def _oauth_failed(message: str = "OAuth authentication failed") -> ApiError:
    return ApiError(
        status_code=401,
        error_code=ApiErrorCode.AUTH_OAUTH_FAILED,
        message=message,
    )


def _redirect_uri(request: Request, provider: OAuthProvider) -> str:
    """Return absolute callback URL registered with the provider."""
    callback = provider.config.callback_url
    if callback.startswith(("http://", "https://")):
        return callback
    return str(request.base_url).rstrip("/") + "/" + callback.lstrip("/")


def create_auth_router(
    *,
    store: CredentialStore,
    tokens: TokenService,
    providers: ProviderRegistry,
    handshakes: ReturnToStore,
    oauth_config: OAuthConfig,
    prefix: str = "/api/auth",
) -> APIRouter:
    """Build authentication router with login/register/refresh/me/logout/OAuth."""
    router = APIRouter(prefix=prefix, tags=["auth"])
    strict_auth = require_auth(tokens)
    state_cookie_path = prefix or "/"

    def _provider_or_404(name: str) -> OAuthProvider:
        provider = providers.get(name)
        if provider is None:
            raise ApiError(
                status_code=404,
                error_code=ApiErrorCode.AUTH_PROVIDER_UNAVAILABLE,
                message=f"Provider '{name}' is not configured",
            )
        return provider

    @router.post(
        "/login",
        response_model=AuthUserResponse,
        responses={400: {"model": ApiErrorResponse}, 401: {"model": ApiErrorResponse}},
    )
    async def login(req: LoginRequest, response: Response) -> AuthUserResponse:
        """Verify email/password and set token cookies."""
        if not req.email or not req.password:
            raise _missing_fields()
        try:
            user = await store.verify_password(req.email, req.password)
        except InvalidCredentialsError as exc:
            LOGGER.info("login_failed")
            raise api_error_from(exc) from exc

        user = await store.update(user.id, UserUpdate(last_login=utcnow())) or user
        tokens.bind_to_transport(response, tokens.issue(user))
        LOGGER.info("login_succeeded", extra={"user_id": user.id})
        return AuthUserResponse(user=user.public_dict())

    @router.post(
        "/register",
        response_model=AuthUserResponse,
        responses={400: {"model": ApiErrorResponse}},
    )
    async def register(req: RegisterRequest, response: Response) -> AuthUserResponse:
        """Create local user and set token cookies."""
        if not req.email or not req.password:
            raise _missing_fields()
        if any(len(name or "") > MAX_NAME_LENGTH for name in (req.first, req.last)):
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message=f"Names are limited to {MAX_NAME_LENGTH} characters",
            )
        if "@" not in req.email.strip():
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message="Email address is invalid",
            )
        try:
            user = await store.create(
                NewUser(
                    email=req.email,
                    password=req.password,
                    first=req.first,
                    last=req.last,
                )
            )
        except StoreError as exc:
            LOGGER.warning("registration_failed")
            raise api_error_from(exc, status_code=400) from exc

        tokens.bind_to_transport(response, tokens.issue(user))
        LOGGER.info("user_registered", extra={"user_id": user.id})
        return AuthUserResponse(user=user.public_dict())

    @router.post(
        "/refresh",
        response_model=SuccessResponse,
        responses={401: {"model": ApiErrorResponse}},
    )
    async def refresh(request: Request, response: Response) -> SuccessResponse:
        """Mint a new access token cookie from the refresh token cookie."""
        refresh_token = request.cookies.get(REFRESH_COOKIE) or ""
        if not refresh_token:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_MISSING_TOKEN,
                message="No refresh token provided",
            )
        try:
            access_token = await tokens.rotate_access(refresh_token, store)
        except InvalidTokenError as exc:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_TOKEN_INVALID,
                message="Invalid refresh token",
            ) from exc
        tokens.bind_access_only(response, access_token)
        return SuccessResponse()

    @router.get(
        "/me",
        response_model=AuthMeResponse,
        responses={401: {"model": ApiErrorResponse}, 404: {"model": ApiErrorResponse}},
    )
    async def me(claims: AccessClaims = Depends(strict_auth)) -> AuthMeResponse:
        """Return the user referenced by the access token."""
        user = await store.get_by_id(claims.user_id)
        if user is None:
            raise ApiError(
                status_code=404,
                error_code=ApiErrorCode.AUTH_USER_NOT_FOUND,
                message="User not found",
            )
        return AuthMeResponse(user=user.public_dict())

    @router.post("/logout", response_model=SuccessResponse)
    async def logout(response: Response) -> SuccessResponse:
        """Clear both token cookies."""
        tokens.clear_binding(response)
        return SuccessResponse()

    @router.get(
        "/{provider_name}",
        response_class=RedirectResponse,
        status_code=302,
        responses={404: {"model": ApiErrorResponse}},
    )
    async def oauth_start(
        provider_name: str,
        request: Request,
        return_to: str | None = Query(default=None, alias="returnTo"),
    ) -> RedirectResponse:
        """Redirect to provider consent page, remembering the return-to target."""
        provider = _provider_or_404(provider_name)
        target = safe_return_to(return_to, oauth_config.allowed_redirect_origins)
        state = handshakes.begin(provider.name, target)
        response = RedirectResponse(
            provider.authorization_url(
                state=state, redirect_uri=_redirect_uri(request, provider)
            ),
            status_code=302,
        )
        # Lax so the cookie survives the top-level redirect back from the provider.
        response.set_cookie(
            key=STATE_COOKIE,
            value=state,
            max_age=oauth_config.handshake_ttl_seconds,
            path=state_cookie_path,
            secure=tokens.config.production,
            httponly=True,
            samesite="lax",
        )
        return response

    @router.get(
        "/{provider_name}/callback",
        response_class=RedirectResponse,
        status_code=302,
        responses={401: {"model": ApiErrorResponse}, 404: {"model": ApiErrorResponse}},
    )
    async def oauth_callback(
        provider_name: str,
        request: Request,
        code: str | None = Query(default=None),
        state: str | None = Query(default=None),
        error: str | None = Query(default=None),
    ) -> RedirectResponse:
        """Complete provider login, set token cookies and redirect."""
        provider = _provider_or_404(provider_name)
        pending = handshakes.pop(state)
        cookie_state = request.cookies.get(STATE_COOKIE)

        if error:
            LOGGER.warning(
                "oauth_provider_error: %s", error[:100], extra={"provider": provider.name}
            )
            raise _oauth_failed("Provider denied the authorization request")
        if (
            pending is None
            or pending.provider != provider.name
            or not cookie_state
            or cookie_state != state
        ):
            LOGGER.warning("oauth_callback_failed", extra={"provider": provider.name})
            raise _oauth_failed("OAuth state mismatch")
        if not code:
            raise _oauth_failed("Authorization code is missing")

        try:
            user = await provider.complete(code, _redirect_uri(request, provider), store)
        except OAuthError as exc:
            LOGGER.warning("oauth_callback_failed", extra={"provider": provider.name})
            raise api_error_from(exc) from exc
        except DuplicateUserError as exc:
            # Email already belongs to another account; not linked automatically.
            LOGGER.warning("oauth_identity_conflict", extra={"provider": provider.name})
            raise _oauth_failed() from exc

        response = RedirectResponse(
            pending.return_to or oauth_config.fallback_redirect, status_code=302
        )
        tokens.bind_to_transport(response, tokens.issue(user))
        response.delete_cookie(
            key=STATE_COOKIE,
            path=state_cookie_path,
            secure=tokens.config.production,
            httponly=True,
            samesite="lax",
        )
        LOGGER.info(
            "oauth_callback_succeeded",
            extra={"user_id": user.id, "provider": provider.name},
        )
        return response

    return router
