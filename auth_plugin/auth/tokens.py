"""Access/refresh token issuance, verification and cookie binding."""

from __future__ import annotations

import logging
import time
from typing import Any

from starlette.responses import Response

from auth_plugin.auth.errors import ConfigurationError, InvalidTokenError
from auth_plugin.auth.models import AccessClaims, RefreshClaims, TokenPair, User
from auth_plugin.auth.repository import CredentialStore
from auth_plugin.core.config import JwtConfig
from auth_plugin.core.security import build_signed_token, decode_signed_token

LOGGER = logging.getLogger(__name__)

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
ACCESS_TYPE = "access"
REFRESH_TYPE = "refresh"


class TokenService:
    """Signs and verifies the access/refresh pair with distinct secrets."""

    def __init__(self, config: JwtConfig) -> None:
        """Store signing configuration; secrets are checked per operation."""
        self._config = config

    @property
    def config(self) -> JwtConfig:
        """Return signing configuration."""
        return self._config

    def _access_secret(self) -> str:
        if not self._config.access_secret:
            raise ConfigurationError("JWT access secret is not configured")
        return self._config.access_secret

    def _refresh_secret(self) -> str:
        if not self._config.refresh_secret:
            raise ConfigurationError("JWT refresh secret is not configured")
        return self._config.refresh_secret

    def sign_access(self, user_id: str, email: str) -> str:
        """Sign access token carrying user id and email."""
        secret = self._access_secret()
        now_ts = int(time.time())
        payload = {
            "iss": self._config.issuer,
            "sub": str(user_id),
            "email": email,
            "type": ACCESS_TYPE,
            "iat": now_ts,
            "exp": now_ts + self._config.access_ttl_seconds,
        }
        return build_signed_token(payload, secret)

    def sign_refresh(self, user_id: str) -> str:
        """Sign refresh token carrying only the user id."""
        secret = self._refresh_secret()
        now_ts = int(time.time())
        payload = {
            "iss": self._config.issuer,
            "sub": str(user_id),
            "type": REFRESH_TYPE,
            "iat": now_ts,
            "exp": now_ts + self._config.refresh_ttl_seconds,
        }
        return build_signed_token(payload, secret)

    def issue(self, user: User) -> TokenPair:
        """Issue fresh access and refresh tokens for user."""
        # Resolve both secrets first so a half-configured service signs nothing.
        self._access_secret()
        self._refresh_secret()
        return TokenPair(
            access_token=self.sign_access(user.id, user.email),
            refresh_token=self.sign_refresh(user.id),
        )

    def verify_access(self, token: str) -> AccessClaims:
        """Return access claims or raise ``InvalidTokenError``."""
        payload = self._decode(token, self._access_secret(), ACCESS_TYPE)
        email = payload.get("email")
        if not isinstance(email, str) or not email:
            raise InvalidTokenError()
        return AccessClaims(
            user_id=str(payload["sub"]),
            email=email,
            expires_at=int(payload["exp"]),
        )

    def verify_refresh(self, token: str) -> RefreshClaims:
        """Return refresh claims or raise ``InvalidTokenError``."""
        payload = self._decode(token, self._refresh_secret(), REFRESH_TYPE)
        return RefreshClaims(user_id=str(payload["sub"]), expires_at=int(payload["exp"]))

    async def rotate_access(self, refresh_token: str, store: CredentialStore) -> str:
        """Mint a new access token from a refresh token.

        The refresh token carries no email, so the user is re-read from the
        store and the new access token gets the current email. The refresh
        token itself is not re-issued.
        """
        claims = self.verify_refresh(refresh_token)
        user = await store.get_by_id(claims.user_id)
        if user is None:
            raise InvalidTokenError()
        token = self.sign_access(user.id, user.email)
        LOGGER.info("access_token_rotated", extra={"user_id": user.id})
        return token

    def _decode(self, token: str, secret: str, expected_type: str) -> dict[str, Any]:
        """Decode token; every failure collapses into ``InvalidTokenError``."""
        try:
            payload = decode_signed_token(token, secret)
        except ValueError as exc:
            raise InvalidTokenError() from exc
        if payload.get("iss") != self._config.issuer:
            raise InvalidTokenError()
        if payload.get("type") != expected_type:
            raise InvalidTokenError()
        if not payload.get("sub"):
            raise InvalidTokenError()
        return payload

    def _set_cookie(self, response: Response, name: str, value: str, max_age: int) -> None:
        response.set_cookie(
            key=name,
            value=value,
            max_age=max_age,
            path="/",
            secure=self._config.production,
            httponly=True,
            samesite="strict",
        )

    def bind_to_transport(self, response: Response, tokens: TokenPair) -> None:
        """Write both token cookies."""
        self._set_cookie(
            response, ACCESS_COOKIE, tokens.access_token, self._config.access_ttl_seconds
        )
        self._set_cookie(
            response, REFRESH_COOKIE, tokens.refresh_token, self._config.refresh_ttl_seconds
        )

    def bind_access_only(self, response: Response, access_token: str) -> None:
        """Write only the access token cookie."""
        self._set_cookie(
            response, ACCESS_COOKIE, access_token, self._config.access_ttl_seconds
        )

    def clear_binding(self, response: Response) -> None:
        """Expire both token cookies."""
        for name in (ACCESS_COOKIE, REFRESH_COOKIE):
            response.delete_cookie(
                key=name,
                path="/",
                secure=self._config.production,
                httponly=True,
                samesite="strict",
            )
