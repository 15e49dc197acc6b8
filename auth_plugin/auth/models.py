"""Pydantic models for authentication domain."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

PASSWORD_FIELDS = {"password", "password_hash"}


class User(BaseModel):
    """Persisted user record as returned by a credential store."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    password_hash: str | None = None
    first: str | None = None
    last: str | None = None
    oauth_provider: str | None = None
    oauth_id: str | None = None
    avatar: str | None = None
    last_login: datetime | None = None
    created_at: datetime | None = None

    @property
    def has_password(self) -> bool:
        """Return whether the user can log in with a local password."""
        return bool(self.password_hash)

    def public_dict(self) -> dict[str, Any]:
        """Return JSON-safe user payload without credential fields."""
        return self.model_dump(mode="json", exclude=PASSWORD_FIELDS)


class NewUser(BaseModel):
    """Input for creating a user; ``password`` is clear text and gets hashed."""

    email: str
    password: str | None = None
    first: str | None = None
    last: str | None = None
    provider: str | None = None
    provider_id: str | None = None
    avatar: str | None = None


class UserUpdate(BaseModel):
    """Mutable user fields; unset fields are left untouched."""

    last_login: datetime | None = None
    avatar: str | None = None

    def changes(self) -> dict[str, Any]:
        """Return only the fields that were supplied."""
        return self.model_dump(exclude_none=True)


class OAuthProfile(BaseModel):
    """Canonical identity tuple projected from a provider profile."""

    provider: str
    id: str
    email: str
    firstname: str | None = None
    surname: str | None = None
    avatar: str | None = None


class TokenPair(BaseModel):
    """Signed access/refresh token pair."""

    access_token: str
    refresh_token: str


class AccessClaims(BaseModel):
    """Verified access-token claims attached to authenticated requests."""

    user_id: str
    email: str
    expires_at: int


class RefreshClaims(BaseModel):
    """Verified refresh-token claims."""

    user_id: str
    expires_at: int


class LoginRequest(BaseModel):
    """Login request payload."""

    email: str | None = None
    password: str | None = None


class RegisterRequest(BaseModel):
    """Registration request payload."""

    email: str | None = None
    password: str | None = None
    first: str | None = None
    last: str | None = None
