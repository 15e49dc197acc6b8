"""Credential store contract shared by every user-storage backend."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from auth_plugin.auth.errors import DuplicateUserError, InvalidCredentialsError
from auth_plugin.auth.models import NewUser, OAuthProfile, User, UserUpdate
from auth_plugin.core.security import PasswordHasher

LOGGER = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Return canonical email key used for storage and lookups."""
    return email.strip().lower()


def utcnow() -> datetime:
    """Return timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class CredentialStore(ABC):
    """User persistence contract consumed by routes, middleware and OAuth.

    Backends implement the five storage primitives. Password verification
    and provider find-or-create are built on top of them here so every
    backend behaves the same way; only the hashing strategy varies.
    """

    def __init__(self, hasher: PasswordHasher) -> None:
        """Store hashing strategy used for local password credentials."""
        self._hasher = hasher
        self._dummy_hash: str | None = None

    @property
    def hasher(self) -> PasswordHasher:
        """Return hashing strategy of this store."""
        return self._hasher

    @abstractmethod
    async def find_by_email(self, email: str) -> User | None:
        """Return user by (case-insensitive) email."""

    @abstractmethod
    async def find_by_external_identity(
        self, provider: str, provider_id: str
    ) -> User | None:
        """Return user linked to provider identity."""

    @abstractmethod
    async def create(self, data: NewUser) -> User:
        """Create user, hashing ``data.password`` when supplied.

        Raises ``DuplicateUserError`` when email or external identity exists.
        """

    @abstractmethod
    async def update(self, user_id: str, fields: UserUpdate) -> User | None:
        """Apply supplied fields; ``None`` when nothing to change or no such user."""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> User | None:
        """Return user by local id."""

    async def hash_password(self, password: str) -> str:
        """Hash password off the event loop."""
        return await asyncio.to_thread(self._hasher.hash, password)

    async def verify_password(self, email: str, password: str) -> User:
        """Return user for a valid email/password pair.

        Unknown email, OAuth-only account and wrong password all raise the
        same ``InvalidCredentialsError``.
        """
        user = await self.find_by_email(email)
        if user is None or not user.password_hash:
            await self._burn_hash_check(password)
            raise InvalidCredentialsError()

        matches = await asyncio.to_thread(
            self._hasher.verify, password, user.password_hash
        )
        if not matches:
            raise InvalidCredentialsError()
        return user

    async def find_or_create(self, profile: OAuthProfile) -> User:
        """Return local user for provider identity, creating it on first login."""
        user = await self.find_by_external_identity(profile.provider, profile.id)
        if user is None:
            try:
                created = await self.create(
                    NewUser(
                        email=profile.email,
                        first=profile.firstname,
                        last=profile.surname,
                        avatar=profile.avatar,
                        provider=profile.provider,
                        provider_id=profile.id,
                    )
                )
            except DuplicateUserError:
                # Lost a race against a concurrent callback for the same identity.
                user = await self.find_by_external_identity(profile.provider, profile.id)
                if user is None:
                    raise
            else:
                LOGGER.info(
                    "oauth_user_created",
                    extra={"user_id": created.id, "provider": profile.provider},
                )
                return created

        avatar = profile.avatar if profile.avatar and profile.avatar != user.avatar else None
        updated = await self.update(user.id, UserUpdate(last_login=utcnow(), avatar=avatar))
        return updated or user

    async def _burn_hash_check(self, password: str) -> None:
        """Spend one hash verification so unknown emails cost the same time."""
        if self._dummy_hash is None:
            self._dummy_hash = await self.hash_password("dummy-password")
        await asyncio.to_thread(self._hasher.verify, password, self._dummy_hash)

    async def close(self) -> None:
        """Release backend resources."""
