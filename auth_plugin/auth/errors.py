"""Domain error taxonomy for token, credential and store failures."""

from __future__ import annotations


class AuthError(Exception):
    """Base class for authentication domain errors."""

    default_message = "Authentication error"

    def __init__(self, message: str | None = None) -> None:
        """Store a caller-safe message."""
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(AuthError):
    """Required secret or configuration value is absent or invalid."""

    default_message = "Authentication is not configured"


class InvalidTokenError(AuthError):
    """Token is malformed, tampered with, of the wrong type or expired."""

    default_message = "Invalid token"


class InvalidCredentialsError(AuthError):
    """Email/password pair was rejected."""

    default_message = "Invalid credentials"


class NotFoundError(AuthError):
    """Token references a user that no longer exists."""

    default_message = "User not found"


class StoreError(AuthError):
    """Backing store failure (connectivity, constraint, timeout)."""

    default_message = "Credential store failure"


class DuplicateUserError(StoreError):
    """Unique email or external identity already exists."""

    default_message = "User already exists"


class OAuthError(AuthError):
    """Identity provider exchange or handshake failure."""

    default_message = "OAuth authentication failed"
