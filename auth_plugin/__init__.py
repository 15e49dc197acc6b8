"""Cookie-based email/password and OAuth authentication for FastAPI apps."""

from auth_plugin.api.app import create_app
from auth_plugin.auth.errors import (
    AuthError,
    ConfigurationError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    OAuthError,
    StoreError,
)
from auth_plugin.auth.middleware import optional_auth, require_auth, require_user
from auth_plugin.auth.mongo_repository import MongoCredentialStore
from auth_plugin.auth.repository import CredentialStore
from auth_plugin.auth.sqlite_repository import SqliteCredentialStore
from auth_plugin.auth.tokens import TokenService
from auth_plugin.core.config import AppConfig

__version__ = "1.0.0"

__all__ = [
    "AppConfig",
    "AuthError",
    "ConfigurationError",
    "CredentialStore",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "MongoCredentialStore",
    "NotFoundError",
    "OAuthError",
    "SqliteCredentialStore",
    "StoreError",
    "TokenService",
    "create_app",
    "optional_auth",
    "require_auth",
    "require_user",
]
