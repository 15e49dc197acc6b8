"""Application factory: the single place where auth components are wired."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from fastapi import FastAPI

from auth_plugin.api.contracts import HealthResponse
from auth_plugin.api.http_setup import register_exception_handlers, register_http_middleware
from auth_plugin.auth.errors import ConfigurationError
from auth_plugin.auth.handshake import ReturnToStore
from auth_plugin.auth.mongo_repository import connect_mongo_store
from auth_plugin.auth.providers import ProviderRegistry
from auth_plugin.auth.repository import CredentialStore
from auth_plugin.auth.router import create_auth_router
from auth_plugin.auth.sqlite_repository import SqliteCredentialStore
from auth_plugin.auth.tokens import TokenService
from auth_plugin.core.config import AppConfig, StoreConfig
from auth_plugin.core.logging import setup_logging
from auth_plugin.core.security import build_password_hasher

LOGGER = logging.getLogger(__name__)


def build_credential_store(config: StoreConfig) -> CredentialStore:
    """Create the configured credential store backend."""
    try:
        hasher = build_password_hasher(config.password_hash)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    if config.backend == "sqlite":
        return SqliteCredentialStore(config.sqlite_path, hasher)
    if config.backend == "mongo":
        if not config.mongo_uri:
            raise ConfigurationError("MONGODB_URI is required for the mongo backend")
        return connect_mongo_store(config.mongo_uri, config.mongo_db, hasher)
    raise ConfigurationError(f"Unknown credential store backend: {config.backend!r}")


@dataclass(frozen=True)
class AuthComponents:
    """Wired auth services, exposed on ``app.state.auth``."""

    config: AppConfig
    store: CredentialStore
    tokens: TokenService
    providers: ProviderRegistry
    handshakes: ReturnToStore


def create_app(
    config: AppConfig,
    *,
    store: CredentialStore | None = None,
    providers: ProviderRegistry | None = None,
    configure_logging: bool = True,
    title: str = "Auth Plugin API",
) -> FastAPI:
    """Build FastAPI app with auth routes, middleware and error handlers."""
    if configure_logging:
        setup_logging(config.logging.level, config.logging.format)

    components = AuthComponents(
        config=config,
        store=store if store is not None else build_credential_store(config.store),
        tokens=TokenService(config.jwt),
        providers=(
            providers if providers is not None else ProviderRegistry.from_config(config.oauth)
        ),
        handshakes=ReturnToStore(config.oauth.handshake_ttl_seconds),
    )
    if not config.jwt.access_secret or not config.jwt.refresh_secret:
        LOGGER.warning("jwt_secrets_missing: token operations will fail until configured")

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        await components.store.close()

    app = FastAPI(title=title, lifespan=lifespan)
    app.state.auth = components
    register_http_middleware(app, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        """Liveness probe."""
        return HealthResponse(status="ok")

    app.include_router(
        create_auth_router(
            store=components.store,
            tokens=components.tokens,
            providers=components.providers,
            handshakes=components.handshakes,
            oauth_config=config.oauth,
        )
    )
    return app
