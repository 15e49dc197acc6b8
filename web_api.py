"""Example integration: auth routes plus a protected and a public endpoint.

Run with ``uvicorn web_api:app``. Configuration comes from the environment
(``.env`` is loaded when present).
"""

from __future__ import annotations

import logging
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI

from auth_plugin import AppConfig, create_app as create_auth_app
from auth_plugin.auth.middleware import optional_auth, require_auth
from auth_plugin.auth.models import AccessClaims

load_dotenv()
APP_CONFIG = AppConfig.from_env()
LOGGER = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build example app with protected and public routes."""
    app = create_auth_app(APP_CONFIG, title="Auth Plugin Example")
    tokens = app.state.auth.tokens

    @app.get("/api/profile")
    def profile(claims: AccessClaims = Depends(require_auth(tokens))) -> dict[str, Any]:
        """Protected route; claims come from the access token cookie."""
        return {"message": "Protected route", "user": claims.model_dump()}

    @app.get("/api/public")
    def public(
        claims: AccessClaims | None = Depends(optional_auth(tokens)),
    ) -> dict[str, Any]:
        """Public route that greets signed-in callers."""
        return {
            "message": "Public route",
            "signed_in": claims is not None,
        }

    LOGGER.info("example_app_ready")
    return app


app = create_app()
