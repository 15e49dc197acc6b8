from __future__ import annotations

from fastapi.routing import APIRoute

from web_api import app


def test_health_endpoint_contract_function() -> None:
    route = next(
        (
            candidate
            for candidate in app.routes
            if isinstance(candidate, APIRoute) and candidate.path == "/api/health"
        ),
        None,
    )

    assert route is not None
    payload = route.endpoint()
    assert payload.model_dump() == {"status": "ok"}


def test_openapi_contains_auth_routes() -> None:
    paths = app.openapi()["paths"]

    for path in (
        "/api/auth/login",
        "/api/auth/register",
        "/api/auth/refresh",
        "/api/auth/logout",
    ):
        assert "post" in paths[path]
    assert "get" in paths["/api/auth/me"]
    assert "get" in paths["/api/auth/{provider_name}"]
    assert "get" in paths["/api/auth/{provider_name}/callback"]
    assert "/api/profile" in paths
    assert "/api/public" in paths


def test_openapi_contains_error_contract_for_login() -> None:
    login = app.openapi()["paths"]["/api/auth/login"]["post"]

    for status in ("400", "401"):
        assert login["responses"][status]["content"]["application/json"]["schema"][
            "$ref"
        ].endswith("ApiErrorResponse")


def test_openapi_contains_user_response_contract() -> None:
    register = app.openapi()["paths"]["/api/auth/register"]["post"]

    assert register["responses"]["200"]["content"]["application/json"]["schema"][
        "$ref"
    ].endswith("AuthUserResponse")
