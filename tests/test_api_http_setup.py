from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Coroutine, cast

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from auth_plugin.api.http_setup import register_exception_handlers, register_http_middleware
from auth_plugin.auth.errors import AuthError, InvalidCredentialsError, StoreError

LOGGER = logging.getLogger(__name__)


def _request(path: str, method: str = "GET", headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "root_path": "",
        "headers": headers or [],
        "client": ("127.0.0.1", 1234),
        "server": ("testserver", 80),
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def _app() -> FastAPI:
    app = FastAPI()
    register_http_middleware(app, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    return app


def _dispatch_by_name(app: FastAPI, name: str):
    for middleware in app.user_middleware:
        dispatch = middleware.kwargs.get("dispatch")
        if callable(dispatch) and getattr(dispatch, "__name__", "") == name:
            return dispatch
    raise AssertionError(f"Dispatch {name!r} not found")


def _resolve_response(result: Response | Awaitable[Response]) -> Response:
    if inspect.iscoroutine(result):
        return asyncio.run(cast(Coroutine[Any, Any, Response], result))
    return cast(Response, result)


def test_http_setup_adds_security_headers_and_request_id() -> None:
    dispatch = _dispatch_by_name(_app(), "request_logging_middleware")
    request = _request("/ok", headers=[(b"x-request-id", b"req-123")])

    async def call_next(_request: Request) -> Response:
        return Response(content="ok", status_code=200)

    response = asyncio.run(dispatch(request, call_next))
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Cache-Control"] == "no-store"


def test_http_setup_generates_request_id_when_absent() -> None:
    dispatch = _dispatch_by_name(_app(), "request_logging_middleware")

    async def call_next(_request: Request) -> Response:
        return Response(content="ok", status_code=200)

    response = asyncio.run(dispatch(_request("/ok"), call_next))
    assert len(response.headers["X-Request-ID"]) == 32


def test_http_setup_serializes_http_exception_payload() -> None:
    handler = _app().exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(
            _request("/api/auth/me"),
            HTTPException(
                status_code=401,
                detail={"error_code": "AUTH_MISSING_TOKEN", "message": "No token provided"},
            ),
        )
    )
    assert response.status_code == 401
    assert b"AUTH_MISSING_TOKEN" in response.body
    assert b"No token provided" in response.body


def test_http_setup_maps_auth_errors_to_envelope() -> None:
    handler = _app().exception_handlers[AuthError]

    invalid: Response = _resolve_response(
        handler(_request("/api/auth/login"), InvalidCredentialsError())
    )
    store_down: Response = _resolve_response(
        handler(_request("/api/auth/me"), StoreError("mongo unreachable"))
    )

    assert invalid.status_code == 401
    assert b"AUTH_INVALID_CREDENTIALS" in invalid.body
    assert store_down.status_code == 503
    assert b"STORE_UNAVAILABLE" in store_down.body


def test_http_setup_handles_unexpected_exceptions() -> None:
    handler = _app().exception_handlers[Exception]
    response: Response = _resolve_response(handler(_request("/boom"), RuntimeError("boom")))
    assert response.status_code == 500
    assert b"INTERNAL_SERVER_ERROR" in response.body
    assert b"boom" not in response.body


def test_http_setup_handles_validation_exception() -> None:
    handler = _app().exception_handlers[RequestValidationError]
    response: Response = _resolve_response(
        handler(_request("/validation"), RequestValidationError([]))
    )
    assert response.status_code == 422
    assert b"VALIDATION_ERROR" in response.body
