"""HTTP middleware and exception handler wiring for FastAPI apps."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from auth_plugin.api.contracts import ApiErrorResponse
from auth_plugin.api.errors import ApiErrorCode, api_error_from, to_error_payload
from auth_plugin.auth.errors import AuthError
from auth_plugin.core.logging import set_correlation_id

# Auth responses carry Set-Cookie, so nothing here may be cached.
RESPONSE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}


def _request_extra(request: Request, status_code: int) -> dict[str, Any]:
    return {
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
    }


def _error_response(
    status_code: int,
    error_code: str,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiErrorResponse(error_code=error_code, message=message).model_dump(),
        headers=headers,
    )


def register_http_middleware(app: FastAPI, *, logger: Any) -> None:
    """Attach correlation-id, response header and request logging middleware."""

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        for name, value in RESPONSE_HEADERS.items():
            response.headers[name] = value
        logger.info(
            "request_completed", extra=_request_extra(request, response.status_code)
        )
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    """Map raised errors onto the ``{error_code, message}`` envelope."""

    @app.exception_handler(HTTPException)
    async def handle_http_exception(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        payload = to_error_payload(exc.detail, exc.status_code)
        logger.warning("http_exception", extra=_request_extra(request, exc.status_code))
        return _error_response(
            exc.status_code,
            payload["error_code"],
            payload["message"],
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        api_error = api_error_from(exc)
        server_side = api_error.status_code >= 500
        log = logger.error if server_side else logger.warning
        log(
            "auth_error",
            exc_info=server_side,
            extra=_request_extra(request, api_error.status_code),
        )
        payload = to_error_payload(api_error.detail, api_error.status_code)
        return _error_response(
            api_error.status_code, payload["error_code"], payload["message"]
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning("validation_exception", extra=_request_extra(request, 422))
        return _error_response(422, ApiErrorCode.VALIDATION_ERROR, str(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception("unexpected_exception", extra=_request_extra(request, 500))
        # Internal details stay in the log.
        return _error_response(
            500, ApiErrorCode.INTERNAL_SERVER_ERROR, "Internal server error"
        )
