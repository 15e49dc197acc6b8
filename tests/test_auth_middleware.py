from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from auth_plugin.api.http_setup import register_exception_handlers
from auth_plugin.auth.errors import StoreError
from auth_plugin.auth.middleware import optional_auth, require_auth, require_user
from auth_plugin.auth.models import AccessClaims, NewUser, User
from auth_plugin.auth.tokens import ACCESS_COOKIE, TokenService
from tests.helpers import jwt_config, sqlite_store


class _BrokenStore:
    async def get_by_id(self, user_id: str) -> User | None:
        raise StoreError("down")


def _client(tokens: TokenService, store) -> TestClient:
    app = FastAPI()
    register_exception_handlers(app, logger=logging.getLogger(__name__))

    @app.get("/strict")
    async def strict(request: Request, claims: AccessClaims = Depends(require_auth(tokens))):
        assert request.state.user == claims
        return {"user_id": claims.user_id, "email": claims.email}

    @app.get("/hydrated")
    async def hydrated(user: User = Depends(require_user(tokens, store))):
        return {"user_id": user.id, "first": user.first}

    @app.get("/optional")
    async def optional(claims: AccessClaims | None = Depends(optional_auth(tokens))):
        return {"user_id": claims.user_id if claims else None}

    return TestClient(app)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(jwt_config())


@pytest.fixture
def user_and_store(tmp_path: Path):
    store = sqlite_store(tmp_path)
    user = asyncio.run(store.create(NewUser(email="a@x.com", password="p", first="Ann")))
    return user, store


def test_strict_auth_accepts_valid_cookie(tokens: TokenService, user_and_store) -> None:
    user, store = user_and_store
    client = _client(tokens, store)
    client.cookies.set(ACCESS_COOKIE, tokens.issue(user).access_token)

    response = client.get("/strict")

    assert response.status_code == 200
    assert response.json() == {"user_id": user.id, "email": "a@x.com"}


def test_strict_auth_without_cookie_is_missing_token(tokens: TokenService, user_and_store) -> None:
    _user, store = user_and_store

    response = _client(tokens, store).get("/strict")

    assert response.status_code == 401
    assert response.json() == {"error_code": "AUTH_MISSING_TOKEN", "message": "No token provided"}


@pytest.mark.parametrize(
    "token",
    ["garbage", "a.b.c", "a.b", "....", "eyJhbGciOiJub25lIn0.e30.", "x" * 500],
)
def test_strict_auth_rejects_malformed_tokens(
    tokens: TokenService, user_and_store, token: str
) -> None:
    _user, store = user_and_store
    client = _client(tokens, store)
    client.cookies.set(ACCESS_COOKIE, token)

    response = client.get("/strict")

    assert response.status_code == 401
    assert response.json()["error_code"] == "AUTH_TOKEN_INVALID"


def test_strict_auth_rejects_refresh_token_in_access_cookie(
    tokens: TokenService, user_and_store
) -> None:
    user, store = user_and_store
    client = _client(tokens, store)
    client.cookies.set(ACCESS_COOKIE, tokens.issue(user).refresh_token)

    assert client.get("/strict").status_code == 401


def test_require_user_hydrates_and_reports_deleted_users(
    tokens: TokenService, user_and_store
) -> None:
    user, store = user_and_store
    client = _client(tokens, store)

    client.cookies.set(ACCESS_COOKIE, tokens.issue(user).access_token)
    assert client.get("/hydrated").json() == {"user_id": user.id, "first": "Ann"}

    client.cookies.set(ACCESS_COOKIE, tokens.issue(User(id="gone", email="g@x.com")).access_token)
    response = client.get("/hydrated")
    assert response.status_code == 401
    assert response.json()["error_code"] == "AUTH_USER_NOT_FOUND"


def test_require_user_propagates_store_failures(tokens: TokenService, user_and_store) -> None:
    user, _store = user_and_store
    client = _client(tokens, _BrokenStore())
    client.cookies.set(ACCESS_COOKIE, tokens.issue(user).access_token)

    response = client.get("/hydrated")

    assert response.status_code == 503
    assert response.json()["error_code"] == "STORE_UNAVAILABLE"


def test_optional_auth_never_rejects(tokens: TokenService, user_and_store) -> None:
    user, store = user_and_store
    client = _client(tokens, store)

    assert client.get("/optional").json() == {"user_id": None}
    client.cookies.set(ACCESS_COOKIE, "garbage")
    assert client.get("/optional").json() == {"user_id": None}
    client.cookies.set(ACCESS_COOKIE, tokens.issue(user).access_token)
    assert client.get("/optional").json() == {"user_id": user.id}


def test_optional_auth_tolerates_unconfigured_secrets(user_and_store) -> None:
    _user, store = user_and_store
    client = _client(TokenService(jwt_config(access_secret=None)), store)
    client.cookies.set(ACCESS_COOKIE, "anything")

    response = client.get("/optional")

    assert response.status_code == 200
    assert response.json() == {"user_id": None}
