from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

from pymongo.errors import DuplicateKeyError

from auth_plugin.auth.models import OAuthProfile
from auth_plugin.auth.providers import (
    GOOGLE_ENDPOINTS,
    OAuthProvider,
    ProfileProjector,
    project_google_profile,
)
from auth_plugin.auth.sqlite_repository import SqliteCredentialStore
from auth_plugin.core.config import AppConfig, JwtConfig, OAuthProviderConfig
from auth_plugin.core.security import BcryptPasswordHasher

FAST_BCRYPT = BcryptPasswordHasher(rounds=4)


def jwt_config(**overrides: Any) -> JwtConfig:
    values: dict[str, Any] = {
        "access_secret": "access-secret-for-tests",
        "refresh_secret": "refresh-secret-for-tests",
        "access_ttl_seconds": 900,
        "refresh_ttl_seconds": 3600,
        "issuer": "auth-plugin-test",
        "production": False,
    }
    values.update(overrides)
    return JwtConfig(**values)


def app_config(**jwt: Any) -> AppConfig:
    secrets: dict[str, Any] = {
        "access_secret": "access-secret-for-tests",
        "refresh_secret": "refresh-secret-for-tests",
    }
    secrets.update(jwt)
    return AppConfig.from_env(overrides={"jwt": secrets}, environ={})


def sqlite_store(tmp_path: Path) -> SqliteCredentialStore:
    return SqliteCredentialStore(tmp_path / "auth.db", FAST_BCRYPT)


class FakeProvider(OAuthProvider):
    """Provider whose code exchange returns queued native payloads."""

    def __init__(
        self,
        name: str = "google",
        payloads: list[Mapping[str, Any]] | None = None,
        projector: ProfileProjector = project_google_profile,
    ) -> None:
        super().__init__(
            name,
            OAuthProviderConfig(
                client_id=f"{name}-client",
                client_secret=f"{name}-secret",
                callback_url=f"/api/auth/{name}/callback",
            ),
            GOOGLE_ENDPOINTS,
            projector,
        )
        self.payloads = list(payloads or [])
        self.codes: list[str] = []

    async def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        self.codes.append(code)
        return self._projector(self.payloads.pop(0))


class FakeUsersCollection:
    """Minimal in-memory stand-in for the pymongo ``auth_users`` collection."""

    def __init__(self, docs: list[dict[str, Any]] | None = None) -> None:
        self.docs: list[dict[str, Any]] = [deepcopy(d) for d in docs or []]
        self.indexes: list[Any] = []

    def create_index(self, keys: Any, **kwargs: Any) -> str:
        self.indexes.append((keys, kwargs))
        return str(keys)

    def _match(self, doc: dict[str, Any], query: dict[str, Any]) -> bool:
        return all(doc.get(key) == value for key, value in query.items())

    def find_one(
        self, query: dict[str, Any], projection: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        for doc in self.docs:
            if self._match(doc, query):
                return deepcopy(doc)
        return None

    def insert_one(self, doc: dict[str, Any]) -> None:
        for existing in self.docs:
            if existing["email"] == doc["email"] or existing["user_id"] == doc["user_id"]:
                raise DuplicateKeyError("duplicate user")
            if (
                isinstance(doc.get("oauth_id"), str)
                and existing.get("oauth_provider") == doc.get("oauth_provider")
                and existing.get("oauth_id") == doc.get("oauth_id")
            ):
                raise DuplicateKeyError("duplicate identity")
        self.docs.append(deepcopy(doc))

    def find_one_and_update(
        self,
        query: dict[str, Any],
        update: dict[str, Any],
        projection: dict[str, Any] | None = None,
        return_document: Any = None,
    ) -> dict[str, Any] | None:
        for doc in self.docs:
            if self._match(doc, query):
                doc.update(deepcopy(update["$set"]))
                return deepcopy(doc)
        return None
