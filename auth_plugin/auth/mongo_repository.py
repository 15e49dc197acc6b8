"""Credential store over a pre-existing MongoDB ``auth_users`` collection.

Documents written by the earlier admin backend use ``user_id`` and
``password_hash`` field names, PBKDF2 hashes and an ``is_active`` flag.
This store reads and writes that layout so both systems can share users;
pair it with ``Pbkdf2PasswordHasher`` to keep existing passwords valid.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from auth_plugin.auth.errors import DuplicateUserError, StoreError
from auth_plugin.auth.models import NewUser, User, UserUpdate
from auth_plugin.auth.repository import CredentialStore, normalize_email, utcnow
from auth_plugin.core.security import PasswordHasher

T = TypeVar("T")

USERS_COLLECTION = "auth_users"
_PROJECTION = {"_id": 0}


def _as_utc(value: Any) -> datetime | None:
    """Return aware UTC datetime for BSON dates (naive by default)."""
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _doc_to_user(doc: dict[str, Any] | None) -> User | None:
    """Convert legacy-layout document to domain model; inactive users are hidden."""
    if not doc or doc.get("is_active") is False:
        return None
    return User(
        id=str(doc["user_id"]),
        email=str(doc["email"]),
        password_hash=doc.get("password_hash") or None,
        first=doc.get("first"),
        last=doc.get("last"),
        oauth_provider=doc.get("oauth_provider"),
        oauth_id=doc.get("oauth_id"),
        avatar=doc.get("avatar"),
        last_login=_as_utc(doc.get("last_login")),
        created_at=_as_utc(doc.get("created_at")),
    )


def ensure_indexes(collection: Any) -> None:
    """Create uniqueness indexes used by the store."""
    collection.create_index("email", unique=True)
    collection.create_index("user_id", unique=True)
    collection.create_index(
        [("oauth_provider", ASCENDING), ("oauth_id", ASCENDING)],
        unique=True,
        name="idx_auth_users_oauth",
        partialFilterExpression={"oauth_id": {"$type": "string"}},
    )


class MongoCredentialStore(CredentialStore):
    """User store over a pymongo collection; calls run in worker threads."""

    def __init__(
        self,
        collection: Any,
        hasher: PasswordHasher,
        *,
        client: MongoClient | None = None,
    ) -> None:
        """Store collection handle; ``client`` is closed by ``close``."""
        super().__init__(hasher)
        self._users = collection
        self._client = client

    async def _run(self, fn: Callable[[], T]) -> T:
        """Run blocking pymongo call in a thread, mapping driver errors."""

        def _call() -> T:
            try:
                return fn()
            except DuplicateKeyError as exc:
                raise DuplicateUserError() from exc
            except PyMongoError as exc:
                raise StoreError() from exc

        return await asyncio.to_thread(_call)

    async def find_by_email(self, email: str) -> User | None:
        """Return user by normalized email."""
        key = normalize_email(email)
        doc = await self._run(lambda: self._users.find_one({"email": key}, _PROJECTION))
        return _doc_to_user(doc)

    async def find_by_external_identity(
        self, provider: str, provider_id: str
    ) -> User | None:
        """Return user by provider identity."""
        doc = await self._run(
            lambda: self._users.find_one(
                {"oauth_provider": provider, "oauth_id": provider_id}, _PROJECTION
            )
        )
        return _doc_to_user(doc)

    async def get_by_id(self, user_id: str) -> User | None:
        """Return user by ``user_id``."""
        doc = await self._run(
            lambda: self._users.find_one({"user_id": str(user_id)}, _PROJECTION)
        )
        return _doc_to_user(doc)

    async def create(self, data: NewUser) -> User:
        """Insert legacy-layout document and return it as a user."""
        password_hash = await self.hash_password(data.password) if data.password else ""
        doc: dict[str, Any] = {
            "user_id": uuid.uuid4().hex,
            "email": normalize_email(data.email),
            "password_hash": password_hash,
            "role": "user",
            "is_active": True,
            "email_verified": bool(data.provider),
            "first": data.first or None,
            "last": data.last or None,
            "avatar": data.avatar or None,
            "last_login": None,
            "created_at": utcnow(),
        }
        # Local users carry no identity fields so the partial index ignores them.
        if data.provider and data.provider_id:
            doc["oauth_provider"] = data.provider
            doc["oauth_id"] = data.provider_id

        await self._run(lambda: self._users.insert_one(dict(doc)))
        user = _doc_to_user(doc)
        if user is None:
            raise StoreError("Inserted user could not be read back")
        return user

    async def update(self, user_id: str, fields: UserUpdate) -> User | None:
        """Set supplied fields and return post-update document."""
        changes = fields.changes()
        if not changes:
            return None
        doc = await self._run(
            lambda: self._users.find_one_and_update(
                {"user_id": str(user_id)},
                {"$set": changes},
                projection=_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
        )
        return _doc_to_user(doc)

    async def close(self) -> None:
        """Close owned Mongo client."""
        if self._client is not None:
            await asyncio.to_thread(self._client.close)


def connect_mongo_store(
    uri: str,
    database: str,
    hasher: PasswordHasher,
    *,
    timeout_ms: int = 3000,
) -> MongoCredentialStore:
    """Connect, verify reachability, ensure indexes and return store."""
    try:
        client: MongoClient = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
        client.admin.command("ping")
        collection = client[database][USERS_COLLECTION]
        ensure_indexes(collection)
    except PyMongoError as exc:
        raise StoreError(f"Unable to connect credential store: {exc}") from exc
    return MongoCredentialStore(collection, hasher, client=client)
