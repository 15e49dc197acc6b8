"""Relational reference credential store backed by SQLite."""

from __future__ import annotations

import asyncio
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Callable, TypeVar

from auth_plugin.auth.errors import DuplicateUserError, StoreError
from auth_plugin.auth.models import NewUser, User, UserUpdate
from auth_plugin.auth.repository import CredentialStore, normalize_email, utcnow
from auth_plugin.core.migrations import apply_migrations
from auth_plugin.core.security import PasswordHasher

T = TypeVar("T")

# Maps update fields to columns; nothing outside this map is ever written.
_UPDATABLE_COLUMNS = {"last_login": "last_login", "avatar": "avatar"}


def _parse_ts(value: Any) -> datetime | None:
    """Parse ISO timestamp column value."""
    if not value:
        return None
    return datetime.fromisoformat(str(value))


def _row_to_user(row: sqlite3.Row | None) -> User | None:
    """Convert ``auth_users`` row to domain model."""
    if row is None:
        return None
    return User(
        id=str(row["id"]),
        email=str(row["email"]),
        password_hash=row["password"],
        first=row["first"],
        last=row["last"],
        oauth_provider=row["oauth_provider"],
        oauth_id=row["oauth_id"],
        avatar=row["avatar"],
        last_login=_parse_ts(row["last_login"]),
        created_at=_parse_ts(row["created_at"]),
    )


class SqliteCredentialStore(CredentialStore):
    """SQLite user store; blocking calls run in worker threads."""

    def __init__(
        self,
        database_path: Path | str,
        hasher: PasswordHasher,
        *,
        timeout_seconds: float = 5.0,
    ) -> None:
        """Open connection and ensure ``auth_users`` schema is migrated."""
        super().__init__(hasher)
        if str(database_path) != ":memory:":
            Path(database_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._connection = sqlite3.connect(
                str(database_path),
                timeout=timeout_seconds,
                check_same_thread=False,
            )
            self._connection.row_factory = sqlite3.Row
            apply_migrations(self._connection)
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to open credential store: {exc}") from exc
        self._lock = Lock()

    async def _run(self, fn: Callable[[sqlite3.Cursor], T]) -> T:
        """Run ``fn`` with a cursor under the connection lock in a thread."""

        def _call() -> T:
            with self._lock:
                cursor = self._connection.cursor()
                try:
                    result = fn(cursor)
                    self._connection.commit()
                    return result
                except sqlite3.IntegrityError as exc:
                    self._connection.rollback()
                    raise DuplicateUserError() from exc
                except sqlite3.Error as exc:
                    self._connection.rollback()
                    raise StoreError() from exc

        return await asyncio.to_thread(_call)

    async def find_by_email(self, email: str) -> User | None:
        """Return user by normalized email."""
        key = normalize_email(email)
        row = await self._run(
            lambda cur: cur.execute(
                "SELECT * FROM auth_users WHERE email = ?", (key,)
            ).fetchone()
        )
        return _row_to_user(row)

    async def find_by_external_identity(
        self, provider: str, provider_id: str
    ) -> User | None:
        """Return user by ``(oauth_provider, oauth_id)``."""
        row = await self._run(
            lambda cur: cur.execute(
                "SELECT * FROM auth_users WHERE oauth_provider = ? AND oauth_id = ?",
                (provider, provider_id),
            ).fetchone()
        )
        return _row_to_user(row)

    async def get_by_id(self, user_id: str) -> User | None:
        """Return user by id."""
        row = await self._run(
            lambda cur: cur.execute(
                "SELECT * FROM auth_users WHERE id = ?", (str(user_id),)
            ).fetchone()
        )
        return _row_to_user(row)

    async def create(self, data: NewUser) -> User:
        """Insert user and return stored row."""
        password_hash = await self.hash_password(data.password) if data.password else None
        user_id = uuid.uuid4().hex
        params = (
            user_id,
            normalize_email(data.email),
            password_hash,
            data.first or None,
            data.last or None,
            data.provider or None,
            data.provider_id or None,
            data.avatar or None,
            utcnow().isoformat(),
        )

        def _insert(cur: sqlite3.Cursor) -> sqlite3.Row | None:
            cur.execute(
                """
                INSERT INTO auth_users(
                  id, email, password, first, last,
                  oauth_provider, oauth_id, avatar, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                params,
            )
            return cur.execute(
                "SELECT * FROM auth_users WHERE id = ?", (user_id,)
            ).fetchone()

        user = _row_to_user(await self._run(_insert))
        if user is None:
            raise StoreError("Inserted user could not be read back")
        return user

    async def update(self, user_id: str, fields: UserUpdate) -> User | None:
        """Update ``last_login``/``avatar``; ``None`` when no field is supplied."""
        changes = fields.changes()
        assignments: list[str] = []
        values: list[Any] = []
        for name, column in _UPDATABLE_COLUMNS.items():
            if name not in changes:
                continue
            value = changes[name]
            assignments.append(f"{column} = ?")
            values.append(value.isoformat() if isinstance(value, datetime) else value)
        if not assignments:
            return None

        def _update(cur: sqlite3.Cursor) -> sqlite3.Row | None:
            cur.execute(
                f"UPDATE auth_users SET {', '.join(assignments)} WHERE id = ?",
                (*values, str(user_id)),
            )
            if cur.rowcount == 0:
                return None
            return cur.execute(
                "SELECT * FROM auth_users WHERE id = ?", (str(user_id),)
            ).fetchone()

        return _row_to_user(await self._run(_update))

    async def close(self) -> None:
        """Close SQLite connection."""

        def _close() -> None:
            with self._lock:
                self._connection.close()

        await asyncio.to_thread(_close)
