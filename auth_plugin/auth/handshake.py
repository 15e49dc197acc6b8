"""Read-once return-to storage for in-flight OAuth handshakes."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Iterable
from urllib.parse import urlsplit

STATE_COOKIE = "oauth_state"


@dataclass(frozen=True)
class PendingHandshake:
    """Server-side state of one handshake, keyed by its OAuth ``state``."""

    provider: str
    return_to: str | None
    expires_at: float


def safe_return_to(value: str | None, allowed_origins: Iterable[str] = ()) -> str | None:
    """Return ``value`` if it is a local path or an allowed origin, else ``None``."""
    if not value:
        return None
    candidate = value.strip()
    if candidate.startswith("/") and not candidate.startswith(("//", "/\\")):
        return candidate
    parts = urlsplit(candidate)
    if parts.scheme in {"http", "https"} and parts.netloc:
        origin = f"{parts.scheme}://{parts.netloc}".lower()
        if origin in {o.rstrip("/").lower() for o in allowed_origins}:
            return candidate
    return None


class ReturnToStore:
    """In-memory map from OAuth ``state`` to pending handshake.

    Entries are scoped to one handshake and removed on first read, whether
    or not a return-to value was stored. Expired entries are purged lazily.
    """

    def __init__(
        self,
        ttl_seconds: int = 600,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize empty store."""
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: dict[str, PendingHandshake] = {}
        self._lock = Lock()

    def begin(self, provider: str, return_to: str | None) -> str:
        """Register handshake and return its fresh ``state`` value."""
        state = secrets.token_urlsafe(24)
        now = self._clock()
        with self._lock:
            self._purge(now)
            self._pending[state] = PendingHandshake(
                provider=provider,
                return_to=return_to,
                expires_at=now + self._ttl_seconds,
            )
        return state

    def pop(self, state: str | None) -> PendingHandshake | None:
        """Remove and return live handshake for ``state``."""
        if not state:
            return None
        now = self._clock()
        with self._lock:
            pending = self._pending.pop(state, None)
            self._purge(now)
        if pending is None or pending.expires_at <= now:
            return None
        return pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def _purge(self, now: float) -> None:
        expired = [key for key, item in self._pending.items() if item.expires_at <= now]
        for key in expired:
            del self._pending[key]
