"""Security primitives for password hashing and token signing."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import time
from typing import Any, Protocol

import bcrypt

PBKDF2_ALGORITHM = "pbkdf2_sha256"
PBKDF2_ROUNDS = 120_000
BCRYPT_ROUNDS = 10
BCRYPT_MAX_BYTES = 72
TOKEN_ALGORITHM = "HS256"


def _b64url_encode(raw: bytes) -> str:
    """Return URL-safe base64 string without padding."""
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    """Decode URL-safe base64 string with optional missing padding."""
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


class PasswordHasher(Protocol):
    """One-way password hashing strategy used by credential stores."""

    name: str

    def hash(self, password: str) -> str:
        """Return an encoded hash for storage."""

    def verify(self, password: str, stored_hash: str) -> bool:
        """Return whether ``password`` matches ``stored_hash``."""


class BcryptPasswordHasher:
    """Adaptive bcrypt hashing; reads ``$2a$``/``$2b$``/``$2y$`` hashes."""

    name = "bcrypt"

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        """Set bcrypt cost factor."""
        self._rounds = rounds

    @staticmethod
    def _encode(password: str) -> bytes:
        # bcrypt only looks at the first 72 bytes.
        return password.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, password: str) -> str:
        """Hash password with a fresh salt."""
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(self._encode(password), salt).decode("utf-8")

    def verify(self, password: str, stored_hash: str) -> bool:
        """Verify password against a stored bcrypt hash."""
        try:
            return bcrypt.checkpw(self._encode(password), stored_hash.encode("utf-8"))
        except ValueError:
            return False


class Pbkdf2PasswordHasher:
    """PBKDF2-HMAC-SHA256 in the ``pbkdf2_sha256$rounds$salt$digest`` format."""

    name = "pbkdf2"

    def __init__(self, rounds: int = PBKDF2_ROUNDS) -> None:
        """Set iteration count used for new hashes."""
        self._rounds = rounds

    def hash(self, password: str) -> str:
        """Hash password using PBKDF2-HMAC-SHA256 with random salt."""
        salt = os.urandom(16)
        derived = hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), salt, self._rounds
        )
        return (
            f"{PBKDF2_ALGORITHM}${self._rounds}$"
            f"{_b64url_encode(salt)}${_b64url_encode(derived)}"
        )

    def verify(self, password: str, stored_hash: str) -> bool:
        """Verify password against a stored PBKDF2 hash."""
        try:
            algo, rounds_raw, salt_b64, digest_b64 = stored_hash.split("$", 3)
            if algo != PBKDF2_ALGORITHM:
                return False
            rounds = int(rounds_raw)
            salt = _b64url_decode(salt_b64)
            expected = _b64url_decode(digest_b64)
        except (ValueError, TypeError):
            return False

        derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
        return hmac.compare_digest(derived, expected)


def build_password_hasher(name: str) -> PasswordHasher:
    """Return hasher strategy registered under ``name``."""
    normalized = (name or "").strip().lower()
    if normalized == BcryptPasswordHasher.name:
        return BcryptPasswordHasher()
    if normalized == Pbkdf2PasswordHasher.name:
        return Pbkdf2PasswordHasher()
    raise ValueError(f"Unknown password hash scheme: {name!r}")


def build_signed_token(payload: dict[str, Any], secret_key: str) -> str:
    """Create compact HS256 JWT."""
    if not secret_key:
        raise ValueError("Signing secret is empty")
    header = {"alg": TOKEN_ALGORITHM, "typ": "JWT"}
    header_part = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_part = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    signature = hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()
    signature_part = _b64url_encode(signature)
    return f"{header_part}.{payload_part}.{signature_part}"


def decode_signed_token(
    token: str, secret_key: str, *, now: int | None = None
) -> dict[str, Any]:
    """Decode and verify compact HS256 JWT, raising ``ValueError`` on failure."""
    if not secret_key:
        raise ValueError("Signing secret is empty")
    try:
        header_part, payload_part, signature_part = token.split(".")
    except (AttributeError, ValueError) as exc:
        raise ValueError("Malformed token") from exc

    try:
        header = json.loads(_b64url_decode(header_part).decode("utf-8"))
        got_sig = _b64url_decode(signature_part)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValueError("Malformed token") from exc
    if not isinstance(header, dict) or header.get("alg") != TOKEN_ALGORITHM:
        raise ValueError("Unsupported token algorithm")

    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    expected_sig = hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()
    if not hmac.compare_digest(expected_sig, got_sig):
        raise ValueError("Invalid token signature")

    try:
        payload = json.loads(_b64url_decode(payload_part).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValueError("Invalid token payload") from exc
    if not isinstance(payload, dict):
        raise ValueError("Invalid token payload")

    try:
        exp = int(payload["exp"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError("Token has no expiry") from exc
    current = int(time.time()) if now is None else now
    if exp <= current:
        raise ValueError("Token expired")

    return payload
