"""Application configuration resolved from explicit values and environment."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from auth_plugin.auth.errors import ConfigurationError

DEFAULT_ACCESS_TTL_SECONDS = 15 * 60
DEFAULT_REFRESH_TTL_SECONDS = 7 * 24 * 60 * 60
DEFAULT_FALLBACK_REDIRECT = "/auth/callback"
DEFAULT_CALLBACK_PATH = "/api/auth/{provider}/callback"
PROVIDER_NAMES = ("google", "microsoft", "linkedin")

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 60 * 60, "d": 24 * 60 * 60}


def parse_duration(value: Any, default: int) -> int:
    """Parse ``900``, ``"900"``, ``"15m"``, ``"7d"`` style durations to seconds."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        if value <= 0:
            raise ConfigurationError(f"Duration must be positive: {value!r}")
        return value
    match = _DURATION_RE.match(str(value).lower())
    if not match:
        raise ConfigurationError(f"Invalid duration: {value!r}")
    seconds = int(match.group(1)) * _DURATION_UNITS[match.group(2)]
    if seconds <= 0:
        raise ConfigurationError(f"Duration must be positive: {value!r}")
    return seconds


def _first(*values: Any) -> Any:
    """Return first value that is neither ``None`` nor an empty string."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value.strip() if isinstance(value, str) else value
    return None


@dataclass(frozen=True)
class JwtConfig:
    """Token signing configuration."""

    access_secret: str | None
    refresh_secret: str | None
    access_ttl_seconds: int = DEFAULT_ACCESS_TTL_SECONDS
    refresh_ttl_seconds: int = DEFAULT_REFRESH_TTL_SECONDS
    issuer: str = "auth-plugin"
    production: bool = False


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Client credentials for one identity provider."""

    client_id: str
    client_secret: str
    callback_url: str


@dataclass(frozen=True)
class OAuthConfig:
    """Identity provider settings and handshake policy."""

    google: OAuthProviderConfig | None = None
    microsoft: OAuthProviderConfig | None = None
    linkedin: OAuthProviderConfig | None = None
    fallback_redirect: str = DEFAULT_FALLBACK_REDIRECT
    handshake_ttl_seconds: int = 600
    allowed_redirect_origins: tuple[str, ...] = ()

    def configured(self) -> dict[str, OAuthProviderConfig]:
        """Return provider configs keyed by provider name."""
        result: dict[str, OAuthProviderConfig] = {}
        for name in PROVIDER_NAMES:
            provider = getattr(self, name)
            if provider is not None:
                result[name] = provider
        return result


@dataclass(frozen=True)
class StoreConfig:
    """Credential store backend selection."""

    backend: str = "sqlite"
    sqlite_path: str = "runtime/auth.db"
    mongo_uri: str = ""
    mongo_db: str = "auth_plugin"
    password_hash: str = "bcrypt"


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str = "INFO"
    format: str = "json"


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    jwt: JwtConfig
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @staticmethod
    def from_env(
        overrides: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "AppConfig":
        """Build config from explicit overrides, falling back to environment.

        ``overrides`` mirrors the config tree, e.g.
        ``{"jwt": {"access_secret": "..."}, "oauth": {"google": {...}}}``.
        An explicit value always wins over the matching environment variable.
        """
        env = os.environ if environ is None else environ
        explicit = dict(overrides or {})
        jwt_in = dict(explicit.get("jwt") or {})
        oauth_in = dict(explicit.get("oauth") or {})
        store_in = dict(explicit.get("store") or {})
        logging_in = dict(explicit.get("logging") or {})

        production = jwt_in.get("production")
        if production is None:
            runtime_env = _first(env.get("APP_ENV"), env.get("NODE_ENV")) or ""
            production = str(runtime_env).lower() == "production"

        jwt = JwtConfig(
            access_secret=_first(jwt_in.get("access_secret"), env.get("JWT_ACCESS_SECRET")),
            refresh_secret=_first(
                jwt_in.get("refresh_secret"), env.get("JWT_REFRESH_SECRET")
            ),
            access_ttl_seconds=parse_duration(
                _first(jwt_in.get("access_expiry"), env.get("JWT_ACCESS_EXPIRY")),
                DEFAULT_ACCESS_TTL_SECONDS,
            ),
            refresh_ttl_seconds=parse_duration(
                _first(jwt_in.get("refresh_expiry"), env.get("JWT_REFRESH_EXPIRY")),
                DEFAULT_REFRESH_TTL_SECONDS,
            ),
            issuer=_first(jwt_in.get("issuer"), env.get("JWT_ISSUER")) or "auth-plugin",
            production=bool(production),
        )

        providers: dict[str, OAuthProviderConfig | None] = {}
        for name in PROVIDER_NAMES:
            providers[name] = _provider_config(name, oauth_in.get(name), env)

        oauth = OAuthConfig(
            google=providers["google"],
            microsoft=providers["microsoft"],
            linkedin=providers["linkedin"],
            fallback_redirect=_first(
                oauth_in.get("fallback_redirect"), env.get("OAUTH_FALLBACK_REDIRECT")
            )
            or DEFAULT_FALLBACK_REDIRECT,
            handshake_ttl_seconds=parse_duration(
                _first(oauth_in.get("handshake_ttl"), env.get("OAUTH_HANDSHAKE_TTL")),
                600,
            ),
            allowed_redirect_origins=_origins(
                _first(
                    oauth_in.get("allowed_redirect_origins"),
                    env.get("OAUTH_ALLOWED_REDIRECT_ORIGINS"),
                )
            ),
        )

        store = StoreConfig(
            backend=str(
                _first(store_in.get("backend"), env.get("AUTH_DB_BACKEND")) or "sqlite"
            ).lower(),
            sqlite_path=_first(store_in.get("sqlite_path"), env.get("AUTH_SQLITE_PATH"))
            or "runtime/auth.db",
            mongo_uri=_first(store_in.get("mongo_uri"), env.get("MONGODB_URI")) or "",
            mongo_db=_first(store_in.get("mongo_db"), env.get("MONGODB_DB"))
            or "auth_plugin",
            password_hash=str(
                _first(store_in.get("password_hash"), env.get("AUTH_PASSWORD_HASH"))
                or "bcrypt"
            ).lower(),
        )

        log_level = _first(logging_in.get("level"), env.get("LOG_LEVEL")) or "INFO"

        return AppConfig(
            jwt=jwt,
            oauth=oauth,
            store=store,
            logging=LoggingConfig(
                level=log_level,
                format=str(
                    _first(logging_in.get("format"), env.get("LOG_FORMAT")) or "json"
                ).lower(),
            ),
        )


def _provider_config(
    name: str, explicit: Mapping[str, Any] | None, env: Mapping[str, str]
) -> OAuthProviderConfig | None:
    """Resolve one provider's credentials; ``None`` when no client id is known."""
    explicit = dict(explicit or {})
    prefix = name.upper()
    client_id = _first(explicit.get("client_id"), env.get(f"{prefix}_CLIENT_ID"))
    if not client_id:
        return None
    client_secret = _first(
        explicit.get("client_secret"), env.get(f"{prefix}_CLIENT_SECRET")
    )
    if not client_secret:
        raise ConfigurationError(f"{prefix}_CLIENT_SECRET is required for {name}")
    callback_url = _first(
        explicit.get("callback_url"), env.get(f"{prefix}_CALLBACK_URL")
    ) or DEFAULT_CALLBACK_PATH.format(provider=name)
    return OAuthProviderConfig(
        client_id=str(client_id),
        client_secret=str(client_secret),
        callback_url=str(callback_url),
    )


def _origins(value: Any) -> tuple[str, ...]:
    """Parse comma-separated string or sequence of origins."""
    if not value:
        return ()
    items = value.split(",") if isinstance(value, str) else list(value)
    return tuple(str(item).strip().rstrip("/") for item in items if str(item).strip())
