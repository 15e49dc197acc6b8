from __future__ import annotations

import pytest

from auth_plugin.auth.errors import ConfigurationError
from auth_plugin.core.config import AppConfig, parse_duration


def test_parse_duration_accepts_seconds_and_units() -> None:
    assert parse_duration(None, 900) == 900
    assert parse_duration("", 900) == 900
    assert parse_duration(60, 900) == 60
    assert parse_duration("120", 900) == 120
    assert parse_duration("15m", 0) == 900
    assert parse_duration("12h", 0) == 43200
    assert parse_duration("7d", 0) == 604800


@pytest.mark.parametrize("raw", ["soon", "15 minutes", "-5", "0m", True])
def test_parse_duration_rejects_invalid_values(raw: object) -> None:
    with pytest.raises(ConfigurationError):
        parse_duration(raw, 900)


def test_from_env_defaults_leave_secrets_unset() -> None:
    config = AppConfig.from_env(environ={})

    assert config.jwt.access_secret is None
    assert config.jwt.refresh_secret is None
    assert config.jwt.access_ttl_seconds == 15 * 60
    assert config.jwt.refresh_ttl_seconds == 7 * 24 * 60 * 60
    assert config.jwt.production is False
    assert config.oauth.configured() == {}
    assert config.oauth.fallback_redirect == "/auth/callback"
    assert config.store.backend == "sqlite"


def test_from_env_reads_environment() -> None:
    config = AppConfig.from_env(
        environ={
            "JWT_ACCESS_SECRET": "a",
            "JWT_REFRESH_SECRET": "r",
            "JWT_ACCESS_EXPIRY": "5m",
            "JWT_REFRESH_EXPIRY": "1d",
            "NODE_ENV": "production",
            "GOOGLE_CLIENT_ID": "gid",
            "GOOGLE_CLIENT_SECRET": "gsecret",
            "LOG_LEVEL": "debug",
        }
    )

    assert config.jwt.access_secret == "a"
    assert config.jwt.refresh_secret == "r"
    assert config.jwt.access_ttl_seconds == 300
    assert config.jwt.refresh_ttl_seconds == 86400
    assert config.jwt.production is True
    assert config.oauth.google is not None
    assert config.oauth.google.callback_url == "/api/auth/google/callback"
    assert config.oauth.microsoft is None
    assert config.logging.level == "debug"


def test_explicit_overrides_take_precedence_over_environment() -> None:
    config = AppConfig.from_env(
        overrides={
            "jwt": {"access_secret": "explicit", "production": False},
            "oauth": {
                "linkedin": {
                    "client_id": "lid",
                    "client_secret": "lsecret",
                    "callback_url": "https://app.test/cb",
                },
                "allowed_redirect_origins": ["https://app.test/"],
            },
        },
        environ={
            "JWT_ACCESS_SECRET": "from-env",
            "JWT_REFRESH_SECRET": "refresh-env",
            "NODE_ENV": "production",
            "LINKEDIN_CLIENT_ID": "env-id",
            "LINKEDIN_CLIENT_SECRET": "env-secret",
        },
    )

    assert config.jwt.access_secret == "explicit"
    assert config.jwt.refresh_secret == "refresh-env"
    assert config.jwt.production is False
    assert config.oauth.linkedin is not None
    assert config.oauth.linkedin.client_id == "lid"
    assert config.oauth.linkedin.callback_url == "https://app.test/cb"
    assert config.oauth.allowed_redirect_origins == ("https://app.test",)


def test_provider_without_secret_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        AppConfig.from_env(environ={"MICROSOFT_CLIENT_ID": "mid"})


def test_config_is_immutable() -> None:
    config = AppConfig.from_env(environ={})

    with pytest.raises(AttributeError):
        config.jwt.access_secret = "late"  # type: ignore[misc]
