"""Identity provider adapters for Google, Microsoft and LinkedIn.

Each adapter runs the authorization-code exchange, fetches the provider's
user profile and projects it into the canonical ``OAuthProfile`` consumed by
``CredentialStore.find_or_create``. Projections never raise on a missing
optional attribute; only a missing provider id or email is fatal.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping
from urllib.parse import urlencode

import requests

from auth_plugin.auth.errors import OAuthError
from auth_plugin.auth.models import OAuthProfile, User
from auth_plugin.auth.repository import CredentialStore
from auth_plugin.core.config import OAuthConfig, OAuthProviderConfig

LOGGER = logging.getLogger(__name__)

ProfileProjector = Callable[[Mapping[str, Any]], OAuthProfile]


def _text(value: Any) -> str | None:
    """Return stripped string or ``None`` for empty/non-string values."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _nested(payload: Mapping[str, Any], *path: str) -> Any:
    """Walk nested mappings, returning ``None`` at the first missing key."""
    current: Any = payload
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _first_entry(payload: Mapping[str, Any], key: str, field: str = "value") -> Any:
    """Return ``payload[key][0][field]`` when every level exists."""
    entries = payload.get(key)
    if not isinstance(entries, list) or not entries:
        return None
    head = entries[0]
    if isinstance(head, Mapping):
        return head.get(field)
    return None


def _require(provider: str, provider_id: Any, email: Any) -> tuple[str, str]:
    pid = _text(provider_id)
    mail = _text(email)
    if not pid:
        raise OAuthError(f"{provider} profile has no id")
    if not mail:
        raise OAuthError(f"{provider} profile has no email")
    return pid, mail


def project_google_profile(payload: Mapping[str, Any]) -> OAuthProfile:
    """Project Google OpenID userinfo (or People-style profile) payload."""
    provider_id, email = _require(
        "google",
        payload.get("sub") or payload.get("id"),
        payload.get("email") or _first_entry(payload, "emails"),
    )
    return OAuthProfile(
        provider="google",
        id=provider_id,
        email=email,
        firstname=_text(payload.get("given_name") or _nested(payload, "name", "givenName")),
        surname=_text(payload.get("family_name") or _nested(payload, "name", "familyName")),
        avatar=_text(payload.get("picture") or _first_entry(payload, "photos")),
    )


def project_microsoft_profile(payload: Mapping[str, Any]) -> OAuthProfile:
    """Project Microsoft Graph ``/me`` payload; Graph returns no photo URL."""
    provider_id, email = _require(
        "microsoft",
        payload.get("id"),
        payload.get("mail")
        or payload.get("userPrincipalName")
        or _first_entry(payload, "emails"),
    )
    return OAuthProfile(
        provider="microsoft",
        id=provider_id,
        email=email,
        firstname=_text(payload.get("givenName") or _nested(payload, "name", "givenName")),
        surname=_text(payload.get("surname") or _nested(payload, "name", "familyName")),
        avatar=None,
    )


def _linkedin_legacy_picture(payload: Mapping[str, Any]) -> Any:
    """Read first picture identifier from the v2 ``profilePicture`` projection."""
    elements = _nested(payload, "profilePicture", "displayImage~", "elements")
    if not isinstance(elements, list) or not elements:
        return None
    head = elements[0] if isinstance(elements[0], Mapping) else {}
    return _first_entry(head, "identifiers", "identifier")


def project_linkedin_profile(payload: Mapping[str, Any]) -> OAuthProfile:
    """Project LinkedIn OpenID userinfo or legacy lite-profile payload."""
    provider_id, email = _require(
        "linkedin",
        payload.get("sub") or payload.get("id"),
        payload.get("email")
        or payload.get("emailAddress")
        or _first_entry(payload, "emails"),
    )
    return OAuthProfile(
        provider="linkedin",
        id=provider_id,
        email=email,
        firstname=_text(payload.get("given_name") or payload.get("localizedFirstName")),
        surname=_text(payload.get("family_name") or payload.get("localizedLastName")),
        avatar=_text(
            payload.get("picture")
            or _first_entry(payload, "photos")
            or _linkedin_legacy_picture(payload)
        ),
    )


@dataclass(frozen=True)
class ProviderEndpoints:
    """OAuth endpoints and scopes of one provider."""

    authorize_url: str
    token_url: str
    userinfo_url: str
    scopes: tuple[str, ...]


GOOGLE_ENDPOINTS = ProviderEndpoints(
    authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
    token_url="https://oauth2.googleapis.com/token",
    userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
    scopes=("openid", "email", "profile"),
)
MICROSOFT_ENDPOINTS = ProviderEndpoints(
    authorize_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
    token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
    userinfo_url="https://graph.microsoft.com/v1.0/me",
    scopes=("openid", "email", "profile", "User.Read"),
)
LINKEDIN_ENDPOINTS = ProviderEndpoints(
    authorize_url="https://www.linkedin.com/oauth/v2/authorization",
    token_url="https://www.linkedin.com/oauth/v2/accessToken",
    userinfo_url="https://api.linkedin.com/v2/userinfo",
    scopes=("openid", "profile", "email"),
)

PROVIDER_DEFINITIONS: dict[str, tuple[ProviderEndpoints, ProfileProjector]] = {
    "google": (GOOGLE_ENDPOINTS, project_google_profile),
    "microsoft": (MICROSOFT_ENDPOINTS, project_microsoft_profile),
    "linkedin": (LINKEDIN_ENDPOINTS, project_linkedin_profile),
}


class OAuthProvider:
    """Authorization-code client for one identity provider."""

    def __init__(
        self,
        name: str,
        config: OAuthProviderConfig,
        endpoints: ProviderEndpoints,
        projector: ProfileProjector,
        *,
        session: requests.Session | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        """Store client credentials and HTTP session."""
        self.name = name
        self.config = config
        self._endpoints = endpoints
        self._projector = projector
        self._session = session or requests.Session()
        self._timeout = timeout_seconds

    def authorization_url(self, *, state: str, redirect_uri: str) -> str:
        """Return provider consent URL for this handshake."""
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.config.client_id,
                "redirect_uri": redirect_uri,
                "scope": " ".join(self._endpoints.scopes),
                "state": state,
            }
        )
        return f"{self._endpoints.authorize_url}?{query}"

    def _exchange_code(self, code: str, redirect_uri: str) -> str:
        """Exchange authorization code for provider access token."""
        response = self._session.post(
            self._endpoints.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            },
            headers={"Accept": "application/json"},
            timeout=self._timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise OAuthError(f"{self.name} returned an invalid token response")
        access_token = payload.get("access_token")
        if not access_token:
            raise OAuthError(f"{self.name} token response has no access_token")
        return str(access_token)

    def _fetch_userinfo(self, access_token: str) -> dict[str, Any]:
        """Fetch provider-native profile payload."""
        response = self._session.get(
            self._endpoints.userinfo_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=self._timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise OAuthError(f"{self.name} returned an invalid profile")
        return payload

    def _load_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        try:
            access_token = self._exchange_code(code, redirect_uri)
            payload = self._fetch_userinfo(access_token)
        except (requests.RequestException, ValueError) as exc:
            raise OAuthError(f"{self.name} exchange failed") from exc
        return self._projector(payload)

    async def fetch_profile(self, code: str, redirect_uri: str) -> OAuthProfile:
        """Run code exchange and profile projection off the event loop."""
        return await asyncio.to_thread(self._load_profile, code, redirect_uri)

    async def complete(
        self, code: str, redirect_uri: str, store: CredentialStore
    ) -> User:
        """Finish handshake: exchange, project and find-or-create the user."""
        profile = await self.fetch_profile(code, redirect_uri)
        return await store.find_or_create(profile)


class ProviderRegistry(Mapping[str, OAuthProvider]):
    """Configured providers keyed by name."""

    def __init__(self, providers: Mapping[str, OAuthProvider] | None = None) -> None:
        """Store provider adapters."""
        self._providers = dict(providers or {})

    @classmethod
    def from_config(
        cls, config: OAuthConfig, *, session: requests.Session | None = None
    ) -> "ProviderRegistry":
        """Build adapters for every provider with client credentials."""
        providers: dict[str, OAuthProvider] = {}
        for name, provider_config in config.configured().items():
            endpoints, projector = PROVIDER_DEFINITIONS[name]
            providers[name] = OAuthProvider(
                name, provider_config, endpoints, projector, session=session
            )
        if providers:
            LOGGER.info("oauth_providers_configured: %s", ", ".join(sorted(providers)))
        return cls(providers)

    def __getitem__(self, name: str) -> OAuthProvider:
        return self._providers[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)
