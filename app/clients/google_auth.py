"""
Google OAuth utilities.

These helpers manage the user consent flow and wrap the token refresh and
token introspection endpoints as typed calls. Upstream failures are mapped to
a small set of exceptions so callers never parse Google's error payloads.
"""

from __future__ import annotations

import base64
import hmac
import json
import logging
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from fastapi import HTTPException, status

from app.core.config import GoogleSettings, OAuthSettings

logger = logging.getLogger(__name__)

_REJECTED_GRANT_ERRORS = frozenset({"invalid_grant", "unauthorized_client"})


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed OAuth state.",
            ) from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid OAuth state signature.",
            )
        return json.loads(serialized)


class OAuthTokenExchangeError(Exception):
    """Raised when an authorization code cannot be exchanged for tokens."""


class ProviderUnavailableError(Exception):
    """Raised on transport failures, timeouts and upstream server errors."""


class RefreshRejectedError(Exception):
    """Raised when Google rejects a refresh token (revoked or expired consent)."""


class TokenRejectedError(Exception):
    """Raised when introspection reports the access token as invalid."""


@dataclass(frozen=True)
class RefreshedToken:
    """Result of a refresh_token grant."""

    access_token: str
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None


@dataclass(frozen=True)
class TokenInfo:
    """Subset of the tokeninfo response the service relies on."""

    scopes: frozenset[str]
    email: Optional[str]
    expires_in: Optional[int]


def _error_code(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return ""
    if isinstance(payload, dict):
        return str(payload.get("error") or "")
    return ""


def _optional_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class GoogleOAuthClient:
    """Build Google authorization URLs, exchange codes, refresh and inspect tokens."""

    AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"

    def __init__(
        self,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._google = google_settings
        self._oauth = oauth_settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._oauth.provider_timeout_seconds,
            transport=self._transport,
        )

    def build_authorization_url(self, state: str, access_type: str = "offline") -> str:
        """Construct the Google OAuth consent URL."""
        params = {
            "client_id": self._google.client_id,
            "redirect_uri": str(self._google.redirect_uri),
            "response_type": "code",
            "scope": " ".join(self._oauth.scopes),
            "access_type": access_type,
            "include_granted_scopes": "true",
            "prompt": "consent",
            "state": state,
        }
        query = urlencode(params)
        return f"{self.AUTH_BASE_URL}?{query}"

    async def exchange_authorization_code(self, code: str) -> Tuple[str, str, int]:
        """
        Exchange an authorization code for tokens.

        Returns a tuple of (access_token, refresh_token, expires_in_seconds).
        """
        payload = {
            "code": code,
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "redirect_uri": str(self._google.redirect_uri),
            "grant_type": "authorization_code",
        }

        try:
            async with self._client() as client:
                response = await client.post(self.TOKEN_URL, data=payload)
        except httpx.HTTPError as exc:
            raise OAuthTokenExchangeError(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            raise OAuthTokenExchangeError(response.text)

        token_payload = response.json()
        access_token = token_payload.get("access_token")
        refresh_token = token_payload.get("refresh_token")
        expires_in = _optional_int(token_payload.get("expires_in"))

        if not access_token or not refresh_token:
            raise OAuthTokenExchangeError("Incomplete token payload returned from Google.")

        return (
            access_token,
            refresh_token,
            expires_in or self._oauth.default_token_lifetime_seconds,
        )

    async def refresh_token(self, refresh_token: str) -> RefreshedToken:
        """Mint a new access token from a stored refresh token."""
        payload = {
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            async with self._client() as client:
                response = await client.post(self.TOKEN_URL, data=payload)
        except httpx.TimeoutException as exc:
            raise ProviderUnavailableError("Token refresh timed out.") from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            error_code = _error_code(response)
            if (
                response.status_code
                in (status.HTTP_400_BAD_REQUEST, status.HTTP_401_UNAUTHORIZED)
                and error_code in _REJECTED_GRANT_ERRORS
            ):
                raise RefreshRejectedError(error_code)
            raise ProviderUnavailableError(
                f"Token endpoint returned {response.status_code} ({error_code or 'no error code'})."
            )

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise ProviderUnavailableError("Token endpoint returned invalid JSON.") from exc

        access_token = token_payload.get("access_token")
        if not access_token:
            raise ProviderUnavailableError("Incomplete refresh payload returned from Google.")

        return RefreshedToken(
            access_token=access_token,
            expires_in=_optional_int(token_payload.get("expires_in")),
            refresh_token=token_payload.get("refresh_token") or None,
        )

    async def introspect(self, access_token: str) -> TokenInfo:
        """Ask Google which scopes and account an access token carries."""
        try:
            async with self._client() as client:
                response = await client.post(
                    self.TOKENINFO_URL, data={"access_token": access_token}
                )
        except httpx.TimeoutException as exc:
            raise ProviderUnavailableError("Token introspection timed out.") from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(f"Tokeninfo endpoint unreachable: {exc}") from exc

        if response.status_code in (
            status.HTTP_400_BAD_REQUEST,
            status.HTTP_401_UNAUTHORIZED,
        ):
            raise TokenRejectedError(_error_code(response) or "invalid_token")
        if response.status_code != status.HTTP_200_OK:
            raise ProviderUnavailableError(
                f"Tokeninfo endpoint returned {response.status_code}."
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderUnavailableError("Tokeninfo endpoint returned invalid JSON.") from exc

        scopes = frozenset(str(data.get("scope") or "").split())
        return TokenInfo(
            scopes=scopes,
            email=data.get("email"),
            expires_in=_optional_int(data.get("expires_in")),
        )


__all__ = [
    "GoogleOAuthClient",
    "OAuthStateEncoder",
    "OAuthTokenExchangeError",
    "ProviderUnavailableError",
    "RefreshRejectedError",
    "RefreshedToken",
    "TokenInfo",
    "TokenRejectedError",
]
