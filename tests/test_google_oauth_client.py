from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from app.clients.google_auth import (
    GoogleOAuthClient,
    OAuthTokenExchangeError,
    ProviderUnavailableError,
    RefreshRejectedError,
    TokenRejectedError,
)
from app.core.config import GoogleSettings, OAuthSettings


def _client(handler) -> GoogleOAuthClient:
    google = GoogleSettings(
        GOOGLE_CLIENT_ID="client",
        GOOGLE_CLIENT_SECRET="secret",
        GOOGLE_REDIRECT_URI="https://example.com/callback",
    )
    return GoogleOAuthClient(google, OAuthSettings(), transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_refresh_posts_refresh_grant_and_parses_payload() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append({k: v[0] for k, v in parse_qs(request.content.decode()).items()})
        return httpx.Response(200, json={"access_token": "new-access", "expires_in": 3599})

    refreshed = await _client(handler).refresh_token("refresh-1")

    assert refreshed.access_token == "new-access"
    assert refreshed.expires_in == 3599
    assert refreshed.refresh_token is None
    assert seen[0]["grant_type"] == "refresh_token"
    assert seen[0]["refresh_token"] == "refresh-1"
    assert seen[0]["client_id"] == "client"


@pytest.mark.asyncio
async def test_refresh_returns_rotated_token_and_tolerates_missing_lifetime() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "a", "refresh_token": "rotated"})

    refreshed = await _client(handler).refresh_token("r")

    assert refreshed.expires_in is None
    assert refreshed.refresh_token == "rotated"


@pytest.mark.asyncio
async def test_invalid_grant_maps_to_refresh_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
        )

    with pytest.raises(RefreshRejectedError):
        await _client(handler).refresh_token("revoked")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="unavailable"),
        httpx.Response(429, json={"error": "rate_limited"}),
        httpx.Response(401, json={"error": "invalid_client"}),
        httpx.Response(200, json={"token_type": "Bearer"}),
    ],
)
async def test_other_refresh_failures_map_to_provider_unavailable(response) -> None:
    with pytest.raises(ProviderUnavailableError):
        await _client(lambda request: response).refresh_token("r")


@pytest.mark.asyncio
async def test_refresh_timeout_is_provider_unavailable_not_reauth() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ProviderUnavailableError):
        await _client(handler).refresh_token("r")


@pytest.mark.asyncio
async def test_introspect_parses_scopes_and_email() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/tokeninfo"
        return httpx.Response(
            200,
            json={
                "scope": "https://www.googleapis.com/auth/gmail.send openid",
                "email": "user@example.com",
                "expires_in": "3210",
            },
        )

    info = await _client(handler).introspect("access")

    assert "https://www.googleapis.com/auth/gmail.send" in info.scopes
    assert info.email == "user@example.com"
    assert info.expires_in == 3210


@pytest.mark.asyncio
async def test_introspect_rejected_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_token"})

    with pytest.raises(TokenRejectedError):
        await _client(handler).introspect("expired")


@pytest.mark.asyncio
async def test_exchange_code_requires_refresh_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "a", "expires_in": 3600})

    with pytest.raises(OAuthTokenExchangeError):
        await _client(handler).exchange_authorization_code("code")


def test_authorization_url_requests_offline_gmail_access() -> None:
    url = _client(lambda request: httpx.Response(200)).build_authorization_url(state="s")

    query = parse_qs(url.split("?", 1)[1])
    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert "https://www.googleapis.com/auth/gmail.send" in query["scope"][0].split()
