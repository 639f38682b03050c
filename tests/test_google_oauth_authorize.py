try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import copy

import httpx
import pytest

from app.main import app


class DummyOAuthClient:
    def __init__(self) -> None:
        self.states: list[str] = []
        self.codes: list[str] = []

    def build_authorization_url(self, state: str) -> str:
        self.states.append(state)
        return f"https://oauth.example.com/auth?state={state}"

    async def exchange_authorization_code(self, code: str) -> tuple[str, str, int]:
        self.codes.append(code)
        return ("access-token", "refresh-token", 3600)


class RecordingTokenService:
    def __init__(self) -> None:
        self.stored: list[dict] = []

    def store_tokens(self, **kwargs) -> None:
        self.stored.append(kwargs)


@pytest.fixture()
def oauth_overrides():
    from app import dependencies
    from app.core.config import get_settings

    dummy_client = DummyOAuthClient()
    token_service = RecordingTokenService()
    base_settings = copy.deepcopy(get_settings())
    base_settings.frontend_base_url = None

    overrides = {
        dependencies.get_google_oauth_client: lambda: dummy_client,
        dependencies.get_google_token_service: lambda: token_service,
        dependencies.get_app_settings: lambda: base_settings,
    }

    app.dependency_overrides.update(overrides)

    yield dummy_client, token_service, base_settings

    app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_authorize_returns_json_by_default(oauth_overrides):
    dummy_client, _, _ = oauth_overrides
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get(
            "/api/auth/google/authorize",
            params={"user_id": "abc123"},
        )

    assert response.status_code == 200
    data = response.json()
    assert "authorization_url" in data
    assert data["authorization_url"].startswith("https://")
    assert dummy_client.states


@pytest.mark.anyio
async def test_authorize_redirects_for_html_accept(oauth_overrides):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get(
            "/api/auth/google/authorize",
            params={"user_id": "abc123"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"].startswith(
        "https://oauth.example.com/auth"
    )


@pytest.mark.anyio
async def test_callback_get_seeds_credential_through_token_service(oauth_overrides):
    dummy_client, token_service, _ = oauth_overrides

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        await client.get(
            "/api/auth/google/authorize",
            params={"user_id": "user-1"},
        )

        state = dummy_client.states[-1]
        callback_resp = await client.get(
            "/api/auth/google/callback",
            params={"state": state, "code": "oauth-code"},
        )

    assert callback_resp.status_code == 200
    data = callback_resp.json()
    assert data["status"] == "connected"
    assert dummy_client.codes[-1] == "oauth-code"
    assert len(token_service.stored) == 1
    stored = token_service.stored[0]
    assert stored["user_id"] == "user-1"
    assert stored["access_token"] == "access-token"
    assert stored["refresh_token"] == "refresh-token"


@pytest.mark.anyio
async def test_callback_rejects_tampered_state(oauth_overrides):
    _, token_service, _ = oauth_overrides

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.post(
            "/api/auth/google/callback",
            json={"state": "dGFtcGVyZWQtc3RhdGUtdmFsdWUtdGhhdC1pcy1sb25nLWVub3VnaA==", "code": "c"},
        )

    assert response.status_code == 400
    assert token_service.stored == []


@pytest.mark.anyio
async def test_callback_get_redirects_when_frontend_available(oauth_overrides):
    dummy_client, _, settings = oauth_overrides
    settings.frontend_base_url = "https://app.example.com/oauth/success"

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        await client.get(
            "/api/auth/google/authorize",
            params={"user_id": "user-2"},
        )

        state = dummy_client.states[-1]
        callback_resp = await client.get(
            "/api/auth/google/callback",
            params={"state": state, "code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert callback_resp.status_code == 307
    assert (
        callback_resp.headers["location"]
        == "https://app.example.com/oauth/success"
    )


@pytest.mark.anyio
async def test_token_handoff_stores_pair(oauth_overrides):
    _, token_service, _ = oauth_overrides

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        ok = await client.post(
            "/api/auth/google/tokens",
            json={
                "user_id": "user-3",
                "access_token": "a",
                "refresh_token": "r",
                "expires_at": "2030-01-01T00:00:00Z",
            },
        )
        missing = await client.post(
            "/api/auth/google/tokens",
            json={"user_id": "user-3", "access_token": "a"},
        )

    assert ok.status_code == 200
    assert token_service.stored[0]["user_id"] == "user-3"
    assert missing.status_code == 422
