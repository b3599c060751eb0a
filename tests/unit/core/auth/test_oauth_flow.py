import asyncio
import socket
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from gemini_proxy.constants import (
    GEMINI_REDIRECT_URI,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
)
from gemini_proxy.core.auth import oauth_flow
from gemini_proxy.core.common.exceptions import LoginError
from gemini_proxy.core.config.app_config import OAuthClientConfig
from gemini_proxy.core.persistence import CredentialStore
from pytest_httpx import HTTPXMock

OAUTH = OAuthClientConfig(client_id="client-id", client_secret="client-secret")


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def _callback(app, query: str) -> httpx.Response:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://localhost") as client:
        return await client.get(f"/oauth2callback?{query}")


def test_authorization_url() -> None:
    url = oauth_flow.build_authorization_url("client-id", "state-123")

    parsed = urlparse(url)
    params = parse_qs(parsed.query)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
        "https://accounts.google.com/o/oauth2/v2/auth"
    )
    assert params["client_id"] == ["client-id"]
    assert params["redirect_uri"] == [GEMINI_REDIRECT_URI]
    assert params["response_type"] == ["code"]
    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent"]
    assert params["state"] == ["state-123"]
    assert params["scope"][0].split() == [
        "https://www.googleapis.com/auth/cloud-platform",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/userinfo.profile",
    ]


class TestCallbackApp:
    @pytest.mark.asyncio
    async def test_code_resolves_future(self) -> None:
        result = asyncio.get_running_loop().create_future()
        app = oauth_flow.create_callback_app("expected", result)

        response = await _callback(app, "code=abc&state=expected")

        assert response.status_code == 200
        assert "Authentication successful" in response.text
        assert result.result() == "abc"

    @pytest.mark.asyncio
    async def test_state_mismatch_fails(self) -> None:
        result = asyncio.get_running_loop().create_future()
        app = oauth_flow.create_callback_app("expected", result)

        response = await _callback(app, "code=abc&state=forged")

        assert response.status_code == 400
        with pytest.raises(LoginError, match="state mismatch"):
            result.result()

    @pytest.mark.asyncio
    async def test_provider_error_fails(self) -> None:
        result = asyncio.get_running_loop().create_future()
        app = oauth_flow.create_callback_app("expected", result)

        response = await _callback(app, "error=access_denied&state=expected")

        assert response.status_code == 400
        assert "access_denied" in response.text
        with pytest.raises(LoginError):
            result.result()

    @pytest.mark.asyncio
    async def test_missing_code_fails(self) -> None:
        result = asyncio.get_running_loop().create_future()
        app = oauth_flow.create_callback_app("expected", result)

        response = await _callback(app, "state=expected")

        assert response.status_code == 400
        assert isinstance(result.exception(), LoginError)


@pytest.mark.asyncio
async def test_listener_returns_code_from_callback() -> None:
    port = _free_port()
    waiter = asyncio.create_task(
        oauth_flow.wait_for_authorization_code(
            "expected", host="127.0.0.1", port=port, timeout=10
        )
    )

    async with httpx.AsyncClient() as client:
        for _ in range(100):
            try:
                await client.get(
                    f"http://127.0.0.1:{port}/oauth2callback",
                    params={"code": "the-code", "state": "expected"},
                )
                break
            except httpx.ConnectError:
                await asyncio.sleep(0.05)

    assert await waiter == "the-code"


@pytest.mark.asyncio
async def test_listener_times_out() -> None:
    with pytest.raises(LoginError, match="Timed out"):
        await oauth_flow.wait_for_authorization_code(
            "expected", host="127.0.0.1", port=_free_port(), timeout=0.2
        )


@pytest.mark.asyncio
async def test_listener_port_in_use() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen()
        port = busy.getsockname()[1]

        with pytest.raises(LoginError, match="Could not listen"):
            await oauth_flow.wait_for_authorization_code(
                "expected", host="127.0.0.1", port=port, timeout=1
            )


@pytest.mark.asyncio
async def test_exchange_code_posts_authorization_grant(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        url=GOOGLE_TOKEN_URL,
        method="POST",
        json={"access_token": "ya29.a", "refresh_token": "1//r", "expires_in": 3599},
    )

    async with httpx.AsyncClient() as client:
        payload = await oauth_flow.exchange_code(client, "auth-code", OAUTH)

    assert payload["access_token"] == "ya29.a"
    form = parse_qs(httpx_mock.get_request().content.decode())
    assert form["grant_type"] == ["authorization_code"]
    assert form["code"] == ["auth-code"]
    assert form["redirect_uri"] == [GEMINI_REDIRECT_URI]
    assert form["client_secret"] == ["client-secret"]


@pytest.mark.asyncio
async def test_exchange_code_rejected(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=GOOGLE_TOKEN_URL, status_code=400, json={"error": "invalid_grant"})

    async with httpx.AsyncClient() as client:
        with pytest.raises(LoginError):
            await oauth_flow.exchange_code(client, "bad", OAUTH)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response_kwargs",
    [{"status_code": 401}, {"json": {"id": "123"}}, {"text": "not json"}],
)
async def test_user_email_falls_back_to_unknown(
    httpx_mock: HTTPXMock, response_kwargs: dict
) -> None:
    httpx_mock.add_response(url=GOOGLE_USERINFO_URL, **response_kwargs)

    async with httpx.AsyncClient() as client:
        assert await oauth_flow.fetch_user_email(client, "ya29.a") == "Unknown"


@pytest.mark.asyncio
async def test_login_stores_credential(
    empty_store: CredentialStore,
    httpx_mock: HTTPXMock,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def fake_wait(state: str, **kwargs) -> str:
        assert state
        return "auth-code"

    monkeypatch.setattr(oauth_flow, "wait_for_authorization_code", fake_wait)
    httpx_mock.add_response(
        url=GOOGLE_TOKEN_URL,
        json={"access_token": "ya29.login", "refresh_token": "1//login", "expires_in": 3600},
    )
    httpx_mock.add_response(url=GOOGLE_USERINFO_URL, json={"email": "dev@example.com"})
    messages: list[str] = []

    async with httpx.AsyncClient() as client:
        credential = await oauth_flow.login(
            empty_store, client, OAUTH, open_browser=False, notify=messages.append
        )

    assert credential.email == "dev@example.com"
    assert messages[1].startswith("https://accounts.google.com/o/oauth2/v2/auth?")

    reloaded = CredentialStore(empty_store.path)
    reloaded.load()
    assert reloaded.credential == credential


@pytest.mark.asyncio
async def test_login_without_refresh_token_fails(
    empty_store: CredentialStore,
    httpx_mock: HTTPXMock,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def fake_wait(state: str, **kwargs) -> str:
        return "auth-code"

    monkeypatch.setattr(oauth_flow, "wait_for_authorization_code", fake_wait)
    httpx_mock.add_response(url=GOOGLE_TOKEN_URL, json={"access_token": "ya29.only"})

    async with httpx.AsyncClient() as client:
        with pytest.raises(LoginError):
            await oauth_flow.login(
                empty_store, client, OAUTH, open_browser=False, notify=lambda _: None
            )

    assert empty_store.has_credential() is False
