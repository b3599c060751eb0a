"""
End-to-end tests of the HTTP surface with the Code Assist backend mocked out.
"""

import json
from collections.abc import Callable

import httpx
import pytest
from fastapi.testclient import TestClient
from gemini_proxy.constants import GOOGLE_TOKEN_URL, SUPPORTED_MODELS
from gemini_proxy.core.app.application_factory import build_app
from gemini_proxy.core.app.middleware.logging_middleware import LoggingMiddleware
from gemini_proxy.core.config.app_config import AppConfig
from gemini_proxy.core.persistence import CredentialStore, StoredCredential
from pytest_httpx import HTTPXMock, IteratorStream
from structlog.testing import capture_logs

BASE_URL = "https://code-assist.test"
UNARY_URL = f"{BASE_URL}/v1internal:generateContent"
STREAM_URL = f"{BASE_URL}/v1internal:streamGenerateContent?alt=sse"

CHAT_BODY = {
    "model": "gemini-2.5-flash",
    "messages": [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Hello"},
    ],
}


@pytest.fixture
def client(app_config: AppConfig, credential_store: CredentialStore):
    with TestClient(build_app(app_config, store=credential_store)) as test_client:
        yield test_client


def _sse_frame(text: str) -> bytes:
    payload = {"response": {"candidates": [{"content": {"parts": [{"text": text}]}}]}}
    return f"data: {json.dumps(payload)}\n\n".encode()


def test_health_reports_authenticated(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "authenticated": True}


def test_health_without_credential(app_config: AppConfig, empty_store: CredentialStore) -> None:
    with TestClient(build_app(app_config, store=empty_store)) as client:
        response = client.get("/health")

    assert response.json() == {"status": "ok", "authenticated": False}


def test_models_catalog(client: TestClient) -> None:
    response = client.get("/v1/models")

    assert response.status_code == 200
    body = response.json()
    assert body["object"] == "list"
    assert [m["id"] for m in body["data"]] == list(SUPPORTED_MODELS)
    assert all(m["object"] == "model" and m["owned_by"] == "google" for m in body["data"])


def test_unary_chat_completion(client: TestClient, httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        url=UNARY_URL,
        method="POST",
        json={
            "response": {
                "candidates": [
                    {
                        "content": {"role": "model", "parts": [{"text": "Hi!"}]},
                        "finishReason": "STOP",
                    }
                ],
                "usageMetadata": {
                    "promptTokenCount": 4,
                    "candidatesTokenCount": 2,
                    "totalTokenCount": 6,
                },
            }
        },
    )

    response = client.post("/v1/chat/completions", json=CHAT_BODY)

    assert response.status_code == 200
    body = response.json()
    assert body["object"] == "chat.completion"
    assert body["id"].startswith("chatcmpl-")
    assert body["model"] == "gemini-2.5-flash"
    assert body["choices"] == [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "Hi!"},
            "finish_reason": "STOP",
        }
    ]
    assert body["usage"] == {"prompt_tokens": 4, "completion_tokens": 2, "total_tokens": 6}

    sent = json.loads(httpx_mock.get_request().content)
    assert sent["project"] == "managed-project-123"
    # system message is not forwarded
    assert sent["request"]["contents"] == [{"role": "user", "parts": [{"text": "Hello"}]}]


def test_streaming_chat_completion(client: TestClient, httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        url=STREAM_URL,
        method="POST",
        stream=IteratorStream([_sse_frame("Hel"), _sse_frame("lo"), b"data: [DONE]\n\n"]),
    )

    response = client.post("/v1/chat/completions", json={**CHAT_BODY, "stream": True})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"

    events = [
        json.loads(block[len("data: ") :])
        for block in response.text.split("\n\n")
        if block
    ]
    assert [e["choices"][0]["delta"]["content"] for e in events] == ["Hel", "lo"]
    assert len({e["id"] for e in events}) == 1
    assert "[DONE]" not in response.text


def test_expired_token_is_refreshed_before_call(
    app_config: AppConfig,
    credential_store: CredentialStore,
    make_credential: Callable[..., StoredCredential],
    httpx_mock: HTTPXMock,
) -> None:
    credential_store.set_credential(make_credential(expires_in=-60))
    httpx_mock.add_response(
        url=GOOGLE_TOKEN_URL, json={"access_token": "ya29.fresh-token", "expires_in": 3600}
    )
    httpx_mock.add_response(
        url=UNARY_URL,
        json={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]},
    )

    with TestClient(build_app(app_config, store=credential_store)) as client:
        response = client.post("/v1/chat/completions", json=CHAT_BODY)

    assert response.status_code == 200
    backend_request = httpx_mock.get_request(url=UNARY_URL)
    assert backend_request.headers["Authorization"] == "Bearer ya29.fresh-token"
    assert credential_store.credential.access_token == "ya29.fresh-token"


def test_unauthenticated_chat_is_server_error(
    app_config: AppConfig, empty_store: CredentialStore
) -> None:
    with TestClient(build_app(app_config, store=empty_store)) as client:
        response = client.post("/v1/chat/completions", json=CHAT_BODY)

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "no_credential"
    assert error["type"] == "NoCredentialError"
    assert "gemini-proxy login" in error["message"]


def test_invalid_body_is_bad_request(client: TestClient) -> None:
    response = client.post("/v1/chat/completions", json={"model": "gemini-2.5-flash"})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["type"] == "invalid_request_error"
    assert any(e["loc"][-1] == "messages" for e in error["details"]["errors"])


def test_backend_error_is_bad_gateway(client: TestClient, httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=UNARY_URL, status_code=400, text="Invalid model")

    response = client.post("/v1/chat/completions", json=CHAT_BODY)

    assert response.status_code == 502
    error = response.json()["error"]
    assert error["type"] == "BackendError"
    assert error["details"]["backend_response"] == "Invalid model"


def test_streaming_backend_error_is_bad_gateway(
    client: TestClient, httpx_mock: HTTPXMock
) -> None:
    httpx_mock.add_response(url=STREAM_URL, status_code=500, text="boom")

    response = client.post("/v1/chat/completions", json={**CHAT_BODY, "stream": True})

    assert response.status_code == 502
    assert response.json()["error"]["details"]["backend_response"] == "boom"


def test_unreachable_backend_is_bad_gateway(
    client: TestClient, httpx_mock: HTTPXMock
) -> None:
    httpx_mock.add_exception(httpx.ConnectError("refused"), url=UNARY_URL)

    response = client.post("/v1/chat/completions", json=CHAT_BODY)

    assert response.status_code == 502
    assert response.json()["error"]["type"] == "BackendConnectionError"


def test_cors_headers_are_permissive(client: TestClient) -> None:
    response = client.get("/health", headers={"Origin": "http://example.com"})

    assert response.headers["access-control-allow-origin"] in {"*", "http://example.com"}


def test_cors_preflight(client: TestClient) -> None:
    response = client.options(
        "/v1/chat/completions",
        headers={
            "Origin": "http://example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type,authorization",
        },
    )

    assert response.status_code == 200
    assert "POST" in response.headers["access-control-allow-methods"]


def test_request_logging_middleware(
    app_config: AppConfig, credential_store: CredentialStore
) -> None:
    config = app_config.model_copy(
        update={
            "logging": app_config.logging.model_copy(
                update={"request_logging": True, "response_logging": True}
            )
        }
    )
    app = build_app(config, store=credential_store)
    assert any(m.cls is LoggingMiddleware for m in app.user_middleware)

    with capture_logs() as logs, TestClient(app) as client:
        client.get("/health")

    assert logs[0]["event"] == "Request received"
    assert (logs[0]["method"], logs[0]["path"]) == ("GET", "/health")
    assert logs[1]["event"] == "Response sent"
    assert logs[1]["status_code"] == 200
