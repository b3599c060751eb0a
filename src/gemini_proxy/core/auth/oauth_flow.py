"""
Interactive Google OAuth login.

The flow opens the consent page, receives the authorization code on a
one-shot local listener (``http://localhost:8085/oauth2callback``), exchanges
it for tokens and stores the resulting credential.
"""

from __future__ import annotations

import asyncio
import json
import secrets
import socket
import webbrowser
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from gemini_proxy.constants import (
    GEMINI_REDIRECT_HOST,
    GEMINI_REDIRECT_PORT,
    GEMINI_REDIRECT_URI,
    GEMINI_SCOPES,
    GOOGLE_AUTH_URL,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
)
from gemini_proxy.core.auth.token_manager import credential_from_token_response
from gemini_proxy.core.common.exceptions import LoginError, TokenRefreshError
from gemini_proxy.core.common.logging_utils import get_logger
from gemini_proxy.core.config.app_config import OAuthClientConfig
from gemini_proxy.core.persistence import CredentialStore, StoredCredential

logger = get_logger(__name__)

UNKNOWN_EMAIL = "Unknown"
DEFAULT_LOGIN_TIMEOUT_SECONDS = 300.0

_SUCCESS_PAGE = (
    "<html><body><h1>Authentication successful</h1>"
    "<p>You can close this window and return to the terminal.</p></body></html>"
)
_FAILURE_PAGE = (
    "<html><body><h1>Authentication failed</h1><p>{reason}</p></body></html>"
)


def build_authorization_url(
    client_id: str, state: str, redirect_uri: str = GEMINI_REDIRECT_URI
) -> str:
    query = urlencode(
        {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(GEMINI_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
    )
    return f"{GOOGLE_AUTH_URL}?{query}"


def create_callback_app(expected_state: str, result: asyncio.Future[str]) -> FastAPI:
    """Build the one-route app that receives the OAuth redirect.

    The first callback resolves ``result`` with the authorization code, or
    fails it with :class:`LoginError` on a provider error or state mismatch.
    """
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/oauth2callback")
    async def oauth2callback(request: Request) -> HTMLResponse:
        params = request.query_params
        error: LoginError | None = None
        code = params.get("code")

        if params.get("error"):
            error = LoginError(
                f"Authorization was denied: {params['error']}",
                details={"error": params["error"]},
            )
        elif params.get("state") != expected_state:
            error = LoginError("OAuth state mismatch; possible CSRF attempt.")
        elif not code:
            error = LoginError("No authorization code in callback.")

        if not result.done():
            if error is not None:
                result.set_exception(error)
            else:
                result.set_result(code)

        if error is not None:
            return HTMLResponse(
                _FAILURE_PAGE.format(reason=error.message), status_code=400
            )
        return HTMLResponse(_SUCCESS_PAGE)

    return app


async def wait_for_authorization_code(
    expected_state: str,
    *,
    host: str = GEMINI_REDIRECT_HOST,
    port: int = GEMINI_REDIRECT_PORT,
    timeout: float = DEFAULT_LOGIN_TIMEOUT_SECONDS,
) -> str:
    """Serve the callback listener until one callback arrives or ``timeout`` passes.

    The listener is torn down however the wait ends.
    """
    loop = asyncio.get_running_loop()
    result: asyncio.Future[str] = loop.create_future()

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise LoginError(
            f"Could not listen on {host}:{port} for the OAuth callback: {e}"
        ) from e

    server = uvicorn.Server(
        uvicorn.Config(
            create_callback_app(expected_state, result),
            log_level="warning",
            lifespan="off",
        )
    )
    serve_task = asyncio.create_task(server.serve(sockets=[sock]))
    try:
        done, _ = await asyncio.wait(
            {result, serve_task},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if result in done:
            return result.result()
        if serve_task in done:
            raise LoginError("OAuth callback listener stopped unexpectedly.")
        raise LoginError(f"Timed out after {timeout:.0f}s waiting for the OAuth callback.")
    finally:
        server.should_exit = True
        await serve_task
        sock.close()
        if not result.done():
            result.cancel()


async def exchange_code(
    client: httpx.AsyncClient,
    code: str,
    oauth: OAuthClientConfig,
    *,
    redirect_uri: str = GEMINI_REDIRECT_URI,
    token_url: str = GOOGLE_TOKEN_URL,
) -> dict[str, Any]:
    """Exchange an authorization code for a token response."""
    try:
        response = await client.post(
            token_url,
            data={
                "code": code,
                "client_id": oauth.client_id,
                "client_secret": oauth.client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except httpx.RequestError as e:
        raise LoginError(f"Token exchange request failed: {e}") from e

    if response.status_code >= 400:
        logger.error(
            "Token exchange failed",
            status_code=response.status_code,
            body=response.text,
        )
        raise LoginError(
            f"Token exchange failed with status {response.status_code}",
            details={"provider_response": response.text},
        )
    try:
        payload = response.json()
    except json.JSONDecodeError as e:
        raise LoginError("Token exchange returned a non-JSON body") from e
    if not isinstance(payload, dict):
        raise LoginError("Token exchange returned an unexpected body")
    return payload


async def fetch_user_email(
    client: httpx.AsyncClient,
    access_token: str,
    *,
    userinfo_url: str = GOOGLE_USERINFO_URL,
) -> str:
    """Return the account e-mail, or ``"Unknown"`` if it cannot be fetched."""
    try:
        response = await client.get(
            userinfo_url, headers={"Authorization": f"Bearer {access_token}"}
        )
    except httpx.RequestError as e:
        logger.warning("User info request failed", error=str(e))
        return UNKNOWN_EMAIL

    if response.status_code >= 400:
        logger.warning("User info request rejected", status_code=response.status_code)
        return UNKNOWN_EMAIL
    try:
        email = response.json().get("email")
    except (json.JSONDecodeError, AttributeError):
        return UNKNOWN_EMAIL
    return email if isinstance(email, str) and email else UNKNOWN_EMAIL


async def login(
    store: CredentialStore,
    client: httpx.AsyncClient,
    oauth: OAuthClientConfig | None = None,
    *,
    open_browser: bool = True,
    timeout: float = DEFAULT_LOGIN_TIMEOUT_SECONDS,
    notify: Callable[[str], None] = print,
) -> StoredCredential:
    """Run the interactive login and persist the resulting credential."""
    oauth = oauth or OAuthClientConfig()
    state = secrets.token_urlsafe(32)
    auth_url = build_authorization_url(oauth.client_id, state)

    notify("Open the following URL in your browser to authorize access:")
    notify(auth_url)
    if open_browser and not webbrowser.open(auth_url):
        logger.info("Could not open a browser automatically")

    code = await wait_for_authorization_code(state, timeout=timeout)
    logger.info("Authorization code received, exchanging for tokens")

    payload = await exchange_code(client, code, oauth)
    try:
        credential = credential_from_token_response(payload)
    except TokenRefreshError as e:
        raise LoginError(e.message, details=e.details) from e

    email = await fetch_user_email(client, credential.access_token)
    credential = credential.model_copy(update={"email": email})

    async with store.lock:
        store.set_credential(credential)
    logger.info("Login complete", email=email)
    return credential
