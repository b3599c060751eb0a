"""
Access-token lifecycle for the stored Code Assist credential.

``TokenManager`` hands out a credential that is valid for at least the expiry
buffer, refreshing it through the Google token endpoint when needed and
persisting the result through the :class:`CredentialStore`.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from gemini_proxy.constants import (
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    GOOGLE_TOKEN_URL,
    TOKEN_EXPIRY_BUFFER_SECONDS,
)
from gemini_proxy.core.common.exceptions import NoCredentialError, TokenRefreshError
from gemini_proxy.core.config.app_config import OAuthClientConfig
from gemini_proxy.core.persistence import CredentialStore, StoredCredential

logger = logging.getLogger(__name__)


def credential_from_token_response(
    payload: dict[str, Any],
    *,
    previous: StoredCredential | None = None,
    email: str | None = None,
    now: float | None = None,
) -> StoredCredential:
    """Build a credential from a Google token-endpoint response.

    The refresh token and e-mail of ``previous`` are kept unless the response
    (or ``email``) supplies new ones.
    """
    access_token = payload.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        raise TokenRefreshError(
            "Token endpoint response did not contain an access_token",
            details={"provider_response": payload},
        )

    refresh_token = payload.get("refresh_token") or (
        previous.refresh_token if previous else None
    )
    if not refresh_token:
        raise TokenRefreshError(
            "Token endpoint response did not contain a refresh_token",
            details={"provider_response": payload},
        )

    expires_in = payload.get("expires_in")
    if not isinstance(expires_in, int | float):
        expires_in = DEFAULT_TOKEN_LIFETIME_SECONDS

    issued_at = time.time() if now is None else now
    return StoredCredential(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=int(issued_at + expires_in),
        email=email if email is not None else (previous.email if previous else None),
    )


class TokenManager:
    """Keeps the stored access token fresh."""

    def __init__(
        self,
        store: CredentialStore,
        client: httpx.AsyncClient,
        oauth: OAuthClientConfig | None = None,
        *,
        token_url: str = GOOGLE_TOKEN_URL,
        buffer_seconds: int = TOKEN_EXPIRY_BUFFER_SECONDS,
    ) -> None:
        self.store = store
        self.client = client
        self.oauth = oauth or OAuthClientConfig()
        self.token_url = token_url
        self.buffer_seconds = buffer_seconds

    def _needs_refresh(self, credential: StoredCredential) -> bool:
        return credential.is_expired(buffer_seconds=self.buffer_seconds)

    async def ensure_valid_token(self) -> StoredCredential:
        """Return a credential that is not within the expiry buffer.

        Raises:
            NoCredentialError: if nobody has logged in.
            TokenRefreshError: if the refresh grant fails.
            CredentialPersistenceError: if the refreshed credential cannot be saved.
        """
        credential = self.store.credential
        if credential is None:
            raise NoCredentialError()
        if not self._needs_refresh(credential):
            return credential

        async with self.store.lock:
            # Re-check after acquiring lock in case another coroutine refreshed it
            credential = self.store.credential
            if credential is None:
                raise NoCredentialError()
            if not self._needs_refresh(credential):
                return credential

            logger.info("Access token expired or near expiry, attempting to refresh...")
            refreshed = await self.refresh(credential)
            self.store.set_credential(refreshed)
            logger.info("Successfully refreshed access token.")
            return refreshed

    async def refresh(self, credential: StoredCredential) -> StoredCredential:
        """Exchange the refresh token for a new access token (no persistence)."""
        data = {
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh_token,
            "client_id": self.oauth.client_id,
            "client_secret": self.oauth.client_secret,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        try:
            response = await self.client.post(self.token_url, data=data, headers=headers)
        except httpx.RequestError as e:
            if logger.isEnabledFor(logging.ERROR):
                logger.error(f"Network error during token refresh: {e}")
            raise TokenRefreshError(
                f"Network error during token refresh: {e}",
                details={"error": str(e)},
            ) from e

        if response.status_code >= 400:
            logger.error(
                f"HTTP error during token refresh: {response.status_code} - {response.text}"
            )
            raise TokenRefreshError(
                f"Token refresh failed with status {response.status_code}",
                details={
                    "status_code": response.status_code,
                    "provider_response": _error_detail(response),
                },
            )

        try:
            payload = response.json()
        except json.JSONDecodeError as e:
            if logger.isEnabledFor(logging.ERROR):
                logger.error(f"Malformed JSON response during token refresh: {e}")
            raise TokenRefreshError(
                "Malformed JSON response during token refresh",
                details={"provider_response": response.text},
            ) from e
        if not isinstance(payload, dict):
            raise TokenRefreshError(
                "Unexpected token refresh response",
                details={"provider_response": payload},
            )

        return credential_from_token_response(payload, previous=credential)


def _error_detail(response: httpx.Response) -> Any:
    """Return the provider's error body as JSON when possible, else raw text."""
    try:
        return response.json()
    except json.JSONDecodeError:
        return response.text
