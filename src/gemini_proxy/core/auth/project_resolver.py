"""
Backend project discovery.

Code Assist calls must carry a project id. Users on the free tier have a
Google-managed project that ``loadCodeAssist`` reports; until discovery
succeeds the sentinel ``"default"`` is used.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from gemini_proxy.constants import (
    CLIENT_METADATA,
    CODE_ASSIST_API_VERSION,
    CODE_ASSIST_ENDPOINT,
    DEFAULT_PROJECT_ID,
)
from gemini_proxy.connectors.code_assist import code_assist_headers
from gemini_proxy.core.common.exceptions import (
    CredentialPersistenceError,
    ResolutionError,
)
from gemini_proxy.core.persistence import CredentialStore

logger = logging.getLogger(__name__)


def extract_project_id(payload: Any) -> str | None:
    """Pull the project id out of a ``loadCodeAssist`` response.

    ``cloudaicompanionProject`` is either an object with an ``id`` or the id
    itself as a bare string.
    """
    if not isinstance(payload, dict):
        return None
    project = payload.get("cloudaicompanionProject")
    if isinstance(project, dict):
        project = project.get("id")
    if isinstance(project, str) and project:
        return project
    return None


class ProjectResolver:
    """Resolves and caches the Code Assist project id."""

    def __init__(
        self,
        store: CredentialStore,
        client: httpx.AsyncClient,
        base_url: str = CODE_ASSIST_ENDPOINT,
    ) -> None:
        self.store = store
        self.client = client
        self.base_url = base_url.rstrip("/")

    @property
    def load_url(self) -> str:
        return f"{self.base_url}/{CODE_ASSIST_API_VERSION}:loadCodeAssist"

    async def resolve_project(self, access_token: str, cached_id: str | None) -> str:
        """Return the project id to use, discovering it when necessary.

        A cached id other than the sentinel is returned as-is. Discovery
        failures are logged and the cached value (or the sentinel) is
        returned unchanged; a discovered id is persisted.
        """
        if cached_id and cached_id != DEFAULT_PROJECT_ID:
            return cached_id

        fallback = cached_id or DEFAULT_PROJECT_ID
        try:
            project_id = await self._load_code_assist(access_token)
        except ResolutionError as e:
            logger.warning(
                f"Project discovery failed, using '{fallback}': {e.message}"
            )
            return fallback

        logger.info(f"Discovered Code Assist project: {project_id}")
        try:
            self.store.set_project_id(project_id)
        except CredentialPersistenceError as e:
            logger.warning(f"Could not persist project id {project_id}: {e.message}")
        return project_id

    async def ensure_project(self, access_token: str) -> str:
        """Resolve the project for the stored record, serialized on the store lock."""
        cached_id = self.store.project_id
        if cached_id and cached_id != DEFAULT_PROJECT_ID:
            return cached_id
        async with self.store.lock:
            return await self.resolve_project(access_token, self.store.project_id)

    async def _load_code_assist(self, access_token: str) -> str:
        body = {"metadata": dict(CLIENT_METADATA)}
        try:
            response = await self.client.post(
                self.load_url,
                json=body,
                headers=code_assist_headers(access_token),
            )
        except httpx.RequestError as e:
            raise ResolutionError(f"loadCodeAssist request failed: {e}") from e

        if response.status_code >= 400:
            raise ResolutionError(
                f"loadCodeAssist returned {response.status_code}",
                details={"backend_response": response.text},
            )

        try:
            payload = response.json()
        except json.JSONDecodeError as e:
            raise ResolutionError("loadCodeAssist returned non-JSON body") from e

        project_id = extract_project_id(payload)
        if project_id is None:
            raise ResolutionError(
                "loadCodeAssist response has no cloudaicompanionProject",
                details={"backend_response": payload},
            )
        return project_id
