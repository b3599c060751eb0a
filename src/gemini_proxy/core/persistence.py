"""
On-disk credential store.

The persisted record is a single JSON document::

    {"auth": {"accessToken": ..., "refreshToken": ..., "expiresAt": ..., "email": ...},
     "projectId": "..."}

``CredentialStore`` owns the in-memory copy and the file. Every mutation goes
through :meth:`CredentialStore.save`; components that perform
read-modify-write cycles hold :attr:`CredentialStore.lock` while doing so.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from pathlib import Path

from pydantic import Field, ValidationError

from gemini_proxy.constants import DEFAULT_PROJECT_ID, TOKEN_EXPIRY_BUFFER_SECONDS
from gemini_proxy.core.common.exceptions import CredentialPersistenceError
from gemini_proxy.core.interfaces.model_bases import DomainModel

logger = logging.getLogger(__name__)


class StoredCredential(DomainModel):
    """OAuth credential for the Code Assist backend."""

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    expires_at: int = Field(alias="expiresAt")
    email: str | None = None

    def seconds_until_expiry(self, now: float | None = None) -> float:
        current = time.time() if now is None else now
        return self.expires_at - current

    def is_expired(
        self,
        now: float | None = None,
        buffer_seconds: int = TOKEN_EXPIRY_BUFFER_SECONDS,
    ) -> bool:
        """True once ``now`` is within ``buffer_seconds`` of ``expires_at``."""
        return self.seconds_until_expiry(now) <= buffer_seconds


class ProxyState(DomainModel):
    """The persisted record: credential plus resolved project id."""

    auth: StoredCredential | None = None
    project_id: str | None = Field(None, alias="projectId")

    @property
    def effective_project_id(self) -> str:
        return self.project_id or DEFAULT_PROJECT_ID


class CredentialStore:
    """Single owner of the persisted :class:`ProxyState`."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.lock = asyncio.Lock()
        self._state = ProxyState()

    @property
    def state(self) -> ProxyState:
        return self._state

    @property
    def credential(self) -> StoredCredential | None:
        return self._state.auth

    @property
    def project_id(self) -> str | None:
        return self._state.project_id

    def has_credential(self) -> bool:
        return self._state.auth is not None

    def load(self) -> ProxyState:
        """Load the record from disk; a missing file yields an empty record."""
        if not self.path.is_file():
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"No credential file at {self.path}; starting empty.")
            self._state = ProxyState()
            return self._state

        try:
            raw = self.path.read_text(encoding="utf-8")
            self._state = ProxyState.model_validate(json.loads(raw))
        except json.JSONDecodeError as e:
            logger.error(
                "Failed to parse credential file %s as JSON: %s",
                self.path,
                e,
                exc_info=True,
            )
            raise CredentialPersistenceError(
                f"Failed to parse credential file {self.path.name} as JSON."
            ) from e
        except ValidationError as e:
            raise CredentialPersistenceError(
                f"Credential file {self.path.name} has an invalid structure.",
                details={"errors": e.errors(include_url=False)},
            ) from e
        except OSError as e:
            raise CredentialPersistenceError(
                f"Failed to read credential file at {self.path}: {e}"
            ) from e
        return self._state

    def save(self, state: ProxyState | None = None) -> None:
        """Write the record to disk atomically, replacing the in-memory copy."""
        if state is not None:
            self._state = state

        payload = self._state.model_dump_json(
            by_alias=True, exclude_none=True, indent=2
        )
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Error saving credentials to {self.path}: {e}", exc_info=True)
            raise CredentialPersistenceError(
                f"Failed to write credential file at {self.path}: {e}"
            ) from e

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Credentials saved to {self.path}")

    def set_credential(self, credential: StoredCredential | None) -> None:
        self.save(self._state.model_copy(update={"auth": credential}))

    def set_project_id(self, project_id: str | None) -> None:
        self.save(self._state.model_copy(update={"project_id": project_id}))
