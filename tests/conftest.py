import time
from collections.abc import Callable
from pathlib import Path

import pytest
from gemini_proxy.core.config.app_config import AppConfig, BackendConfig
from gemini_proxy.core.persistence import CredentialStore, ProxyState, StoredCredential

TEST_CODE_ASSIST_URL = "https://code-assist.test"
TEST_ACCESS_TOKEN = "ya29.test-access-token"
TEST_REFRESH_TOKEN = "1//test-refresh-token"


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Configuration pointing at a temporary credential directory and a fake backend."""
    return AppConfig(
        config_dir=tmp_path,
        backend=BackendConfig(api_url=TEST_CODE_ASSIST_URL),
    )


@pytest.fixture
def make_credential() -> Callable[..., StoredCredential]:
    def _make(
        expires_in: int = 3600,
        access_token: str = TEST_ACCESS_TOKEN,
        refresh_token: str = TEST_REFRESH_TOKEN,
        email: str | None = "user@example.com",
    ) -> StoredCredential:
        return StoredCredential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=int(time.time()) + expires_in,
            email=email,
        )

    return _make


@pytest.fixture
def empty_store(app_config: AppConfig) -> CredentialStore:
    store = CredentialStore(app_config.credentials_file)
    store.load()
    return store


@pytest.fixture
def credential_store(
    app_config: AppConfig, make_credential: Callable[..., StoredCredential]
) -> CredentialStore:
    """A store holding a valid credential and a resolved project."""
    store = CredentialStore(app_config.credentials_file)
    store.save(ProxyState(auth=make_credential(), project_id="managed-project-123"))
    return store
