"""
Application factory for creating the FastAPI application.

The credential store is loaded when the app is built; the shared
``httpx.AsyncClient`` and the services that use it live for the duration of
the application lifespan.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI

from gemini_proxy import __version__
from gemini_proxy.connectors.code_assist import CodeAssistConnector
from gemini_proxy.core.app.controllers import register_routes
from gemini_proxy.core.app.error_handlers import configure_exception_handlers
from gemini_proxy.core.app.middleware_config import configure_middleware
from gemini_proxy.core.auth.project_resolver import ProjectResolver
from gemini_proxy.core.auth.token_manager import TokenManager
from gemini_proxy.core.config.app_config import AppConfig, BackendConfig
from gemini_proxy.core.persistence import CredentialStore

logger = logging.getLogger(__name__)


def create_http_client(backend: BackendConfig) -> httpx.AsyncClient:
    """Create the shared outbound HTTP client."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=backend.connect_timeout,
            read=backend.read_timeout,
            write=60.0,
            pool=60.0,
        ),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )


def attach_services(
    app: FastAPI, config: AppConfig, store: CredentialStore, client: httpx.AsyncClient
) -> None:
    """Place the request-path services on ``app.state``."""
    app.state.http_client = client
    app.state.token_manager = TokenManager(store, client, config.oauth)
    app.state.project_resolver = ProjectResolver(
        store, client, base_url=config.backend.api_url
    )
    app.state.connector = CodeAssistConnector(client, base_url=config.backend.api_url)


def build_app(
    config: AppConfig | dict[str, Any] | None = None,
    *,
    store: CredentialStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: The application configuration (AppConfig object or dict)
        store: Credential store to use; loaded from ``config.credentials_file``
            when omitted
        http_client: Outbound client to use; when omitted one is created at
            startup and closed at shutdown

    Returns:
        The FastAPI ASGI application instance.
    """
    if config is None:
        config = AppConfig.from_env()
    elif isinstance(config, dict):
        config = AppConfig(**config)

    if store is None:
        store = CredentialStore(config.credentials_file)
        store.load()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = http_client or create_http_client(config.backend)
        attach_services(app, config, store, client)
        logger.info("Application startup complete")
        try:
            yield
        finally:
            logger.info("Shutting down application")
            if http_client is None:
                await client.aclose()

    app = FastAPI(
        title="Gemini Code Assist Proxy",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.app_config = config
    app.state.credential_store = store

    configure_middleware(app, config)
    configure_exception_handlers(app)
    register_routes(app)
    return app
