from __future__ import annotations

import logging

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from gemini_proxy.core.app.middleware.logging_middleware import LoggingMiddleware
from gemini_proxy.core.config.app_config import AppConfig

logger = logging.getLogger(__name__)


def configure_middleware(app: FastAPI, config: AppConfig) -> None:
    """Configure middleware for the application.

    Args:
        app: The FastAPI application
        config: The application configuration
    """
    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allows all origins
        allow_credentials=True,
        allow_methods=["*"],  # Allows all methods
        allow_headers=["*"],  # Allows all headers
    )

    if config.logging.request_logging or config.logging.response_logging:
        app.add_middleware(
            LoggingMiddleware,
            log_requests=config.logging.request_logging,
            log_responses=config.logging.response_logging,
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Request/response logging middleware enabled")
