"""
Controllers package for application endpoints.

This package contains controllers that handle HTTP endpoints in the application.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from gemini_proxy.core.app.controllers.chat_controller import router as chat_router
from gemini_proxy.core.app.controllers.health_controller import router as health_router
from gemini_proxy.core.app.controllers.models_controller import router as models_router

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI) -> None:
    """Register application routes with the FastAPI app.

    Args:
        app: The FastAPI application instance
    """
    app.include_router(health_router)
    app.include_router(models_router)
    app.include_router(chat_router)

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Routes registered successfully")
