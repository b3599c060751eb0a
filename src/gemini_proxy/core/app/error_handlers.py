from __future__ import annotations

import logging
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException

from gemini_proxy.core.common.exceptions import ProxyError

logger = logging.getLogger(__name__)

HTTP_400_BAD_REQUEST_MESSAGE = "Invalid request"
HTTP_500_INTERNAL_SERVER_ERROR_MESSAGE = "Internal server error"


def error_body(
    message: str,
    error_type: str,
    *,
    code: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build an OpenAI-style error body."""
    error: dict[str, Any] = {"message": message, "type": error_type}
    if code:
        error["code"] = code
    if details:
        error["details"] = details
    return {"error": error}


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> Response:
    """Handle request body validation errors.

    Args:
        request: The request that caused the exception
        exc: The validation exception

    Returns:
        JSON response with error details
    """
    if logger.isEnabledFor(logging.WARNING):
        logger.warning(f"Validation error: {exc.errors()}")

    error_details: list[dict[str, Any]] = [
        {
            "loc": list(error.get("loc", [])),
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body(
            HTTP_400_BAD_REQUEST_MESSAGE,
            "invalid_request_error",
            details={"errors": error_details},
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    if logger.isEnabledFor(logging.WARNING):
        logger.warning(f"HTTP error {exc.status_code}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), "HttpError"),
        headers=getattr(exc, "headers", None),
    )


async def proxy_exception_handler(request: Request, exc: ProxyError) -> Response:
    """Handle proxy domain exceptions, preserving their status code and details."""
    if logger.isEnabledFor(logging.WARNING):
        logger.warning(f"{exc.error_type} ({exc.status_code}): {exc.message}")
    if exc.details and logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Error details: {exc.details}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def transport_exception_handler(
    request: Request, exc: httpx.RequestError
) -> Response:
    """Handle outbound transport failures that escaped the connector."""
    if logger.isEnabledFor(logging.ERROR):
        logger.error(f"Upstream request failed: {exc}")

    return JSONResponse(
        status_code=502,
        content=error_body(
            f"Upstream request failed: {exc}",
            "BackendConnectionError",
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle all other exceptions."""
    logger.exception("Unhandled exception", exc_info=exc)

    return JSONResponse(
        status_code=500,
        content=error_body(HTTP_500_INTERNAL_SERVER_ERROR_MESSAGE, "InternalError"),
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers for the FastAPI application.

    Args:
        app: The FastAPI application
    """
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ProxyError, proxy_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(httpx.RequestError, transport_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, general_exception_handler)
