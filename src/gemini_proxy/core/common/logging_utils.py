"""
Logging utilities for the proxy.

This module provides:
- Root logger configuration for the CLI and server
- Redaction of OAuth tokens and client secrets from log records
- Structured loggers for request/response logging
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

import structlog

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s:%(lineno)d %(message)s"

# Default set of fields to redact
DEFAULT_REDACTED_FIELDS = {
    "access_token",
    "accesstoken",
    "refresh_token",
    "refreshtoken",
    "client_secret",
    "authorization",
}

BEARER_TOKEN_PATTERN = re.compile(r"Bearer\s+([a-zA-Z0-9._~+/-]+=*)")
# Google OAuth access tokens ("ya29.") and refresh tokens ("1//")
GOOGLE_ACCESS_TOKEN_PATTERN = re.compile(r"\bya29\.[A-Za-z0-9._-]{10,}")
GOOGLE_REFRESH_TOKEN_PATTERN = re.compile(r"\b1//[A-Za-z0-9._-]{10,}")


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger.

    Args:
        name: Optional logger name

    Returns:
        A structured logger
    """
    return structlog.get_logger(name)  # type: ignore


def redact(value: str, mask: str = "***") -> str:
    """Redact a sensitive value, keeping its first and last two characters."""
    if not value:
        return value
    if len(value) > 6:
        return f"{value[0:2]}{mask}{value[-2:]}"
    return mask


def redact_dict(
    data: dict[str, Any], redacted_fields: set[str] | None = None, mask: str = "***"
) -> dict[str, Any]:
    """Redact sensitive fields in a dictionary.

    Args:
        data: The dictionary to redact
        redacted_fields: The (lower-case) field names to redact
        mask: The mask to use

    Returns:
        The redacted dictionary
    """
    if redacted_fields is None:
        redacted_fields = DEFAULT_REDACTED_FIELDS

    result: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower() in redacted_fields:
            result[key] = redact(value, mask) if isinstance(value, str) else mask
        elif isinstance(value, dict):
            result[key] = redact_dict(value, redacted_fields, mask)
        elif isinstance(value, list):
            result[key] = [
                (
                    redact_dict(item, redacted_fields, mask)
                    if isinstance(item, dict)
                    else item
                )
                for item in value
            ]
        else:
            result[key] = value
    return result


class ApiKeyRedactionFilter(logging.Filter):
    """Logging filter that redacts secrets from log records.

    Sanitizes ``record.msg`` and ``record.args`` (strings or containers of
    strings), replacing explicit secrets and anything shaped like a bearer
    or Google OAuth token with a mask.
    """

    def __init__(self, secrets: Iterable[str] | None = None, mask: str = "***") -> None:
        super().__init__()
        self.mask = mask
        self.patterns: list[re.Pattern[str]] = []

        keys = {k for k in (secrets or []) if k}
        if keys:
            # prefer longer matches
            escaped = sorted((re.escape(k) for k in keys), key=len, reverse=True)
            self.patterns.append(re.compile("|".join(escaped)))

        self.patterns.append(BEARER_TOKEN_PATTERN)
        self.patterns.append(GOOGLE_ACCESS_TOKEN_PATTERN)
        self.patterns.append(GOOGLE_REFRESH_TOKEN_PATTERN)

    def _sanitize(self, obj: object) -> object:
        """Recursively sanitize strings inside common containers."""
        if isinstance(obj, str):
            s = obj
            for pat in self.patterns:
                if pat is BEARER_TOKEN_PATTERN:
                    s = pat.sub(f"Bearer {self.mask}", s)
                else:
                    s = pat.sub(self.mask, s)
            return s
        if isinstance(obj, dict):
            return {k: self._sanitize(v) for k, v in obj.items()}
        if isinstance(obj, list | tuple):
            return type(obj)(self._sanitize(v) for v in obj)
        return obj

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if isinstance(record.msg, str):
            record.msg = self._sanitize(record.msg)  # type: ignore[assignment]

        if record.args:
            if isinstance(record.args, dict):
                record.args = self._sanitize(record.args)  # type: ignore[assignment]
            elif isinstance(record.args, tuple):
                record.args = tuple(self._sanitize(a) for a in record.args)

        for attr in ("exc_text", "stack_info"):
            val = getattr(record, attr, None)
            if isinstance(val, str):
                setattr(record, attr, self._sanitize(val))
        return True


def install_api_key_redaction_filter(
    secrets: Iterable[str] | None, mask: str = "***"
) -> ApiKeyRedactionFilter:
    """Install the redaction filter on the root logger and its handlers.

    Safe to call multiple times; each call adds a filter covering ``secrets``.
    """
    root = logging.getLogger()
    filter_instance = ApiKeyRedactionFilter(secrets, mask=mask)
    root.addFilter(filter_instance)
    for handler in list(root.handlers):
        handler.addFilter(filter_instance)
    return filter_instance


def configure_structlog() -> None:
    """Route structlog through the standard library logging handlers."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(
                key_order=["event", "logger", "level"]
            ),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_logging(
    level: int | str = logging.INFO,
    log_file: str | None = None,
    *,
    secrets: Iterable[str] | None = None,
    log_format: str | None = None,
) -> None:
    """Configure root logging for the CLI and the server.

    Args:
        level: Logging level (name or number)
        log_file: Optional file to mirror log output to
        secrets: Explicit values (client secret, tokens) to redact
        log_format: Optional log format string
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = logging.Formatter(log_format or DEFAULT_LOG_FORMAT)
    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # httpx logs full request URLs at INFO
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

    install_api_key_redaction_filter(secrets)
    configure_structlog()
