"""
Common exception classes for the Gemini Code Assist proxy.

This module defines the exception hierarchy used by the credential layer,
the Code Assist connector and the HTTP exception handlers.
"""

from __future__ import annotations


class ProxyError(Exception):
    """Base exception class for all proxy errors."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        *,
        status_code: int | None = None,
        **kwargs,
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error details
            status_code: Optional HTTP status code hint for transport adapters
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.status_code = status_code or 500
        for key, value in (kwargs or {}).items():
            setattr(self, key, value)

    @property
    def error_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict:
        error_dict: dict = {
            "message": self.message,
            "type": self.error_type,
        }
        code = getattr(self, "code", None)
        if code:
            error_dict["code"] = code
        if self.details:
            error_dict["details"] = self.details
        return {"error": error_dict}


class AuthenticationError(ProxyError):
    """Raised when upstream credentials are missing or cannot be refreshed.

    Surfaced to callers as a 5xx: the proxy itself is not authenticated, the
    inbound client did nothing wrong.
    """

    def __init__(
        self,
        message: str = "Not authenticated",
        details: dict | None = None,
        **kwargs,
    ):
        status_code = kwargs.pop("status_code", 500)
        super().__init__(message, details, status_code=status_code, **kwargs)


class NoCredentialError(AuthenticationError):
    """Raised when no stored credential exists."""

    def __init__(
        self,
        message: str = "Not authenticated. Run 'gemini-proxy login' first.",
        details: dict | None = None,
        **kwargs,
    ):
        super().__init__(message, details, code="no_credential", **kwargs)


class TokenRefreshError(AuthenticationError):
    """Raised when the refresh-token exchange fails."""

    def __init__(
        self,
        message: str = "Failed to refresh access token",
        details: dict | None = None,
        **kwargs,
    ):
        super().__init__(message, details, code="refresh_failed", **kwargs)


class CredentialPersistenceError(ProxyError):
    """Raised when credentials cannot be read from or written to disk."""

    def __init__(
        self,
        message: str = "Failed to persist credentials",
        details: dict | None = None,
        **kwargs,
    ):
        super().__init__(message, details, status_code=500, **kwargs)


class ResolutionError(ProxyError):
    """Raised internally when project discovery fails.

    Never leaves the project resolver; discovery is best-effort.
    """

    def __init__(
        self,
        message: str = "Project discovery failed",
        details: dict | None = None,
        **kwargs,
    ):
        super().__init__(message, details, status_code=500, **kwargs)


class BackendError(ProxyError):
    """Raised when a Code Assist call fails."""

    def __init__(
        self,
        message: str = "Backend operation failed",
        backend_name: str | None = None,
        details: dict | None = None,
        **kwargs,
    ):
        # let adapters map to 502 by default unless overridden
        status_code = kwargs.pop("status_code", 502)
        super().__init__(message, details, status_code=status_code, **kwargs)
        self.backend_name = backend_name


class BackendConnectionError(BackendError):
    def __init__(
        self,
        message: str = "Backend connection error",
        details: dict | None = None,
        **kwargs,
    ):
        super().__init__(message, backend_name=None, details=details, **kwargs)


class StreamDecodeError(ProxyError):
    """Raised when a single SSE frame cannot be decoded.

    Callers drop the frame and keep streaming.
    """

    def __init__(
        self, message: str = "Invalid stream frame", details: dict | None = None, **kwargs
    ):
        super().__init__(message, details, status_code=502, **kwargs)


class ConfigurationError(ProxyError):
    """Raised when there's a configuration issue."""

    def __init__(
        self,
        message: str = "Configuration error",
        details: dict | None = None,
        **kwargs,
    ):
        super().__init__(message, details, status_code=400, **kwargs)


class LoginError(ProxyError):
    """Raised when the interactive authorization handshake fails."""

    def __init__(
        self, message: str = "Login failed", details: dict | None = None, **kwargs
    ):
        super().__init__(message, details, status_code=500, **kwargs)
