"""Server lifecycle errors.

Serve-loop failures are routed through the mode policy in the lifecycle layer;
shutdown failures are raised to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class WebServerError(Exception):
    """Base class for all lifecycle errors."""


@dataclass(frozen=True)
class ErrorInfo:
    code: str
    message: str
    detail: Optional[str] = None


class ServeError(WebServerError):
    """Raised when the serve loop stops for any reason other than a shutdown."""

    code = "SERVE_ERROR"

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.info = ErrorInfo(code=self.code, message=message, detail=detail)


class BindError(ServeError):
    """Raised when the listener cannot be bound (address in use, bad port...)."""

    code = "BIND_ERROR"


class ServerClosedError(WebServerError):
    """Raised by listen_and_serve() on a server that has already been shut down."""

    def __init__(self, message: str = "server closed"):
        super().__init__(message)
        self.info = ErrorInfo(code="SERVER_CLOSED", message=message)


class ShutdownError(WebServerError):
    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.info = ErrorInfo(code="SHUTDOWN_ERROR", message=message, detail=detail)
