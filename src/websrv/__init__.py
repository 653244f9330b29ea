"""Lifecycle wrapper around an HTTP server: serve until signalled, then shut down gracefully."""

from .domain.errors import BindError, ServeError, ServerClosedError, ShutdownError, WebServerError
from .domain.models import DEFAULT_LOG_LEVEL, DEFAULT_MODE, LifecycleState, LogLevel, Mode, Options, RunOutcome
from .http_server import Server
from .lifespan import ServerLifecycle, serve, start
from .utils.signals import ShutdownSignal

__all__ = [
    "Options",
    "Mode",
    "LogLevel",
    "DEFAULT_MODE",
    "DEFAULT_LOG_LEVEL",
    "LifecycleState",
    "RunOutcome",
    "Server",
    "ServerLifecycle",
    "ShutdownSignal",
    "serve",
    "start",
    "WebServerError",
    "ServeError",
    "BindError",
    "ServerClosedError",
    "ShutdownError",
]
