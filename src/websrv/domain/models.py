"""Framework-agnostic lifecycle models."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from fastapi import Request, Response

if TYPE_CHECKING:
    from ..http_server import Server


Handler = Callable[[Request], Union[Response, Awaitable[Optional[Response]], None]]


class Mode(str, Enum):
    PRODUCTION = "production"
    TESTING = "testing"

    @classmethod
    def parse(cls, value: "Mode | str | None") -> "Mode":
        if isinstance(value, Mode):
            return value
        if not value:
            return DEFAULT_MODE
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown mode: {value!r}") from None


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    ERROR = "error"
    NONE = "none"

    @classmethod
    def parse(cls, value: "LogLevel | str | None") -> "LogLevel":
        if isinstance(value, LogLevel):
            return value
        if not value:
            return DEFAULT_LOG_LEVEL
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown log level: {value!r}") from None


DEFAULT_MODE = Mode.PRODUCTION
DEFAULT_LOG_LEVEL = LogLevel.INFO


class LifecycleState(str, Enum):
    CREATED = "CREATED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    SHUTTING_DOWN = "SHUTTING_DOWN"
    STOPPED = "STOPPED"
    FAILED_SHUTDOWN = "FAILED_SHUTDOWN"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Options:
    """Startup configuration for one server run.

    ``mode`` and ``log_level`` accept enum members or their string values; leave
    them unset to get production mode and info verbosity. ``url`` is only shown
    in logs. ``shutdown_timeout`` bounds the graceful shutdown in seconds, and
    ``None`` waits for in-flight connections indefinitely.
    """

    host: str
    port: Union[str, int]
    handler: Handler
    url: Optional[str] = None
    mode: Union[Mode, str, None] = None
    log_level: Union[LogLevel, str, None] = None
    shutdown_timeout: Optional[float] = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def with_defaults(self) -> "Options":
        return dataclasses.replace(
            self,
            mode=Mode.parse(self.mode),
            log_level=LogLevel.parse(self.log_level),
        )


@dataclass(frozen=True)
class RunOutcome:
    server: "Server"
    state: LifecycleState
    error: Optional[BaseException] = None
    signal: Any = None

    @property
    def failed(self) -> bool:
        return self.state == LifecycleState.FAILED
