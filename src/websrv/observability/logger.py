"""Structured logging for the server lifecycle."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from ..domain.models import LogLevel

_LEVELS: dict[LogLevel, int] = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.ERROR: logging.ERROR,
    # "none" drops everything in _drop_all; the level only has to be valid.
    LogLevel.NONE: logging.CRITICAL,
}


def _drop_all(_logger: WrappedLogger, _method: str, _event: EventDict) -> EventDict:
    raise structlog.DropEvent


def _processors(log_level: LogLevel, log_format: str) -> list[Processor]:
    if log_level == LogLevel.NONE:
        return [_drop_all]

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def configure_logging(log_level: LogLevel | str = LogLevel.INFO, log_format: str = "console") -> None:
    """Configure the global structlog pipeline (console by default)."""
    level = LogLevel.parse(log_level)
    structlog.configure(
        processors=_processors(level, log_format),
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS[level]),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_logger(log_level: LogLevel | str, log_format: str = "console", **initial_values: Any):
    """Return a logger private to one server run.

    Each run gets its own pipeline so two servers with different verbosity in
    the same process do not share filtering.
    """
    level = LogLevel.parse(log_level)
    return structlog.wrap_logger(
        structlog.PrintLogger(sys.stdout),
        processors=_processors(level, log_format),
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS[level]),
        context_class=dict,
        **initial_values,
    )


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
