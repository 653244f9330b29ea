"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.models import Handler, LogLevel, Mode, Options


class WebServerSettings(BaseSettings):
    """Server settings loaded from ``WEBSRV_*`` environment variables."""

    service_name: str = "websrv"

    # Listener
    host: str = "127.0.0.1"
    port: int = 8080
    url: str | None = None  # displayed in logs only

    # Lifecycle
    mode: Mode = Mode.PRODUCTION
    shutdown_timeout: float | None = None  # seconds; unset waits for in-flight requests

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: str = "console"  # "console" | "json"

    model_config = SettingsConfigDict(
        env_prefix="WEBSRV_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("mode", mode="before")
    @classmethod
    def parse_mode(cls, value: object) -> Mode:
        return Mode.parse(value)  # type: ignore[arg-type]

    @field_validator("log_level", mode="before")
    @classmethod
    def parse_log_level(cls, value: object) -> LogLevel:
        return LogLevel.parse(value)  # type: ignore[arg-type]

    def validate(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError("port must be between 0 and 65535")
        if self.shutdown_timeout is not None and self.shutdown_timeout < 0:
            raise ValueError("shutdown_timeout must be >= 0")
        if self.log_format not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")

    def to_options(self, handler: Handler) -> Options:
        return Options(
            host=self.host,
            port=str(self.port),
            handler=handler,
            url=self.url,
            mode=self.mode,
            log_level=self.log_level,
            shutdown_timeout=self.shutdown_timeout,
        )


_settings: WebServerSettings | None = None


def get_settings() -> WebServerSettings:
    global _settings
    if _settings is None:
        _settings = WebServerSettings()
        _settings.validate()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
