"""Command-line entrypoint: serve a placeholder handler from WEBSRV_* settings."""

import asyncio
import sys

from fastapi import Request
from fastapi.responses import PlainTextResponse

from .config.settings import get_settings
from .domain.errors import ShutdownError
from .lifespan import serve
from .observability.logger import configure_logging, get_logger


async def hello(request: Request) -> PlainTextResponse:
    settings = get_settings()
    return PlainTextResponse(f"{settings.service_name}: {request.method} {request.url.path}\n")


async def main() -> None:
    """Main application entrypoint."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    get_logger(__name__).debug("settings_loaded", host=settings.host, port=settings.port, mode=settings.mode.value)
    await serve(settings.to_options(hello), log_format=settings.log_format)


def run() -> None:
    try:
        asyncio.run(main())
    except ShutdownError:
        sys.exit(1)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
