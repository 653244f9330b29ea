"""Server lifecycle: start, wait for termination, shut down gracefully."""

from __future__ import annotations

import asyncio
import contextlib
import sys
from typing import Any, Callable, Optional

from .domain.errors import ServerClosedError, ShutdownError
from .domain.models import LifecycleState, Mode, Options, RunOutcome
from .http_server import Server
from .observability.logger import build_logger
from .utils.signals import ShutdownSignal

ExitFunc = Callable[[int], Any]


def _signal_name(sig: Any) -> str:
    return getattr(sig, "name", str(sig))


class ServerLifecycle:
    """Runs one server from startup to shutdown.

    ``run()`` never terminates the process: it reports how the run ended and
    leaves the exit decision to ``serve()``.
    """

    def __init__(
        self,
        options: Options,
        *,
        shutdown_signal: ShutdownSignal | None = None,
        log_format: str = "console",
    ):
        self.options = options.with_defaults()
        self.shutdown_signal = shutdown_signal or ShutdownSignal()
        self.state = LifecycleState.CREATED
        self.server: Optional[Server] = None
        self.logger = build_logger(self.options.log_level, log_format)

    def _transition(self, state: LifecycleState) -> None:
        self.logger.debug("lifecycle_transition", previous=self.state.value, state=state.value)
        self.state = state

    async def run(self) -> RunOutcome:
        """Serve until a termination signal, then shut down.

        Raises ``ShutdownError`` when the graceful shutdown fails.
        """
        options = self.options
        logger = self.logger
        self._transition(LifecycleState.STARTING)

        logger.info("🚀 Starting server on", address=options.address)
        if options.url:
            logger.info("🌍 APP URL", url=options.url)

        server = Server(options.host, options.port, options.handler)
        self.server = server

        if self.shutdown_signal.install():
            logger.debug("signal_handlers_installed", signals=["SIGINT", "SIGTERM"])
        else:
            logger.debug("signal_handlers_unavailable")

        serve_task = asyncio.create_task(server.listen_and_serve(), name="websrv-serve")
        signal_task = asyncio.create_task(self.shutdown_signal.wait(), name="websrv-signal")
        self._transition(LifecycleState.RUNNING)
        logger.info("✅ Server is now running, press Ctrl+C to stop it.")

        try:
            await asyncio.wait({serve_task, signal_task}, return_when=asyncio.FIRST_COMPLETED)

            if serve_task.done() and not signal_task.done():
                error = serve_task.exception()
                if error is not None and not isinstance(error, ServerClosedError):
                    return self._serve_failed(server, error)
                # Closed from elsewhere: keep waiting for the termination signal.
                await signal_task

            sig = signal_task.result()
            logger.info("👋 Received signal", signal=_signal_name(sig))
            logger.info("👋 Shutting down server...")
            self._transition(LifecycleState.SHUTTING_DOWN)

            try:
                await server.shutdown(options.shutdown_timeout)
                await self._reap(serve_task)
            except ShutdownError as e:
                self._transition(LifecycleState.FAILED_SHUTDOWN)
                logger.error("👋 Error shutting down server", error=str(e), detail=e.info.detail)
                raise

            self._transition(LifecycleState.STOPPED)
            return RunOutcome(server=server, state=self.state, signal=sig)
        finally:
            if not serve_task.done():
                serve_task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await serve_task
            signal_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await signal_task
            self.shutdown_signal.uninstall()

    def _serve_failed(self, server: Server, error: BaseException) -> RunOutcome:
        self._transition(LifecycleState.FAILED)
        if self.options.mode == Mode.TESTING:
            self.logger.error("❌ Error starting server", error=str(error))
        return RunOutcome(server=server, state=self.state, error=error)

    async def _reap(self, serve_task: asyncio.Task) -> None:
        try:
            await serve_task
        except ServerClosedError:
            pass
        except Exception as e:
            raise ShutdownError("server failed while draining", detail=str(e)) from e


async def serve(
    options: Options,
    *,
    shutdown_signal: ShutdownSignal | None = None,
    exit_func: ExitFunc = sys.exit,
    log_format: str = "console",
) -> Server:
    """Start a server and block until it has been shut down.

    In testing mode this returns the stopped server. In production mode the
    process exits with code 0 after a clean shutdown and code 1 when the
    serve loop fails. ``ShutdownError`` is raised in both modes when the
    graceful shutdown fails.
    """
    lifecycle = ServerLifecycle(options, shutdown_signal=shutdown_signal, log_format=log_format)
    outcome = await lifecycle.run()
    production = lifecycle.options.mode == Mode.PRODUCTION

    if outcome.failed:
        if production:
            lifecycle.logger.critical("❌ Error starting server", error=str(outcome.error))
            exit_func(1)
        return outcome.server

    if production:
        exit_func(0)
    return outcome.server


def start(options: Options, **kwargs: Any) -> Server:
    """Synchronous entry point: run ``serve()`` on a fresh event loop."""
    return asyncio.run(serve(options, **kwargs))
