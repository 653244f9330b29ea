"""uvicorn-backed server handle: bind, serve, graceful shutdown."""

from __future__ import annotations

import asyncio
import contextlib
import socket
import sys
from typing import Iterator, Optional

import uvicorn

from .domain.errors import BindError, ServeError, ServerClosedError, ShutdownError
from .domain.models import Handler
from .http_app import create_app


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the lifecycle layer."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def _bind_socket(host: str, port: str | int, backlog: int) -> socket.socket:
    try:
        port_number = int(port)
    except (TypeError, ValueError):
        raise BindError(f"invalid port: {port!r}") from None

    if not host and socket.has_dualstack_ipv6():
        # An empty host listens on every interface, IPv4 and IPv6 alike.
        try:
            sock = socket.create_server(
                ("", port_number),
                family=socket.AF_INET6,
                backlog=backlog,
                dualstack_ipv6=True,
            )
        except OSError as e:
            raise BindError(f"listen tcp :{port}: {e.strerror or e}", detail=str(e)) from e
        sock.set_inheritable(True)
        return sock

    try:
        infos = socket.getaddrinfo(
            host or None,
            port_number,
            type=socket.SOCK_STREAM,
            flags=socket.AI_PASSIVE,
        )
    except socket.gaierror as e:
        raise BindError(f"cannot resolve {host}:{port}", detail=str(e)) from e

    family, socktype, proto, _, sockaddr = infos[0]
    sock = socket.socket(family, socktype, proto)
    try:
        if sys.platform != "win32":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
        sock.listen(backlog)
    except OSError as e:
        sock.close()
        raise BindError(f"listen tcp {host}:{port}: {e.strerror or e}", detail=str(e)) from e
    sock.set_inheritable(True)
    return sock


class Server:
    """A single HTTP listener serving one handler.

    The handle is single-use: once shut down, ``listen_and_serve()`` raises
    ``ServerClosedError``.
    """

    def __init__(
        self,
        host: str,
        port: str | int,
        handler: Handler,
        *,
        backlog: int = 2048,
        log_level: str = "warning",
    ):
        self._host = host
        self._port = port
        self._backlog = backlog
        self._socket: Optional[socket.socket] = None
        self._bound_port: Optional[int] = None
        self._closed = False
        self._done = asyncio.Event()
        self._done.set()

        config = uvicorn.Config(
            app=create_app(handler),
            host=host or "0.0.0.0",
            port=int(port) if str(port).isdigit() else 0,
            log_level=log_level,  # structlog is the primary logger
            log_config=None,
            access_log=False,
            lifespan="off",
            loop="asyncio",
        )
        self._uvicorn = _EmbeddedServer(config)

    @property
    def address(self) -> str:
        return f"{self._host}:{self._port}"

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int | None:
        """The bound port (differs from the configured one when it was 0)."""
        return self._bound_port

    @property
    def started(self) -> bool:
        return bool(self._uvicorn.started) and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    async def listen_and_serve(self) -> None:
        """Bind the listener and serve until shut down.

        Returns normally once a shutdown has drained the server. Raises
        ``BindError`` when the address cannot be bound and ``ServeError`` when
        uvicorn stops on its own.
        """
        if self._closed:
            raise ServerClosedError()

        self._done.clear()
        try:
            self._socket = _bind_socket(self._host, self._port, self._backlog)
            self._bound_port = self._socket.getsockname()[1]
            try:
                await self._uvicorn.serve(sockets=[self._socket])
            except SystemExit as e:
                # uvicorn exits the interpreter on startup failures
                raise ServeError("server startup failed", detail=f"exit code {e.code}") from e
            finally:
                self._socket.close()
        finally:
            self._done.set()

        if not self._uvicorn.should_exit:
            raise ServeError("server stopped unexpectedly")

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop accepting connections and wait for in-flight ones to finish.

        With ``timeout`` set, connections still open when it elapses are
        abandoned and ``ShutdownError`` is raised once the listener is released.
        """
        self._closed = True
        self._uvicorn.should_exit = True
        if self._done.is_set():
            return

        try:
            await asyncio.wait_for(self._done.wait(), timeout)
        except asyncio.TimeoutError:
            self._uvicorn.force_exit = True
            self._abort_connections()
            await self._done.wait()
            raise ShutdownError(
                "graceful shutdown timed out",
                detail=f"in-flight connections still open after {timeout}s",
            ) from None

    def _abort_connections(self) -> None:
        # asyncio.Server.wait_closed() waits for every connection on 3.12+,
        # so open transports have to be closed for uvicorn to return.
        for protocol in list(self._uvicorn.server_state.connections):
            transport = getattr(protocol, "transport", None)
            if transport is not None and not transport.is_closing():
                transport.close()
