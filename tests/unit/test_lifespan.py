from __future__ import annotations

import asyncio
import os
import signal
import socket
import sys
import threading
import time

import aiohttp
import pytest
from fastapi import Request
from fastapi.responses import PlainTextResponse

from websrv.domain.errors import BindError, ShutdownError
from websrv.domain.models import LifecycleState, Options
from websrv.lifespan import ServerLifecycle, serve, start
from websrv.utils.signals import ShutdownSignal


def _ok(_request: Request) -> None:
    return None


class _ExitRecorder:
    def __init__(self) -> None:
        self.codes: list[int] = []

    def __call__(self, code: int) -> None:
        self.codes.append(code)


async def test_serves_until_signalled_then_refuses_connections(free_port: int, wait_for_http) -> None:
    shutdown = ShutdownSignal()
    options = Options(host="localhost", port=str(free_port), handler=_ok, mode="testing")
    task = asyncio.create_task(serve(options, shutdown_signal=shutdown))

    url = f"http://localhost:{free_port}"
    await wait_for_http(url)
    async with aiohttp.ClientSession() as session:
        async with session.get(url) as resp:
            assert resp.status == 200

    shutdown.notify(signal.SIGTERM)
    server = await asyncio.wait_for(task, timeout=10.0)
    assert server.closed

    async with aiohttp.ClientSession() as session:
        with pytest.raises(aiohttp.ClientConnectionError):
            await session.get(url)


async def test_startup_and_shutdown_log_lines(free_port: int, wait_for_http, capsys) -> None:
    shutdown = ShutdownSignal()
    options = Options(
        host="127.0.0.1",
        port=free_port,
        handler=_ok,
        url="https://app.example.com",
        mode="testing",
    )
    task = asyncio.create_task(serve(options, shutdown_signal=shutdown))
    await wait_for_http(f"http://127.0.0.1:{free_port}/")
    shutdown.notify(signal.SIGINT)
    await asyncio.wait_for(task, timeout=10.0)

    out = capsys.readouterr().out
    assert "🚀 Starting server on" in out and f"127.0.0.1:{free_port}" in out
    assert "🌍 APP URL" in out and "https://app.example.com" in out
    assert "✅ Server is now running" in out
    assert "👋 Received signal" in out and "SIGINT" in out
    assert "👋 Shutting down server..." in out
    assert "lifecycle_transition" not in out


async def test_log_level_none_is_silent(free_port: int, wait_for_http, capsys) -> None:
    shutdown = ShutdownSignal()
    options = Options(host="127.0.0.1", port=free_port, handler=_ok, mode="testing", log_level="none")
    task = asyncio.create_task(serve(options, shutdown_signal=shutdown))
    await wait_for_http(f"http://127.0.0.1:{free_port}/")
    shutdown.notify()
    server = await asyncio.wait_for(task, timeout=10.0)

    assert server.closed
    assert capsys.readouterr().out == ""


async def test_port_in_use_in_testing_mode_returns_and_logs(busy_port: int, capsys) -> None:
    exits = _ExitRecorder()
    options = Options(host="127.0.0.1", port=busy_port, handler=_ok, mode="testing")
    server = await asyncio.wait_for(
        serve(options, shutdown_signal=ShutdownSignal(), exit_func=exits),
        timeout=10.0,
    )

    assert exits.codes == []
    assert not server.started
    out = capsys.readouterr().out
    assert "❌ Error starting server" in out
    assert "[error" in out


async def test_port_in_use_in_testing_mode_with_none_is_silent(busy_port: int, capsys) -> None:
    options = Options(host="127.0.0.1", port=busy_port, handler=_ok, mode="testing", log_level="none")
    await asyncio.wait_for(serve(options, shutdown_signal=ShutdownSignal()), timeout=10.0)
    assert capsys.readouterr().out == ""


async def test_port_in_use_in_production_exits_with_one(busy_port: int, capsys) -> None:
    exits = _ExitRecorder()
    options = Options(host="127.0.0.1", port=busy_port, handler=_ok)
    await asyncio.wait_for(serve(options, shutdown_signal=ShutdownSignal(), exit_func=exits), timeout=10.0)

    assert exits.codes == [1]
    out = capsys.readouterr().out
    assert "❌ Error starting server" in out
    assert "[critical" in out


async def test_port_in_use_in_production_with_none_exits_silently(busy_port: int, capsys) -> None:
    exits = _ExitRecorder()
    options = Options(host="127.0.0.1", port=busy_port, handler=_ok, log_level="none")
    await asyncio.wait_for(serve(options, shutdown_signal=ShutdownSignal(), exit_func=exits), timeout=10.0)

    assert exits.codes == [1]
    assert capsys.readouterr().out == ""


async def test_production_mode_exits_with_zero_after_clean_shutdown(free_port: int, wait_for_http) -> None:
    exits = _ExitRecorder()
    shutdown = ShutdownSignal()
    options = Options(host="127.0.0.1", port=free_port, handler=_ok, log_level="error")
    task = asyncio.create_task(serve(options, shutdown_signal=shutdown, exit_func=exits))
    await wait_for_http(f"http://127.0.0.1:{free_port}/")
    shutdown.notify()
    await asyncio.wait_for(task, timeout=10.0)
    assert exits.codes == [0]


async def test_lifecycle_states_and_bound_port(wait_until) -> None:
    shutdown = ShutdownSignal()
    lifecycle = ServerLifecycle(
        Options(host="127.0.0.1", port=0, handler=_ok, mode="testing", log_level="none"),
        shutdown_signal=shutdown,
    )
    assert lifecycle.state is LifecycleState.CREATED

    task = asyncio.create_task(lifecycle.run())
    await wait_until(lambda: lifecycle.server is not None and lifecycle.server.started)
    assert lifecycle.state is LifecycleState.RUNNING
    assert lifecycle.server.port and lifecycle.server.port > 0

    shutdown.notify(signal.SIGTERM)
    outcome = await asyncio.wait_for(task, timeout=10.0)
    assert outcome.state is LifecycleState.STOPPED
    assert outcome.signal is signal.SIGTERM
    assert outcome.error is None
    assert lifecycle.state is LifecycleState.STOPPED


async def test_lifecycle_reports_serve_failure(busy_port: int) -> None:
    lifecycle = ServerLifecycle(
        Options(host="127.0.0.1", port=busy_port, handler=_ok, log_level="none"),
        shutdown_signal=ShutdownSignal(),
    )
    outcome = await asyncio.wait_for(lifecycle.run(), timeout=10.0)
    assert outcome.failed
    assert isinstance(outcome.error, BindError)
    assert lifecycle.state is LifecycleState.FAILED


async def test_bounded_shutdown_failure_is_raised(wait_until, capsys) -> None:
    in_flight = asyncio.Event()
    release = asyncio.Event()

    async def slow(_request: Request) -> PlainTextResponse:
        in_flight.set()
        await release.wait()
        return PlainTextResponse("late")

    shutdown = ShutdownSignal()
    lifecycle = ServerLifecycle(
        Options(host="127.0.0.1", port=0, handler=slow, mode="production", shutdown_timeout=0.2),
        shutdown_signal=shutdown,
    )
    task = asyncio.create_task(lifecycle.run())
    await wait_until(lambda: lifecycle.server is not None and lifecycle.server.started)

    async def _client() -> None:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://127.0.0.1:{lifecycle.server.port}/") as resp:
                await resp.read()

    client = asyncio.create_task(_client())
    await asyncio.wait_for(in_flight.wait(), timeout=5.0)
    shutdown.notify()

    with pytest.raises(ShutdownError):
        await asyncio.wait_for(task, timeout=10.0)
    assert lifecycle.state is LifecycleState.FAILED_SHUTDOWN
    assert "👋 Error shutting down server" in capsys.readouterr().out

    release.set()
    try:
        await asyncio.wait_for(client, timeout=5.0)
    except (aiohttp.ClientError, asyncio.TimeoutError):
        pass


@pytest.mark.skipif(sys.platform == "win32", reason="loop signal handlers are POSIX-only")
async def test_real_sigterm_triggers_shutdown(free_port: int, wait_for_http) -> None:
    options = Options(host="127.0.0.1", port=free_port, handler=_ok, mode="testing", log_level="none")
    task = asyncio.create_task(serve(options))
    await wait_for_http(f"http://127.0.0.1:{free_port}/")

    os.kill(os.getpid(), signal.SIGTERM)
    server = await asyncio.wait_for(task, timeout=10.0)
    assert server.closed


def test_start_blocks_a_worker_thread_until_notified(free_port: int) -> None:
    shutdown = ShutdownSignal()
    options = Options(host="127.0.0.1", port=free_port, handler=_ok, mode="testing", log_level="none")
    result: list = []
    worker = threading.Thread(target=lambda: result.append(start(options, shutdown_signal=shutdown)))
    worker.start()

    deadline = time.monotonic() + 5.0
    while True:
        try:
            socket.create_connection(("127.0.0.1", free_port), timeout=0.5).close()
            break
        except OSError:
            assert time.monotonic() < deadline, "server never started listening"
            time.sleep(0.05)

    shutdown.notify(signal.SIGTERM)
    worker.join(timeout=10.0)
    assert not worker.is_alive()
    assert result[0].closed
