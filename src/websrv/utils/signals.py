"""Termination notification for the server lifecycle.

A ``ShutdownSignal`` delivers one termination event to the orchestrator that
waits on it. It can be fed by OS signals (``install``) or directly through
``notify`` from any thread, which is how tests and embedding applications stop
a server without touching process-wide signal state.

Only the main thread may install OS handlers, and the most recent installation
for a signal wins: two orchestrators in one process that both install will
contend for SIGINT/SIGTERM.

Once notified, a signal stays set: a second run waiting on the same
instance returns at once unless ``reset()`` is called between runs.
"""

from __future__ import annotations

import asyncio
import signal
import threading
from typing import Any, Iterable, Optional

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class ShutdownSignal:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._received: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._event: Optional[asyncio.Event] = None
        self._installed: list[signal.Signals] = []

    @property
    def received(self) -> Any:
        return self._received

    def notify(self, signum: Any = signal.SIGTERM) -> None:
        """Deliver a termination event. Safe to call from any thread."""
        with self._lock:
            if self._received is None:
                self._received = signum
            loop, event = self._loop, self._event
        if loop is not None and event is not None and not loop.is_closed():
            loop.call_soon_threadsafe(event.set)

    async def wait(self) -> Any:
        """Block until a termination event arrives and return it."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._event is None or self._loop is not loop:
                self._loop = loop
                self._event = asyncio.Event()
            if self._received is not None:
                self._event.set()
            event = self._event
        await event.wait()
        return self._received

    def reset(self) -> None:
        """Forget the received event so the signal can stop another run."""
        with self._lock:
            self._received = None
            self._loop = None
            self._event = None

    def install(self, signals: Iterable[signal.Signals] = DEFAULT_SIGNALS) -> bool:
        """Route OS signals to ``notify`` on the running loop.

        Returns False when handlers cannot be installed (not on the main
        thread, or a platform without ``add_signal_handler``).
        """
        loop = asyncio.get_running_loop()
        if threading.current_thread() is not threading.main_thread():
            return False

        for sig in signals:
            try:
                loop.add_signal_handler(sig, self.notify, sig)
            except NotImplementedError:
                self.uninstall()
                return False
            self._installed.append(sig)
        return True

    def uninstall(self) -> None:
        if not self._installed:
            return
        loop = asyncio.get_running_loop()
        while self._installed:
            loop.remove_signal_handler(self._installed.pop())
