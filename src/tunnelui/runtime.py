"""Seam between the session and the tunnel dataplane."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Protocol

from tunnelui.log_utils import log_event
from tunnelui.mode import Mode

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 30.0


class TunnelRuntime(Protocol):
    """A running client or server dataplane."""

    ready: threading.Event

    def stop(self) -> None: ...


RuntimeStarter = Callable[[Mode, threading.Event], TunnelRuntime]


class IdleTunnelRuntime:
    """Runtime with no dataplane attached.

    Reports ready straight away and idles until stopped. ``connection_done``
    is set when the runtime stops so the dashboard can react.
    """

    def __init__(self, mode: Mode, connection_done: threading.Event) -> None:
        self.mode = mode
        self.ready = threading.Event()
        self._connection_done = connection_done
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"runtime-{mode.value}", daemon=True)

    def start(self) -> "IdleTunnelRuntime":
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)

    def _run(self) -> None:
        log_event(logger, "runtime.started", mode=self.mode.value)
        self.ready.set()
        try:
            while not self._stop.wait(HEARTBEAT_INTERVAL):
                log_event(logger, "runtime.heartbeat", mode=self.mode.value)
        finally:
            self._connection_done.set()
            log_event(logger, "runtime.stopped", mode=self.mode.value)


def start_idle_runtime(mode: Mode, connection_done: threading.Event) -> TunnelRuntime:
    return IdleTunnelRuntime(mode, connection_done).start()
