"""In-memory capture of recent log lines for the Logs tabs."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, List, Optional, Protocol, runtime_checkable

from tunnelui.log_utils import build_formatter, prepare_handler

DEFAULT_CAPACITY = 256
CAPTURE_FORMAT = "%(asctime)s %(levelname)s %(message)s"


@runtime_checkable
class RuntimeLogFeed(Protocol):
    def tail(self, limit: int) -> List[str]: ...


class RuntimeLogBuffer:
    """Bounded ring of complete lines, safe to write from any thread.

    ``version`` grows by one per stored line so readers can poll for changes.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._lines: Deque[str] = deque(maxlen=max(capacity, 1))
        self._partial = ""
        self._lock = threading.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def write(self, text: str) -> int:
        with self._lock:
            chunks = (self._partial + text).split("\n")
            self._partial = chunks.pop()
            for chunk in chunks:
                self._lines.append(chunk.rstrip("\r"))
                self._version += 1
        return len(text)

    def tail(self, limit: int) -> List[str]:
        if limit <= 0:
            return []
        with self._lock:
            lines = list(self._lines)
        return lines[-limit:]


class RuntimeLogHandler(logging.Handler):
    def __init__(self, buffer: RuntimeLogBuffer, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.buffer.write(self.format(record) + "\n")
        except Exception:
            self.handleError(record)


_capture_lock = threading.Lock()
_capture_handler: Optional[RuntimeLogHandler] = None


def enable_global_runtime_log_capture(capacity: int = DEFAULT_CAPACITY) -> RuntimeLogBuffer:
    """Mirror root-logger records into a shared buffer. Idempotent."""
    global _capture_handler
    with _capture_lock:
        if _capture_handler is None:
            handler = RuntimeLogHandler(RuntimeLogBuffer(capacity))
            prepare_handler(handler, build_formatter(fmt=CAPTURE_FORMAT))
            logging.getLogger().addHandler(handler)
            _capture_handler = handler
        return _capture_handler.buffer


def disable_global_runtime_log_capture() -> None:
    global _capture_handler
    with _capture_lock:
        if _capture_handler is not None:
            logging.getLogger().removeHandler(_capture_handler)
            _capture_handler = None


def global_runtime_log_feed() -> Optional[RuntimeLogBuffer]:
    with _capture_lock:
        return _capture_handler.buffer if _capture_handler is not None else None


def write_runtime_log_separator(label: str) -> None:
    """Mark a session boundary (reconfigure, disconnect) in the captured log."""
    feed = global_runtime_log_feed()
    if feed is None:
        return
    feed.write(f"----- {label.strip() or 'session'} -----\n")
