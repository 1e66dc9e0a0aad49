"""Process-wide dataplane traffic counters."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from tunnelui.preferences import StatsUnits


@dataclass(frozen=True)
class TrafficSnapshot:
    rx_bytes: int = 0
    tx_bytes: int = 0
    rx_rate: float = 0.0
    tx_rate: float = 0.0


class TrafficStats:
    """Byte counters updated by the dataplane and sampled by the dashboard."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._rx = 0
        self._tx = 0
        self._last_rx = 0
        self._last_tx = 0
        self._last_at = clock()
        self._rx_rate = 0.0
        self._tx_rate = 0.0

    def add_rx(self, count: int) -> None:
        with self._lock:
            self._rx += count

    def add_tx(self, count: int) -> None:
        with self._lock:
            self._tx += count

    def reset(self) -> None:
        with self._lock:
            self._rx = self._tx = self._last_rx = self._last_tx = 0
            self._rx_rate = self._tx_rate = 0.0
            self._last_at = self._clock()

    def snapshot(self) -> TrafficSnapshot:
        """Totals plus the rates computed by the last :meth:`sample`."""
        with self._lock:
            return TrafficSnapshot(self._rx, self._tx, self._rx_rate, self._tx_rate)

    def sample(self) -> TrafficSnapshot:
        """Recompute per-second rates since the previous sample."""
        with self._lock:
            now = self._clock()
            elapsed = now - self._last_at
            if elapsed > 0:
                self._rx_rate = (self._rx - self._last_rx) / elapsed
                self._tx_rate = (self._tx - self._last_tx) / elapsed
            self._last_rx, self._last_tx, self._last_at = self._rx, self._tx, now
            return TrafficSnapshot(self._rx, self._tx, self._rx_rate, self._tx_rate)


traffic_stats = TrafficStats()

_DECIMAL_SUFFIXES = ("B", "KB", "MB", "GB", "TB", "PB")
_BINARY_SUFFIXES = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")


def format_bytes(value: float, units: StatsUnits = StatsUnits.BIBYTES) -> str:
    if units is StatsUnits.BYTES:
        step, suffixes = 1000.0, _DECIMAL_SUFFIXES
    else:
        step, suffixes = 1024.0, _BINARY_SUFFIXES
    amount = float(max(value, 0))
    index = 0
    while amount >= step and index < len(suffixes) - 1:
        amount /= step
        index += 1
    if index == 0:
        return f"{int(amount)} B"
    return f"{amount:.1f} {suffixes[index]}"
