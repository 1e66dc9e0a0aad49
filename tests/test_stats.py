from __future__ import annotations

import pytest

from tunnelui.preferences import StatsUnits
from tunnelui.stats import TrafficStats, format_bytes


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_sample_computes_rates_since_previous_sample() -> None:
    clock = FakeClock()
    stats = TrafficStats(clock=clock)
    stats.add_rx(2048)
    stats.add_tx(512)
    clock.now += 2.0

    sample = stats.sample()
    assert sample.rx_bytes == 2048
    assert sample.tx_bytes == 512
    assert sample.rx_rate == pytest.approx(1024.0)
    assert sample.tx_rate == pytest.approx(256.0)

    clock.now += 1.0
    assert stats.sample().rx_rate == 0.0


def test_snapshot_does_not_reset_the_rate_window() -> None:
    clock = FakeClock()
    stats = TrafficStats(clock=clock)
    stats.add_rx(100)
    clock.now += 1.0
    stats.snapshot()
    assert stats.sample().rx_rate == pytest.approx(100.0)
    assert stats.snapshot().rx_rate == pytest.approx(100.0)


def test_reset_clears_counters() -> None:
    stats = TrafficStats(clock=FakeClock())
    stats.add_rx(10)
    stats.add_tx(10)
    stats.reset()
    assert stats.snapshot().rx_bytes == 0
    assert stats.snapshot().tx_bytes == 0


@pytest.mark.parametrize(
    ("value", "units", "expected"),
    [
        (0, StatsUnits.BIBYTES, "0 B"),
        (1023, StatsUnits.BIBYTES, "1023 B"),
        (1536, StatsUnits.BIBYTES, "1.5 KiB"),
        (1500, StatsUnits.BYTES, "1.5 KB"),
        (5 * 1024 * 1024, StatsUnits.BIBYTES, "5.0 MiB"),
        (-5, StatsUnits.BYTES, "0 B"),
    ],
)
def test_format_bytes(value: int, units: StatsUnits, expected: str) -> None:
    assert format_bytes(value, units) == expected
