"""Resource Monitor unit tests."""

from __future__ import annotations

from unittest.mock import MagicMock

from sakuin.api.base import ONE_MEGABYTE
from sakuin.controller.resources import ResourceMonitor
from sakuin.index.incremental.types import RestartReason


def make_process(rss_mb: float) -> MagicMock:
    process = MagicMock()
    process.memory_info.return_value.rss = int(rss_mb * ONE_MEGABYTE)
    return process


class TestResourceMonitor:
    """ResourceMonitor のテスト"""

    def test_high_water(self):
        monitor = ResourceMonitor(memory_limit=512 * ONE_MEGABYTE, high_water=0.5)
        assert monitor.high_water_bytes == 256 * ONE_MEGABYTE

    def test_memory_over_high_water(self):
        monitor = ResourceMonitor(
            memory_limit=512 * ONE_MEGABYTE,
            high_water=0.5,
            process=make_process(300),
        )
        assert monitor.check(processed=1) is RestartReason.MEMORY

    def test_memory_below_high_water(self):
        monitor = ResourceMonitor(
            memory_limit=512 * ONE_MEGABYTE,
            high_water=0.5,
            process=make_process(100),
        )
        assert monitor.check(processed=1) is None
        assert monitor.rss_mb() == 100

    def test_max_runs(self):
        monitor = ResourceMonitor(max_runs=3, process=make_process(10))
        assert monitor.check(processed=2) is None
        assert monitor.check(processed=3) is RestartReason.MAX_RUNS

    def test_memory_disabled(self):
        process = make_process(10_000)
        monitor = ResourceMonitor(memory_limit=0, process=process)
        assert monitor.check(processed=100) is None
        process.memory_info.assert_not_called()

    def test_default_process(self):
        monitor = ResourceMonitor(memory_limit=ONE_MEGABYTE * 1024 * 1024)
        assert monitor.rss_bytes() > 0
