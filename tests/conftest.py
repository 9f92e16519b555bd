"""Shared test fixtures for proctop."""

import logging
from collections.abc import Iterable

import pytest
import structlog

from proctop.models import ProcessView, RawProcessRecord, RawSystemCounters, Snapshot


def make_record(
    pid: int,
    cpu_ticks: int = 0,
    resident_kb: int = 1000,
    name: str | None = None,
    start_time: int = 0,
) -> RawProcessRecord:
    """Create a RawProcessRecord for testing."""
    return RawProcessRecord(
        pid=pid,
        name=name if name is not None else f"proc{pid}",
        cpu_ticks=cpu_ticks,
        resident_kb=resident_kb,
        start_time=start_time,
    )


def make_snapshot(processes: Iterable[ProcessView] = ()) -> Snapshot:
    """Create a Snapshot with fixed system values around the given processes."""
    return Snapshot(
        system_cpu_pct=50.0,
        used_mem_kb=4_000_000,
        total_mem_kb=8_000_000,
        uptime_s=3600,
        processes=tuple(processes),
    )


class FakeSource:
    """CounterSource replaying scripted readings, one per call."""

    def __init__(
        self,
        readings: list[tuple[RawSystemCounters, list[RawProcessRecord]]],
        mem_kb: tuple[int, int] = (8_000_000, 6_000_000),
        uptime_s: int = 3661,
    ) -> None:
        self._readings = list(readings)
        self._index = 0
        self._procs: list[RawProcessRecord] = []
        self.mem_kb = mem_kb
        self.uptime_s = uptime_s

    def read_system_counters(self) -> RawSystemCounters:
        # Hold on the last reading once the script runs out
        raw, procs = self._readings[min(self._index, len(self._readings) - 1)]
        self._index += 1
        self._procs = procs
        return raw

    def read_memory_kb(self) -> tuple[int, int]:
        return self.mem_kb

    def read_uptime_seconds(self) -> int:
        return self.uptime_s

    def list_processes(self) -> list[RawProcessRecord]:
        return list(self._procs)


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo configure_logging() so handlers never outlive a test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def fake_source() -> FakeSource:
    """A source with two ticks: 30% system CPU, pid 10 at 10%, pid 20 idle."""
    return FakeSource(
        [
            (
                RawSystemCounters(total_ticks=100, idle_ticks=80),
                [make_record(10, 5, 2000), make_record(20, 40, 9000)],
            ),
            (
                RawSystemCounters(total_ticks=200, idle_ticks=150),
                [make_record(10, 15, 2000), make_record(20, 40, 9000)],
            ),
        ]
    )
