"""Data models for proctop."""

from dataclasses import dataclass
from enum import Enum


@dataclass(slots=True, frozen=True)
class RawSystemCounters:
    """Point-in-time reading of the aggregate CPU tick counters."""

    total_ticks: int  # user + nice + system + idle + iowait + irq + softirq + steal
    idle_ticks: int  # idle + iowait

    @classmethod
    def zero(cls) -> "RawSystemCounters":
        """Return the reading substituted when the source is unavailable."""
        return cls(total_ticks=0, idle_ticks=0)


@dataclass(slots=True, frozen=True)
class RawProcessRecord:
    """Point-in-time reading of a single process."""

    pid: int
    name: str
    cpu_ticks: int  # user + kernel ticks since process start
    resident_kb: int
    start_time: int = 0  # clock ticks after boot, 0 when unknown


@dataclass(slots=True, frozen=True)
class ProcessView:
    """A process row as shown in the table."""

    pid: int
    name: str
    cpu_pct: float
    resident_kb: int


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Immutable result of one sampling tick."""

    system_cpu_pct: float  # 0.0 - 100.0
    used_mem_kb: int
    total_mem_kb: int
    uptime_s: int
    processes: tuple[ProcessView, ...] = ()

    @property
    def mem_pct(self) -> float:
        """Used memory as a percentage of total memory."""
        if self.total_mem_kb <= 0:
            return 0.0
        return min(100.0, 100.0 * self.used_mem_kb / self.total_mem_kb)


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "mem"

    def toggled(self) -> "SortKey":
        """Return the other sort key."""
        return SortKey.MEM if self is SortKey.CPU else SortKey.CPU
