"""Sampling and delta engine for proctop."""

from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from proctop.models import ProcessView, RawProcessRecord, RawSystemCounters, Snapshot
from proctop.sources import CounterSource

log = structlog.get_logger()


@dataclass(slots=True, frozen=True)
class PreviousState:
    """Counters observed at the end of the previous tick."""

    prev_total_ticks: int = 0
    prev_idle_ticks: int = 0
    prev_proc_ticks: dict[int, int] = field(default_factory=dict)
    prev_proc_starts: dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_reading(
        cls,
        raw: RawSystemCounters,
        raw_procs: Sequence[RawProcessRecord],
    ) -> "PreviousState":
        """Build the state for a single reading, keeping only its processes."""
        return cls(
            prev_total_ticks=raw.total_ticks,
            prev_idle_ticks=raw.idle_ticks,
            prev_proc_ticks={proc.pid: proc.cpu_ticks for proc in raw_procs},
            prev_proc_starts={proc.pid: proc.start_time for proc in raw_procs},
        )


def _percent(part: int, whole: int) -> float:
    """Return part/whole as a percentage in [0, 100], or 0.0 for an empty whole."""
    if whole <= 0:
        return 0.0
    return max(0.0, min(100.0, 100.0 * part / whole))


class DeltaEngine:
    """
    Turns successive counter readings into utilization percentages.

    The engine keeps exactly one prior reading. Each call to sample() computes
    deltas against it and then replaces it wholesale with the current reading,
    so processes that exited are forgotten by construction.
    """

    def __init__(self, state: PreviousState | None = None) -> None:
        """
        Initialize the DeltaEngine.

        Args:
            state: Previous reading to compute the first deltas against. When
                omitted, the first sample() call primes the engine instead.
        """
        self._state = state

    @property
    def is_primed(self) -> bool:
        """Check whether a previous reading is available."""
        return self._state is not None

    @property
    def state(self) -> PreviousState | None:
        """Get the previous reading."""
        return self._state

    def prime(
        self,
        raw: RawSystemCounters,
        raw_procs: Sequence[RawProcessRecord],
    ) -> None:
        """Seed the previous reading without producing a snapshot."""
        self._state = PreviousState.from_reading(raw, raw_procs)

    def prime_from(self, source: CounterSource) -> None:
        """Seed the previous reading from a counter source."""
        self.prime(source.read_system_counters(), source.list_processes())

    def sample(
        self,
        raw: RawSystemCounters,
        raw_procs: Sequence[RawProcessRecord],
        *,
        mem_kb: tuple[int, int] = (0, 0),
        uptime_s: int = 0,
    ) -> Snapshot:
        """
        Compute a snapshot from the current reading and advance the state.

        Args:
            raw: Current aggregate tick counters.
            raw_procs: Current per-process readings.
            mem_kb: (total_kb, available_kb) memory reading.
            uptime_s: System uptime in seconds.

        Returns:
            Snapshot with processes in source order (unranked).
        """
        prev = self._state
        if prev is None:
            # Unprimed: every delta against the reading itself is zero
            prev = PreviousState.from_reading(raw, raw_procs)

        total_delta = max(raw.total_ticks - prev.prev_total_ticks, 0)
        idle_delta = max(raw.idle_ticks - prev.prev_idle_ticks, 0)
        busy_delta = max(total_delta - idle_delta, 0)
        system_cpu_pct = _percent(busy_delta, total_delta)

        views: list[ProcessView] = []
        for proc in raw_procs:
            prev_ticks = self._previous_ticks(prev, proc)
            proc_delta = max(proc.cpu_ticks - prev_ticks, 0)
            views.append(
                ProcessView(
                    pid=proc.pid,
                    name=proc.name,
                    cpu_pct=_percent(proc_delta, total_delta),
                    resident_kb=proc.resident_kb,
                )
            )

        total_kb, available_kb = mem_kb
        snapshot = Snapshot(
            system_cpu_pct=system_cpu_pct,
            used_mem_kb=max(total_kb - available_kb, 0),
            total_mem_kb=max(total_kb, 0),
            uptime_s=max(uptime_s, 0),
            processes=tuple(views),
        )

        self._state = PreviousState.from_reading(raw, raw_procs)
        log.debug(
            "engine_sampled",
            total_delta=total_delta,
            idle_delta=idle_delta,
            processes=len(views),
        )
        return snapshot

    def sample_from(self, source: CounterSource) -> Snapshot:
        """Read every counter from a source and compute a snapshot."""
        raw = source.read_system_counters()
        raw_procs = source.list_processes()
        return self.sample(
            raw,
            raw_procs,
            mem_kb=source.read_memory_kb(),
            uptime_s=source.read_uptime_seconds(),
        )

    @staticmethod
    def _previous_ticks(prev: PreviousState, proc: RawProcessRecord) -> int:
        """
        Return the tick count to compute this process's delta against.

        A pid seen for the first time, or one now held by a different process,
        reports its current ticks so its first observed tick shows 0% rather
        than a value computed against another process's history.
        """
        prev_ticks = prev.prev_proc_ticks.get(proc.pid)
        if prev_ticks is None:
            return proc.cpu_ticks

        prev_start = prev.prev_proc_starts.get(proc.pid, 0)
        if prev_start and proc.start_time and prev_start != proc.start_time:
            log.debug("pid_reused", pid=proc.pid, reason="start_time")
            return proc.cpu_ticks

        if proc.cpu_ticks < prev_ticks:
            log.debug("pid_reused", pid=proc.pid, reason="ticks_regressed")
            return proc.cpu_ticks

        return prev_ticks
