"""Counter sources feeding the delta engine.

Two implementations are provided. PsutilCounterSource works wherever psutil
does and is the default. ProcfsCounterSource reads the Linux /proc files
directly and takes a root path so it can be pointed at a fixture tree.

Every read fails soft: an unreadable counter yields a zero or empty value for
that tick, and a process that vanishes or cannot be parsed is skipped.
"""

import os
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

import psutil
import structlog

from proctop.models import RawProcessRecord, RawSystemCounters

log = structlog.get_logger()

# Fields of the aggregate "cpu" line summed into total ticks. guest and
# guest_nice are already accounted for in user and nice.
CPU_FIELDS = ("user", "nice", "system", "idle", "iowait", "irq", "softirq", "steal")
IDLE_FIELDS = ("idle", "iowait")


def _sysconf(name: str, default: int) -> int:
    try:
        value = os.sysconf(name)
    except (AttributeError, ValueError, OSError):  # pragma: no cover - platform specific
        return default
    return value if value > 0 else default


CLOCK_TICKS = _sysconf("SC_CLK_TCK", 100)
PAGE_SIZE = _sysconf("SC_PAGE_SIZE", 4096)


@runtime_checkable
class CounterSource(Protocol):
    """Narrow contract the engine consumes."""

    def read_system_counters(self) -> RawSystemCounters: ...

    def read_memory_kb(self) -> tuple[int, int]: ...

    def read_uptime_seconds(self) -> int: ...

    def list_processes(self) -> list[RawProcessRecord]: ...


# ─────────────────────────────────────────────────────────────────────────────
# psutil
# ─────────────────────────────────────────────────────────────────────────────


class PsutilCounterSource:
    """
    Counter source backed by psutil.

    psutil reports CPU times in seconds; they are converted back to clock ticks
    so the engine always works on integer tick counters.

    Process start times are measured against the boot time read once at
    construction. psutil re-derives boot time from the wall clock, so a clock
    step would otherwise shift every start time at once and make every pid
    look reused for a tick.
    """

    _ATTRS = ["pid", "name", "cpu_times", "memory_info", "create_time"]

    def __init__(self, clock_ticks: int = CLOCK_TICKS) -> None:
        self._clock_ticks = clock_ticks
        try:
            self._boot_time = psutil.boot_time()
        except (OSError, RuntimeError):
            self._boot_time = 0.0

    def _to_ticks(self, seconds: float) -> int:
        return max(0, round(seconds * self._clock_ticks))

    def read_system_counters(self) -> RawSystemCounters:
        try:
            times = psutil.cpu_times()
        except (OSError, RuntimeError) as e:
            log.debug("system_counters_unavailable", error=str(e))
            return RawSystemCounters.zero()

        total = sum(self._to_ticks(getattr(times, name, 0.0)) for name in CPU_FIELDS)
        idle = sum(self._to_ticks(getattr(times, name, 0.0)) for name in IDLE_FIELDS)
        return RawSystemCounters(total_ticks=total, idle_ticks=min(idle, total))

    def read_memory_kb(self) -> tuple[int, int]:
        try:
            mem = psutil.virtual_memory()
        except (OSError, RuntimeError) as e:
            log.debug("memory_unavailable", error=str(e))
            return (0, 0)
        return (mem.total // 1024, mem.available // 1024)

    def read_uptime_seconds(self) -> int:
        try:
            boot_time = psutil.boot_time()
        except (OSError, RuntimeError) as e:
            log.debug("uptime_unavailable", error=str(e))
            return 0
        return max(0, int(time.time() - boot_time))

    def list_processes(self) -> list[RawProcessRecord]:
        """
        Collect raw readings of all running processes.

        Processes that die mid-scan, deny access or are zombies are skipped.
        """
        boot_time = self._boot_time
        records: list[RawProcessRecord] = []
        try:
            procs = psutil.process_iter(attrs=self._ATTRS)
            for proc in procs:
                try:
                    with proc.oneshot():
                        info = proc.info
                        cpu_times = info.get("cpu_times")
                        if cpu_times is None:
                            continue
                        mem_info = info.get("memory_info")
                        create_time = info.get("create_time") or 0.0

                        records.append(
                            RawProcessRecord(
                                pid=info["pid"],
                                name=info.get("name") or "",
                                cpu_ticks=self._to_ticks(cpu_times.user + cpu_times.system),
                                resident_kb=(mem_info.rss // 1024) if mem_info else 0,
                                start_time=(
                                    self._to_ticks(create_time - boot_time)
                                    if create_time and boot_time
                                    else 0
                                ),
                            )
                        )
                except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                    continue
        except OSError as e:
            log.debug("process_list_unavailable", error=str(e))
            return []

        return records


# ─────────────────────────────────────────────────────────────────────────────
# /proc parsing
# ─────────────────────────────────────────────────────────────────────────────


def parse_cpu_line(line: str) -> RawSystemCounters:
    """Parse the aggregate "cpu" line of /proc/stat.

    Missing trailing fields (older kernels) count as zero.

    Raises:
        ValueError: If the line is not an aggregate cpu line.
    """
    parts = line.split()
    if not parts or parts[0] != "cpu":
        raise ValueError(f"not an aggregate cpu line: {line!r}")

    values = [int(v) for v in parts[1 : 1 + len(CPU_FIELDS)]]
    values += [0] * (len(CPU_FIELDS) - len(values))
    fields = dict(zip(CPU_FIELDS, values))

    total = sum(values)
    idle = sum(fields[name] for name in IDLE_FIELDS)
    return RawSystemCounters(total_ticks=total, idle_ticks=idle)


def parse_meminfo(text: str) -> tuple[int, int]:
    """Return (MemTotal, MemAvailable) in KB from /proc/meminfo text."""
    values: dict[str, int] = {}
    for line in text.splitlines():
        key, _, rest = line.partition(":")
        if key in ("MemTotal", "MemAvailable", "MemFree"):
            try:
                values[key] = int(rest.split()[0])
            except (IndexError, ValueError):
                continue

    total = values.get("MemTotal", 0)
    # Kernels before 3.14 have no MemAvailable
    available = values.get("MemAvailable", values.get("MemFree", 0))
    return (total, available)


def parse_uptime(text: str) -> int:
    """Return whole seconds of uptime from /proc/uptime text."""
    return int(float(text.split()[0]))


def parse_pid_stat(line: str) -> tuple[int, str, int, int] | None:
    """
    Parse a /proc/<pid>/stat line.

    The name is taken between the first "(" and the last ")" so names that
    themselves contain parentheses survive.

    Returns:
        (pid, name, utime + stime, starttime), or None if the line is malformed.
    """
    open_idx = line.find("(")
    close_idx = line.rfind(")")
    if open_idx <= 0 or close_idx <= open_idx:
        return None

    # state ppid pgrp session tty_nr tpgid flags minflt cminflt majflt cmajflt utime stime ...
    rest = line[close_idx + 1 :].split()
    if len(rest) < 13:
        return None

    try:
        pid = int(line[:open_idx])
        utime = int(rest[11])
        stime = int(rest[12])
        start_time = int(rest[19]) if len(rest) > 19 else 0
    except ValueError:
        return None

    return (pid, line[open_idx + 1 : close_idx], utime + stime, start_time)


class ProcfsCounterSource:
    """Counter source reading Linux /proc files directly."""

    def __init__(self, root: Path | str = "/proc", page_size: int = PAGE_SIZE) -> None:
        self._root = Path(root)
        self._page_kb = max(page_size // 1024, 1)

    @property
    def root(self) -> Path:
        return self._root

    def read_system_counters(self) -> RawSystemCounters:
        try:
            with (self._root / "stat").open(errors="replace") as f:
                return parse_cpu_line(f.readline())
        except (OSError, ValueError) as e:
            log.debug("system_counters_unavailable", error=str(e))
            return RawSystemCounters.zero()

    def read_memory_kb(self) -> tuple[int, int]:
        try:
            return parse_meminfo((self._root / "meminfo").read_text(errors="replace"))
        except OSError as e:
            log.debug("memory_unavailable", error=str(e))
            return (0, 0)

    def read_uptime_seconds(self) -> int:
        try:
            return parse_uptime((self._root / "uptime").read_text(errors="replace"))
        except (OSError, ValueError, IndexError) as e:
            log.debug("uptime_unavailable", error=str(e))
            return 0

    def list_processes(self) -> list[RawProcessRecord]:
        try:
            entries = [entry for entry in self._root.iterdir() if entry.name.isdigit()]
        except OSError as e:
            log.debug("process_list_unavailable", error=str(e))
            return []

        records: list[RawProcessRecord] = []
        for entry in entries:
            record = self._read_process(entry)
            if record is not None:
                records.append(record)
        return records

    def _read_process(self, proc_dir: Path) -> RawProcessRecord | None:
        try:
            line = (proc_dir / "stat").read_text(errors="replace")
        except OSError:
            # Exited between listing and reading
            return None

        parsed = parse_pid_stat(line)
        if parsed is None:
            log.debug("malformed_process_record", entry=proc_dir.name)
            return None
        pid, name, cpu_ticks, start_time = parsed

        resident_kb = 0
        try:
            fields = (proc_dir / "statm").read_text(errors="replace").split()
            resident_kb = int(fields[1]) * self._page_kb
        except (OSError, IndexError, ValueError):
            pass

        return RawProcessRecord(
            pid=pid,
            name=name,
            cpu_ticks=cpu_ticks,
            resident_kb=resident_kb,
            start_time=start_time,
        )
