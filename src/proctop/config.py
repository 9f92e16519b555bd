"""Runtime configuration for proctop.

Configuration comes from command line options only; nothing is persisted.
"""

from dataclasses import dataclass
from pathlib import Path

from proctop.models import SortKey
from proctop.sources import CounterSource, ProcfsCounterSource, PsutilCounterSource

SOURCES = ("psutil", "procfs")


@dataclass(frozen=True)
class Config:
    """Settings for one proctop run."""

    interval: float = 2.0  # Seconds between samples
    quantum: float = 0.1  # Seconds between keypress checks
    limit: int = 20  # Rows shown in the process table
    sort_key: SortKey = SortKey.CPU
    source: str = "psutil"
    proc_root: Path = Path("/proc")  # Only used by the procfs source
    log_file: Path | None = None
    verbose: bool = False

    @classmethod
    def from_options(
        cls,
        *,
        interval: float,
        limit: int,
        sort: str,
        source: str,
        log_file: str | Path | None = None,
        verbose: bool = False,
    ) -> "Config":
        """Build and validate a config from CLI option values."""
        config = cls(
            interval=interval,
            limit=limit,
            sort_key=SortKey(sort),
            source=source,
            log_file=Path(log_file) if log_file else None,
            verbose=verbose,
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Check option ranges.

        Raises:
            ValueError: If a setting is out of range.
        """
        if self.interval < 0.1:
            raise ValueError(f"interval must be at least 0.1s, got {self.interval}")
        if not 0 < self.quantum <= self.interval:
            raise ValueError(f"quantum must be in (0, interval], got {self.quantum}")
        if self.limit < 0:
            raise ValueError(f"limit must not be negative, got {self.limit}")
        if self.source not in SOURCES:
            raise ValueError(f"unknown source {self.source!r}, expected one of {SOURCES}")

    def make_source(self) -> CounterSource:
        """Build the configured counter source."""
        if self.source == "procfs":
            return ProcfsCounterSource(self.proc_root)
        return PsutilCounterSource()
