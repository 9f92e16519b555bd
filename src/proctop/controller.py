"""Cooperative loop control for proctop.

The sampling interval is split into short quanta. Between quanta a pending
keypress is checked without blocking, so quit and toggle-sort are honored
within one quantum instead of after a full interval.
"""

import time
from collections.abc import Callable
from enum import Enum

import structlog

from proctop.models import SortKey

log = structlog.get_logger()

MIN_PERIOD = 0.1  # seconds


class Command(Enum):
    """Commands recognized from single keypresses."""

    NONE = "none"
    QUIT = "quit"
    TOGGLE_SORT = "toggle_sort"


KEY_COMMANDS = {
    "q": Command.QUIT,
    "s": Command.TOGGLE_SORT,
}


class LoopController:
    """
    Tracks tick timing, sort key and pending commands.

    The controller never sleeps on its own in advance(); whoever drives it (the
    Textual timer or run()) calls advance() once per quantum.
    """

    def __init__(
        self,
        interval: float = 2.0,
        quantum: float = 0.1,
        sort_key: SortKey = SortKey.CPU,
    ) -> None:
        """
        Initialize the LoopController.

        Args:
            interval: Seconds between samples. Default 2.0s.
            quantum: Seconds between command checks. Default 0.1s.
            sort_key: Initial sort key.
        """
        self._interval = max(MIN_PERIOD, interval)
        self._quantum = min(max(MIN_PERIOD, quantum), self._interval)
        self._sort_key = sort_key
        self._elapsed = 0.0
        self._should_quit = False
        self._render_pending = False

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def quantum(self) -> float:
        return self._quantum

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    @property
    def should_quit(self) -> bool:
        return self._should_quit

    @property
    def render_pending(self) -> bool:
        return self._render_pending

    def handle_key(self, key: str | None) -> Command:
        """Apply a single keypress and return the command it mapped to."""
        command = KEY_COMMANDS.get(key or "", Command.NONE)
        if command is Command.QUIT:
            self._should_quit = True
        elif command is Command.TOGGLE_SORT:
            self._sort_key = self._sort_key.toggled()
            self._render_pending = True
            log.debug("sort_toggled", sort_key=self._sort_key.value)
        return command

    def advance(self, elapsed: float | None = None) -> bool:
        """
        Account for one quantum of waiting.

        Args:
            elapsed: Seconds actually waited. Defaults to one quantum.

        Returns:
            True when a full interval has accumulated and a sample is due.
        """
        if self._should_quit:
            return False

        self._elapsed += self._quantum if elapsed is None else max(elapsed, 0.0)
        # Tolerate float drift from summing quanta
        if self._elapsed + 1e-9 >= self._interval:
            self._elapsed = 0.0
            return True
        return False

    def take_render_pending(self) -> bool:
        """Consume a pending re-render request."""
        pending = self._render_pending
        self._render_pending = False
        return pending

    def run(
        self,
        step: Callable[[bool], None],
        *,
        read_key: Callable[[], str | None],
        sleep: Callable[[float], None] = time.sleep,
        max_ticks: int | None = None,
    ) -> int:
        """
        Drive the cooperative loop until quit.

        Each quantum: check for a pending key without blocking, wait one
        quantum, then call step(resample) if a sample is due (resample=True) or
        only a re-render is pending (resample=False).

        Args:
            step: Callback performing sample/rank/render.
            read_key: Non-blocking key reader returning None when no key waits.
            sleep: Function used to wait one quantum.
            max_ticks: Stop after this many quanta (for tests and one-shot runs).

        Returns:
            Process exit code (0).
        """
        ticks = 0
        while not self._should_quit:
            if max_ticks is not None and ticks >= max_ticks:
                break
            ticks += 1

            self.handle_key(read_key())
            if self._should_quit:
                break

            sleep(self._quantum)
            due = self.advance()
            if due:
                self._render_pending = False
                step(True)
            elif self.take_render_pending():
                step(False)

        log.debug("loop_finished", quanta=ticks)
        return 0
