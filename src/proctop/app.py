"""proctop - Main Textual application."""

import structlog
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Static

from proctop.config import Config
from proctop.controller import LoopController
from proctop.engine import DeltaEngine
from proctop.formatting import format_kb, format_uptime, usage_bar
from proctop.models import ProcessView, Snapshot, SortKey
from proctop.ranker import rank
from proctop.sources import CounterSource

log = structlog.get_logger()


class HeaderStats(Static):
    """Header widget showing CPU, memory and uptime."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 3;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._snapshot: Snapshot | None = None
        self._sort_key: SortKey = SortKey.CPU

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    def update_stats(self, snapshot: Snapshot, sort_key: SortKey) -> None:
        """Update the statistics from a snapshot."""
        self._snapshot = snapshot
        self._sort_key = sort_key
        try:
            self.query_one("#cpu-info", Static).update(self._get_cpu_info())
            self.query_one("#mem-info", Static).update(self._get_mem_info())
        except NoMatches:
            pass  # Widget not mounted yet

    def _get_cpu_info(self) -> str:
        """Get CPU bar and uptime display."""
        if self._snapshot is None:
            return "Sampling CPU..."
        pct = self._snapshot.system_cpu_pct
        bar = usage_bar(pct)
        return (
            f"CPU \\[[green]{bar}[/green]] {pct:5.1f}%\n"
            f"Uptime: {format_uptime(self._snapshot.uptime_s)}"
        )

    def _get_mem_info(self) -> str:
        """Get memory bar and sort key display."""
        if self._snapshot is None:
            return "Sampling memory..."
        snap = self._snapshot
        bar = usage_bar(snap.mem_pct)
        return (
            f"Mem \\[[cyan]{bar}[/cyan]] "
            f"{format_kb(snap.used_mem_kb).strip()}/{format_kb(snap.total_mem_kb).strip()}\n"
            f"Sort: {self._sort_key.value.upper()}  (s: toggle, q: quit)"
        )


class ProcessTable(Container):
    """Container for the ranked process table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._current_pids: list[int] = []

    @property
    def current_pids(self) -> list[int]:
        """Get pids in display order."""
        return list(self._current_pids)

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("NAME", key="name", width=24)
        table.add_column("CPU%", key="cpu", width=8)
        table.add_column("MEM(KB)", key="mem", width=12)

    def update_processes(self, processes: tuple[ProcessView, ...]) -> None:
        """
        Replace the table rows with already-ranked processes.

        Rows are rebuilt rather than patched so the display order always
        matches the ranking.
        """
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for proc in processes:
            table.add_row(
                str(proc.pid),
                proc.name[:24],
                f"{proc.cpu_pct:6.2f}",
                str(proc.resident_kb),
                key=str(proc.pid),
            )
        self._current_pids = [proc.pid for proc in processes]


class ProctopApp(App):
    """Main proctop application."""

    TITLE = "proctop"
    SUB_TITLE = "Process Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "sort", "Sort"),
    ]

    def __init__(self, config: Config | None = None, source: CounterSource | None = None) -> None:
        """
        Initialize the ProctopApp.

        Args:
            config: Run settings. Defaults to Config().
            source: Counter source. Defaults to the one the config selects.
        """
        super().__init__()
        self._settings = config or Config()
        self._source = source or self._settings.make_source()
        self._engine = DeltaEngine()
        self._controller = LoopController(
            interval=self._settings.interval,
            quantum=self._settings.quantum,
            sort_key=self._settings.sort_key,
        )
        self._snapshot: Snapshot | None = None

    @property
    def controller(self) -> LoopController:
        return self._controller

    @property
    def engine(self) -> DeltaEngine:
        return self._engine

    @property
    def snapshot(self) -> Snapshot | None:
        """Get the latest unranked snapshot."""
        return self._snapshot

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Prime the engine and start the cooperative tick timer."""
        self._engine.prime_from(self._source)
        self.set_interval(self._controller.quantum, self._on_quantum)

    def _on_quantum(self) -> None:
        """Called once per quantum on the app's event loop."""
        if self._controller.advance():
            self._controller.take_render_pending()
            self.refresh_view(resample=True)
        elif self._controller.take_render_pending():
            self.refresh_view(resample=False)

    def refresh_view(self, resample: bool = True) -> None:
        """Optionally take a new sample, then rank and render it."""
        if resample or self._snapshot is None:
            self._snapshot = self._engine.sample_from(self._source)

        ranked = rank(self._snapshot, self._controller.sort_key, self._settings.limit)
        self._update_ui(ranked)

    def _update_ui(self, snapshot: Snapshot) -> None:
        """Update the UI with a ranked snapshot."""
        sort_key = self._controller.sort_key
        try:
            self.query_one("#header-stats", HeaderStats).update_stats(snapshot, sort_key)
            self.query_one(ProcessTable).update_processes(snapshot.processes)
        except Exception:
            # Rendering problems must not stop sampling
            log.warning("render_failed", exc_info=True)

    def action_sort(self) -> None:
        """Toggle the sort key and re-render without resampling."""
        self._controller.handle_key("s")
        self.notify(f"Sort: {self._controller.sort_key.value.upper()}")
        if self._controller.take_render_pending():
            self.refresh_view(resample=False)

    async def action_quit(self) -> None:
        """Handle quit action."""
        self._controller.handle_key("q")
        self.exit(return_code=0)
