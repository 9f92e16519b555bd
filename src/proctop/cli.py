"""CLI entry point for proctop."""

import sys
from collections.abc import Callable

import click
import structlog

from proctop.config import SOURCES, Config
from proctop.controller import LoopController
from proctop.engine import DeltaEngine
from proctop.formatting import render_table
from proctop.log import configure_logging
from proctop.ranker import rank
from proctop.sources import CounterSource

log = structlog.get_logger()


def run_batch(
    config: Config, source: CounterSource, iterations: int, echo: Callable[[str], None] = click.echo
) -> int:
    """
    Print `iterations` ranked tables, one per interval, without a TUI.

    Returns:
        Process exit code.
    """
    engine = DeltaEngine()
    engine.prime_from(source)
    controller = LoopController(
        interval=config.interval,
        quantum=config.quantum,
        sort_key=config.sort_key,
    )
    printed = 0

    def step(resample: bool) -> None:
        nonlocal printed
        if not resample:
            return
        snapshot = rank(engine.sample_from(source), controller.sort_key, config.limit)
        if printed:
            echo("")
        echo(render_table(snapshot, controller.sort_key))
        printed += 1
        if printed >= iterations:
            controller.handle_key("q")

    try:
        return controller.run(step, read_key=lambda: None)
    except KeyboardInterrupt:
        return 0


@click.command()
@click.version_option(package_name="proctop")
@click.option(
    "--interval", "-d", default=2.0, show_default=True, type=float, help="Seconds between samples."
)
@click.option(
    "--limit", "-n", default=20, show_default=True, type=int, help="Number of processes shown."
)
@click.option(
    "--sort",
    type=click.Choice(["cpu", "mem"]),
    default="cpu",
    show_default=True,
    help="Initial sort key.",
)
@click.option(
    "--source",
    type=click.Choice(list(SOURCES)),
    default="psutil",
    show_default=True,
    help="Where counters are read from.",
)
@click.option("--batch", "-b", is_flag=True, help="Print plain tables instead of the TUI.")
@click.option(
    "--iterations", default=1, show_default=True, type=int, help="Tables printed in batch mode."
)
@click.option("--log-file", type=click.Path(dir_okay=False), help="Write JSON logs to this file.")
@click.option("--verbose", "-v", is_flag=True, help="Log debug events.")
def main(
    interval: float,
    limit: int,
    sort: str,
    source: str,
    batch: bool,
    iterations: int,
    log_file: str | None,
    verbose: bool,
) -> None:
    """Live ranked view of process CPU and memory usage."""
    try:
        config = Config.from_options(
            interval=interval,
            limit=limit,
            sort=sort,
            source=source,
            log_file=log_file,
            verbose=verbose,
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    if iterations < 1:
        raise click.BadParameter("iterations must be at least 1", param_hint="--iterations")

    configure_logging(config.log_file, config.verbose)
    log.info("starting", source=config.source, interval=config.interval, batch=batch)

    counter_source = config.make_source()
    if batch:
        sys.exit(run_batch(config, counter_source, iterations))

    from proctop.app import ProctopApp

    app = ProctopApp(config, counter_source)
    app.run()
    sys.exit(app.return_code or 0)


if __name__ == "__main__":
    main()
