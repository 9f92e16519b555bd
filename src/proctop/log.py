"""Structlog configuration for proctop.

The TUI owns the terminal, so console output is limited to warnings unless a
log file is given. File output is JSON Lines through the stdlib handler.
"""

import logging
from pathlib import Path

import structlog


def configure_logging(log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_file: Write JSON lines here instead of stderr.
        verbose: Log at DEBUG instead of INFO (file) / WARNING (stderr).
    """
    if log_file is not None:
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
        renderer = structlog.processors.JSONRenderer()
        level = logging.DEBUG if verbose else logging.INFO
    else:
        handler = logging.StreamHandler()
        renderer = structlog.dev.ConsoleRenderer(colors=False)
        level = logging.DEBUG if verbose else logging.WARNING

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=[
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
