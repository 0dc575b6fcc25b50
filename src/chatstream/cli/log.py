"""Logging setup for the command line."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_TIMESTAMP_FORMAT = "%H:%M:%S"


def configure_logging(level: str = "WARNING", console: Console | None = None) -> None:
    """Route all chatstream logging through a Rich handler on stderr.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        console: Console to write to (default: a new stderr console)
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt=LOG_TIMESTAMP_FORMAT,
        handlers=[handler],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(logging.WARNING, logging.getLogger().level))
