"""Logging setup for the ``worklog`` logger tree."""

from __future__ import annotations

import logging as std_logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "worklog"


def setup_logging(verbose: bool = False, console: Console | None = None) -> std_logging.Logger:
    """Install a single rich handler on the ``worklog`` logger (stderr)."""
    level = std_logging.DEBUG if verbose else std_logging.WARNING
    logger = std_logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=verbose,
        show_path=False,
        markup=False,
    )
    handler.setLevel(level)
    handler.setFormatter(std_logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
