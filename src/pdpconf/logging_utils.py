"""Logging setup for the pdpconf command line."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: int = logging.WARNING) -> logging.Logger:
    """Route ``pdpconf`` log records to stderr through Rich.

    Args:
        level: Level applied to the ``pdpconf`` logger.

    Returns:
        The configured package logger.
    """
    handler = RichHandler(console=Console(stderr=True), show_time=False, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("pdpconf")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(handler)
    return logger
