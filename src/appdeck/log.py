"""Logging setup: one RichHandler on the ``appdeck`` logger."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_ROOT_LOGGER = "appdeck"


def configure_logging(level: str | int = "INFO", *, console: Console | None = None) -> logging.Logger:
    """Attach a RichHandler to the ``appdeck`` logger and set its level.

    Calling it again only updates the level; handlers are never stacked.
    """
    logger = logging.getLogger(_ROOT_LOGGER)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    return logger
