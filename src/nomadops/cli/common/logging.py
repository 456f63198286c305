"""Log handler setup: core modules log through the shared Rich console."""

from __future__ import annotations

import logging
import os

from rich.logging import RichHandler

from nomadops.cli.common.output import console

LOG_LEVEL_ENV = "NOMADOPS_LOG_LEVEL"
_LEVELS = ("debug", "info", "warning", "error")


def setup_logging(level: str | None = None) -> int:
    """
    Route `nomadops` loggers to the console.

    Args:
        level: Level name; falls back to $NOMADOPS_LOG_LEVEL, then "info".

    Returns:
        The numeric level that was applied.

    Raises:
        ValueError: If the level name is unknown.
    """
    name = (level or os.getenv(LOG_LEVEL_ENV) or "info").strip().lower()
    if name not in _LEVELS:
        raise ValueError(f"invalid log level {name!r}, expected one of: {', '.join(_LEVELS)}")
    numeric = getattr(logging, name.upper())

    logger = logging.getLogger("nomadops")
    logger.setLevel(numeric)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        logger.addHandler(handler)
    logger.propagate = False
    return numeric
