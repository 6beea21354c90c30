"""Logging helpers for edgecast."""

from __future__ import annotations

import logging
from typing import Iterable


def configure_logging(
    level: int | str = logging.INFO,
    handlers: Iterable[logging.Handler] | None = None,
) -> None:
    """Configure root logging for command line sessions.

    Monte Carlo batches can run for a while; a consistent format makes the
    progress and stop messages from the runner easy to follow.  Applications
    embedding the library may call this once at start-up.
    """

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=list(handlers) if handlers else None,
    )
