"""Configure the loguru sink used across the board backend."""

from __future__ import annotations

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
    "{message}"
)


def configure_logging(level: str = "INFO") -> int:
    """Replace existing loguru sinks with a single stderr sink.

    Args:
        level: Minimum level name (case-insensitive).

    Returns:
        The loguru handler id of the installed sink.
    """
    logger.remove()
    return logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
