"""Loguru sink configuration for the CLI and library users."""

from __future__ import annotations

import sys

from loguru import logger

_CONFIGURED = False

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"


def configure_logging(level: str = "WARNING", log_file: str | None = None, force: bool = False) -> None:
    """
    Replace loguru's default sink with the drill's sinks.

    Args:
        level: Minimum level for the stderr sink
        log_file: Optional path for a rotating DEBUG-level file sink
        force: Reconfigure even if already configured
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    if log_file:
        logger.add(log_file, level="DEBUG", format=FILE_FORMAT, rotation="5 MB", retention=3)

    _CONFIGURED = True
    logger.debug("Logging configured (level={}, file={})", level, log_file)
