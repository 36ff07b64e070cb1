"""
Logging configuration module.
Provides standardized logging setup using loguru.
"""

import sys
from typing import Optional

from loguru import logger

DEFAULT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(
    level: str = "WARNING",
    format: str = DEFAULT_FORMAT,
    log_file: Optional[str] = None,
    colorize: Optional[bool] = None,
) -> None:
    """
    Configure loguru logger.

    Logs always go to stderr so that stdout carries only command output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Log message format
        log_file: Optional file path to write logs
        colorize: Force or disable colors (None = detect terminal)
    """
    logger.remove()

    logger.add(
        sys.stderr,
        format=format,
        level=level,
        colorize=colorize,
    )

    if log_file:
        logger.add(
            log_file,
            format=format,
            level=level,
            rotation="10 MB",
            retention="7 days",
        )
