"""
Logging utilities for the API process and maintenance scripts.

Provides a consistent logging format and configuration.
"""

import logging
import sys
from typing import Iterable

_CHATTY_LOGGERS = ("httpx", "httpcore")


def configure_logging(
    level: str = "INFO", *, quiet_loggers: Iterable[str] = _CHATTY_LOGGERS
) -> None:
    """Configure root logging and keep HTTP client request lines out of INFO."""
    root_level = logging.getLevelName(level.upper())
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    if root_level == logging.DEBUG:
        return
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["configure_logging"]
