"""Mini README: Application-wide logging helpers for the levy treasury.

Structure:
    * get_logger - factory returning module loggers with baseline setup.
    * configure_root_logger - installs the shared handler exactly once.

Usage:
    Modules declare ``LOGGER = get_logger(__name__)`` at import time. The
    scheduler thread and request handlers share the same root handler, so
    the thread name is part of the format to tell background passes apart
    from operator commands.
"""

from __future__ import annotations

import logging
from typing import Optional

_LOGGER_INITIALISED = False


def configure_root_logger(level: int = logging.INFO) -> None:
    """Configure the root logger with a readable, thread-aware formatter."""

    global _LOGGER_INITIALISED
    if _LOGGER_INITIALISED:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            "[%(asctime)s] [%(levelname)s] [%(threadName)s] %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    _LOGGER_INITIALISED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-specific logger ensuring baseline configuration."""

    configure_root_logger()
    return logging.getLogger(name)
