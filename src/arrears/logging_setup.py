"""Centralized logging configuration for the ``arrears`` package.

- ``configure_logging(...)`` attaches a single ``StreamHandler`` to the
  package root logger. Entry points (the CLI) call it once at startup.
- ``get_logger(name)`` returns a logger and makes sure the package root has
  at least a ``NullHandler`` so library use stays silent.

Library modules never attach handlers of their own.
"""

import logging
import os
import sys
from typing import IO, Optional, Union

_PKG_LOGGER_NAME = "arrears"
_CONFIGURED = False

LOG_LEVEL_ENV = "ARREARS_LOG_LEVEL"


def _level_from_name(value: str) -> Optional[int]:
    value = value.strip().upper()
    if value.isdigit():
        return int(value)
    numeric = getattr(logging, value, None)
    return numeric if isinstance(numeric, int) else None


def _parse_level(level: Union[int, str, None]) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        numeric = _level_from_name(level)
        if numeric is not None:
            return numeric
    # Env override when explicit ``level`` is None or unusable
    env_val = os.getenv(LOG_LEVEL_ENV)
    if env_val:
        numeric = _level_from_name(env_val)
        if numeric is not None:
            return numeric
    return logging.WARNING


def configure_logging(
    level: Union[int, str, None] = None,
    *,
    fmt: Optional[str] = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package root logger exactly once.

    Args:
        level: Level as int or name ("DEBUG"). When None, falls back to the
            ARREARS_LOG_LEVEL environment variable, then WARNING.
        fmt: Optional format string
        stream: Output stream for the handler
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    numeric_level = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s")
    )

    logger.setLevel(numeric_level)
    logger.addHandler(handler)
    # Avoid double emission via the root logger.
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name, ensuring safe defaults for library use."""
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
