"""
Logging helpers for nicecrop.

Library modules only ever do::

    from nicecrop.utils.logging import get_logger
    logger = get_logger(__name__)

The ``nicecrop`` logger carries a NullHandler until an application opts in
by calling :func:`configure_logging` (the ``nicecrop`` console app and the
examples do this). When nicecrop is embedded in a host NiceGUI app that
already configured logging, records simply propagate to the host handlers.

No log files are written.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

LOGGER_NAME = "nicecrop"
LOG_LEVEL_ENV = "NICECROP_LOG_LEVEL"

DEFAULT_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d:%(funcName)s: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Optional[Union[str, int]]) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return int(level)


def configure_logging(
    level: Optional[Union[str, int]] = None,
    *,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Attach a stderr handler to the ``nicecrop`` logger (never the root logger).

    Parameters
    ----------
    level:
        Logging level name or number. Falls back to ``NICECROP_LOG_LEVEL``,
        then ``"INFO"``.
    fmt, datefmt:
        Formatter overrides.
    force:
        Drop existing handlers first. Without it a second call is a no-op
        once a stderr handler is installed.
    """
    resolved = _resolve_level(level)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved)

    if force:
        for h in logger.handlers[:]:
            h.close()
            logger.removeHandler(h)
    else:
        for h in logger.handlers:
            if isinstance(h, logging.StreamHandler) and h.stream is sys.stderr:
                h.setLevel(resolved)
                return

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(resolved)
    console.setFormatter(logging.Formatter(fmt=fmt or DEFAULT_FMT, datefmt=datefmt or DEFAULT_DATEFMT))
    logger.addHandler(console)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return ``logging.getLogger(name)``, defaulting to the package logger."""
    return logging.getLogger(name or LOGGER_NAME)
