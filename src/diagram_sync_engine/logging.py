"""
Logging for the diagram sync engine.

Every module logs through a child of the ``diagram_sync_engine`` logger. The
viewer server also runs uvicorn, whose loggers are kept at the same level so
``-v`` turns on request logging along with view lifecycle messages.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

ROOT_LOGGER = "diagram_sync_engine"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def resolve_level(level: str | int) -> int:
    """Map a level name such as ``"debug"`` to its number; unknown names give INFO."""
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(
    level: str | int = "INFO",
    format: str = DEFAULT_FORMAT,
    stream: TextIO | None = None,
    file: str | None = None,
) -> logging.Logger:
    """
    Send package log records to *stream* (stderr by default) and *file*.

    Calling it again replaces the handlers installed by the previous call.

    Example:
        setup_logging("DEBUG")
        setup_logging(config.log_level, file="viewer.log")
    """
    level = resolve_level(level)
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.handlers.clear()

    formatter = logging.Formatter(format)
    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if file:
        handlers.append(logging.FileHandler(file))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """Child logger for a submodule, e.g. ``get_logger("hub")``."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def server_log_level(level: str | int) -> int:
    """Align uvicorn's loggers with *level* and return it as a number."""
    number = resolve_level(level)
    for name in _SERVER_LOGGERS:
        logging.getLogger(name).setLevel(number)
    return number
