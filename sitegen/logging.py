"""Logging utilities for sitegen commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Set

_LOGGER_NAME = "sitegen"

# Module names raised to DEBUG by the last configure_logging() call.
_debug_modules: Set[str] = set()


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the sitegen hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    debug_modules: Iterable[str] = (),
) -> logging.Logger:
    """Configure the sitegen logger with console output and optional file sink.

    `debug_modules` names loggers under the sitegen hierarchy (for example
    ``watch`` or ``plugins``) that log at DEBUG while the rest stay at INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for name in _debug_modules:
        get_logger(name).setLevel(logging.NOTSET)
    _debug_modules.clear()
    for name in debug_modules:
        name = name.strip()
        if name.startswith(f"{_LOGGER_NAME}."):
            name = name[len(_LOGGER_NAME) + 1 :]
        if not name:
            continue
        get_logger(name).setLevel(logging.DEBUG)
        _debug_modules.add(name)
    handler_level = logging.DEBUG if _debug_modules else level

    # Watch mode and the service reconfigure on every start.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(handler_level)
    stream_handler.setFormatter(logging.Formatter("[sitegen] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(handler_level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


__all__ = ["configure_logging", "get_logger"]
