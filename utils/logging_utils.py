"""Logging setup for the plugin command-line host."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"


def configure_logging(level: int | str | None = None) -> None:
    """Install a root handler, or adjust the level of an existing one."""

    root_logger = logging.getLogger()

    resolved_level: int | None
    if isinstance(level, str):
        resolved_level = logging.getLevelName(level.upper())
        if not isinstance(resolved_level, int):
            resolved_level = logging.WARNING
    else:
        resolved_level = level

    if not root_logger.handlers:
        logging.basicConfig(level=resolved_level or logging.WARNING, format=LOG_FORMAT)
    elif resolved_level is not None:
        root_logger.setLevel(resolved_level)
        for handler in root_logger.handlers:
            handler.setLevel(resolved_level)


__all__ = ["LOG_FORMAT", "configure_logging"]
