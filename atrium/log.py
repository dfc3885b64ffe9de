"""Logging setup for Atrium commands."""

from __future__ import annotations

import logging

_LOGGER_NAME = "atrium"


def configure_logging(*, verbose: bool = False) -> logging.Logger:
    """Configure the atrium logger hierarchy with a single console handler."""
    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers so repeated CLI invocations don't duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[atrium] %(levelname)s %(message)s"))
    logger.addHandler(handler)
    return logger


__all__ = ["configure_logging"]
