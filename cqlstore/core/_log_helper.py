"""Logging helpers.

All loggers live under the ``cqlstore`` hierarchy. The library never
installs handlers on import; applications call ``configure_logging`` or
configure the standard ``logging`` module themselves.
"""

from __future__ import annotations

import logging

ROOT_LOGGER_NAME = "cqlstore"

log = logging.getLogger(ROOT_LOGGER_NAME)
log.addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: str = "INFO") -> None:
    """Attach a stream handler to the ``cqlstore`` logger.

    Args:
        level: Logging level name (e.g. INFO, DEBUG).
    """
    resolved_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%m-%d %H:%M:%S",
        )
    )
    for existing in list(log.handlers):
        if not isinstance(existing, logging.NullHandler):
            log.removeHandler(existing)
    log.addHandler(handler)
    log.setLevel(resolved_level)
