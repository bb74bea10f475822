"""Centralized logging configuration for the ``pfledger`` package.

Entry points (the Typer CLI, ``python -m pfledger.rules``) call
:func:`configure_logging` once; library modules only ever do
``get_logger("pfledger.<module>")`` and stay silent until then.

Messages are short ``component:event key=value`` records, e.g.
``import:done import_id=3 rows_seen=12 inserted=0 skipped=12``, so they can be
grepped without a structured-logging dependency.

Environment
-----------
``PFLEDGER_LOG_LEVEL``
    Level name or number used when no explicit level is passed (default INFO).
``PFLEDGER_LOG_FORMAT``
    Optional ``logging.Formatter`` format string.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "pfledger"
_LEVEL_ENV = "PFLEDGER_LOG_LEVEL"
_FORMAT_ENV = "PFLEDGER_LOG_FORMAT"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

# The handler installed by configure_logging, or None while unconfigured.
_handler: logging.Handler | None = None


def resolve_level(level: int | str | None = None) -> int:
    """Turn an int, a level name or a numeric string into a logging level.

    ``None`` falls back to ``PFLEDGER_LOG_LEVEL`` and then to INFO; unknown
    names also resolve to INFO.
    """

    if level is None:
        level = os.getenv(_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelNamesMapping().get(name)
    return numeric if numeric is not None else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Attach a single ``StreamHandler`` to the ``pfledger`` logger.

    Only the first call has an effect; later calls return the configured
    logger unchanged. ``stream`` defaults to the current ``sys.stderr``.
    """

    global _handler
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is not None:
        return logger

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or os.getenv(_FORMAT_ENV) or DEFAULT_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    # Records stop here; the root logger would print them twice.
    logger.propagate = False
    _handler = handler
    return logger


def reset_logging() -> None:
    """Undo :func:`configure_logging` (used between CLI invocations in tests)."""

    global _handler
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler = None
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name; the package logger gets a ``NullHandler`` until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["DEFAULT_FORMAT", "configure_logging", "get_logger", "reset_logging", "resolve_level"]
