"""Logging for the obsius session core.

All loggers hang off ``obsius``; each module takes a child for its area
through get_logger() ("session", "chat", "history", "acp", ...).
setup_logging() installs the handlers once per process:

- a file handler when ``logging.file`` or OBSIUS_LOG names a file
- a stderr handler only when stderr is a terminal, since hosts usually
  pipe it

``verbose`` (0=errors only .. 4=trace) wins over ``level``. ``areas``
overrides the level of single areas, e.g. ``{"acp": "trace"}``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from obsius.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

LOG_ENV_VAR = "OBSIUS_LOG"
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

logger = logging.getLogger("obsius")

_VERBOSITY_LEVELS = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

_initialized = False
_area_overrides: list[str] = []


class _LowercaseLevelFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers still see the original level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = record.levelname.lower()
        return super().format(record)


def parse_level(name: str | None, default: int = logging.INFO) -> int:
    """Level for a name such as "debug", "warn" or "trace"; ``default`` if unknown."""
    if not name:
        return default
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def resolve_level(config: LoggingConfig | None) -> int:
    """Effective level of the ``obsius`` logger; INFO when nothing is set."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        index = min(max(config.verbose, 0), len(_VERBOSITY_LEVELS) - 1)
        return _VERBOSITY_LEVELS[index]
    return parse_level(config.level)


def _open_log_file(path: str) -> logging.Handler | OSError:
    try:
        return logging.FileHandler(os.path.expanduser(path), mode="a", encoding="utf-8")
    except OSError as e:
        return e


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Install handlers and levels. Only the first call has any effect."""
    global _initialized
    if _initialized:
        return
    _initialized = True

    level = resolve_level(config)
    logger.setLevel(level)
    for area, area_level in (config.areas if config else {}).items():
        get_logger(area).setLevel(parse_level(area_level, level))
        _area_overrides.append(area)

    log_path = (config.file if config else None) or os.environ.get(LOG_ENV_VAR)
    handler: logging.Handler | None = None
    file_error: OSError | None = None
    if log_path:
        opened = _open_log_file(log_path)
        if isinstance(opened, OSError):
            file_error = opened
        else:
            handler = opened
    if handler is None and sys.stderr.isatty():
        handler = logging.StreamHandler(sys.stderr)

    if handler is not None:
        # Levels are decided by the loggers so area overrides get through
        handler.setFormatter(_LowercaseLevelFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
    if file_error is not None:
        logger.warning("Failed to open log file %s: %s", log_path, file_error)


def reset_logging() -> None:
    """Drop handlers and area levels so setup_logging() runs again."""
    global _initialized
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for area in _area_overrides:
        get_logger(area).setLevel(logging.NOTSET)
    _area_overrides.clear()
    logger.setLevel(logging.NOTSET)
    _initialized = False


def get_logger(area: str | None = None) -> logging.Logger:
    """Child logger for ``area``, or the ``obsius`` logger itself."""
    return logger.getChild(area) if area else logger
