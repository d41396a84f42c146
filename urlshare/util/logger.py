"""Unified logger for the whole project.

The ``urlshare`` logger is usable at import time with level and directory
taken from the module-level settings; ``configure_logging`` re-targets it at
the explicit settings an application was built with.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from urlshare.config.settings import Settings, settings


LOGGER_NAME = "urlshare"
LOG_FILE_NAME = "urlshare.log"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 10
_FORMATTER = logging.Formatter(
    "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _normalize_level(raw: str) -> int:
    level = logging.getLevelName(str(raw or "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _file_handler(log_dir: Path, level: int) -> RotatingFileHandler | None:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    except (OSError, PermissionError):
        # 日志目录不可写时只输出到 stderr
        return None
    handler.setLevel(level)
    handler.setFormatter(_FORMATTER)
    return handler


def configure_logging(config: Settings) -> logging.Logger:
    """(Re)attach handlers for config's level and log directory."""
    configured_logger = logging.getLogger(LOGGER_NAME)
    level = _normalize_level(config.log_level)
    configured_logger.setLevel(level)

    for handler in list(configured_logger.handlers):
        configured_logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(_FORMATTER)
    configured_logger.addHandler(stream_handler)

    file_handler = _file_handler(Path(config.log_dir), level) if config.log_dir else None
    if file_handler is not None:
        configured_logger.addHandler(file_handler)

    configured_logger.propagate = False
    return configured_logger


def _build_logger() -> logging.Logger:
    existing = logging.getLogger(LOGGER_NAME)
    if existing.handlers:
        return existing
    return configure_logging(settings)


logger = _build_logger()


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under urlshare namespace."""

    return logger.getChild(name)
