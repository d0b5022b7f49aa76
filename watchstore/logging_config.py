"""Logging configuration for watchstore.

Provides a JSON formatted logger named ``watchstore`` and simple cache
statistics. Library modules log through ``logging.getLogger(__name__)`` and
inherit the handlers installed here once an application calls
:func:`get_logger`.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

LOG_NAME = "watchstore"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 5

# Attributes present on every LogRecord. Anything else is considered an extra field.
DEFAULT_LOG_RECORD_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
    "asctime",
}


class JsonFormatter(logging.Formatter):
    """Formatter returning log records as JSON strings."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - short description
        base: dict[str, Any] = {
            "time": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in DEFAULT_LOG_RECORD_ATTRS
        }
        repository = extras.pop("repository", None)
        if repository is not None:
            base["repository"] = repository
        if extras:
            base["extra"] = extras
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False, default=str)


def get_logger(log_file: Optional[Path] = None) -> logging.Logger:
    """Return the configured package logger.

    A rotating file handler is added when ``log_file`` is given or when
    ``WATCHSTORE_LOG_FILE`` is set.
    """
    logger = logging.getLogger(LOG_NAME)
    if logger.handlers:
        return logger

    if log_file is None:
        from watchstore.config.settings import settings

        log_file = settings.log_file

    logger.setLevel(logging.DEBUG)

    formatter = JsonFormatter()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.INFO)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


class CacheStats:
    """Thread-safe cache hit/miss statistics collector."""

    def __init__(self, name: str = LOG_NAME) -> None:
        self._name = name
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()
        self._logger = logging.getLogger(f"{LOG_NAME}.stats")

    def record_hit(self) -> None:
        """Record a cache hit."""
        with self._lock:
            self._hits += 1

    def record_miss(self) -> None:
        """Record a cache miss."""
        with self._lock:
            self._misses += 1

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    @property
    def hit_rate(self) -> float:
        """Return the cache hit rate as a percentage."""
        with self._lock:
            total = self._hits + self._misses
            return (self._hits / total * 100) if total else 0.0

    def log_hit_rate(self) -> None:
        """Log the current cache hit rate."""
        self._logger.info(
            "Cache hit-rate",
            extra={"repository": self._name, "hit_rate": round(self.hit_rate, 2)},
        )
