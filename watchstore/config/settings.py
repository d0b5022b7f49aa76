"""Runtime settings for file-backed repositories.

Environment variables are loaded from a ``.env`` file using ``python-dotenv``
and exposed through a frozen Pydantic settings object. Constructor arguments
of the repositories take precedence over these values.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

# Load environment variables from a .env file if present
load_dotenv()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_DEBOUNCE_MS = 100
DEFAULT_WATCH_POLL_SECONDS = 1.0
DEFAULT_SHUTDOWN_TIMEOUT = 2.0
DEFAULT_DEFAULTS_PREFIX = "defaults"


class Settings(BaseModel):
    """Immutable settings object shared by every repository instance."""

    debounce_seconds: float = Field(default=DEFAULT_DEBOUNCE_MS / 1000, ge=0)
    watch_poll_seconds: float = Field(default=DEFAULT_WATCH_POLL_SECONDS, gt=0)
    shutdown_timeout: float = Field(default=DEFAULT_SHUTDOWN_TIMEOUT, gt=0)
    defaults_prefix: str = DEFAULT_DEFAULTS_PREFIX
    log_file: Optional[Path] = None

    model_config = ConfigDict(frozen=True)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return float(default)
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise RuntimeError(f"{name} must not be negative, got {raw!r}")
    return value


def _build_settings() -> Settings:
    """Construct the ``Settings`` instance based on environment variables."""

    debounce_ms = _float_env("WATCHSTORE_DEBOUNCE_MS", DEFAULT_DEBOUNCE_MS)
    poll = _float_env("WATCHSTORE_WATCH_POLL_SECONDS", DEFAULT_WATCH_POLL_SECONDS)
    timeout = _float_env("WATCHSTORE_SHUTDOWN_TIMEOUT", DEFAULT_SHUTDOWN_TIMEOUT)
    if poll == 0 or timeout == 0:
        raise RuntimeError(
            "WATCHSTORE_WATCH_POLL_SECONDS and WATCHSTORE_SHUTDOWN_TIMEOUT must be positive"
        )

    prefix = (os.getenv("WATCHSTORE_DEFAULTS_PREFIX") or DEFAULT_DEFAULTS_PREFIX).strip("/")
    if not prefix:
        raise RuntimeError("WATCHSTORE_DEFAULTS_PREFIX must name a resource directory")

    log_file_raw = os.getenv("WATCHSTORE_LOG_FILE")
    log_file = Path(log_file_raw) if log_file_raw else None

    return Settings(
        debounce_seconds=debounce_ms / 1000,
        watch_poll_seconds=poll,
        shutdown_timeout=timeout,
        defaults_prefix=prefix,
        log_file=log_file,
    )


# Public settings instance
settings = _build_settings()

# Convenient exports
DEBOUNCE_SECONDS = settings.debounce_seconds
DEFAULTS_PREFIX = settings.defaults_prefix
