from __future__ import annotations

import logging
import os
import tempfile
import threading
import zipfile
from pathlib import Path
from typing import Any, Callable, Generic, Optional, Type, TypeVar

from pydantic import BaseModel

from watchstore.config.settings import settings
from watchstore.domain.errors import (
    ConfigNotLoadedError,
    ConfigurationError,
    ConfigValidationError,
)
from watchstore.handlers import FileHandler
from watchstore.handlers.json_handler import JsonFileHandler
from watchstore.handlers.yaml_handler import YamlFileHandler
from watchstore.infrastructure.cache_store import CacheStore
from watchstore.infrastructure.defaults import DefaultsSource
from watchstore.infrastructure.notifier import ChangeNotifier
from watchstore.infrastructure.watch_loop import WatchLoop

T = TypeVar("T")

Validator = Callable[[T], bool]
ConfigListener = Callable[[Optional[T], T], None]

logger = logging.getLogger(__name__)


class ConfigFactory(Generic[T]):
    """A configuration factory that loads, saves and watches one configuration file.

    The factory automatically reloads the configuration when the file changes.

    Features:
    - Thread-safe configuration handling
    - File watching with automatic reloading
    - Configuration change callbacks
    - Validation support

    Usage::

        factory = ConfigFactory.yaml(Path("config.yml"), MyConfig)
        factory.on_config_changed(lambda old, new: print(old, "->", new))
        factory.load_or_create(MyConfig())

        factory.save(modified)
        factory.save(modified, validator=lambda config: bool(config.name))
    """

    def __init__(
        self,
        path: Path,
        handler: FileHandler[T],
        *,
        defaults: Optional[DefaultsSource] = None,
        debounce_seconds: Optional[float] = None,
        watch: bool = True,
    ) -> None:
        self._path = Path(path).resolve()
        self._handler = handler
        self._defaults = defaults
        self._debounce_seconds = (
            settings.debounce_seconds if debounce_seconds is None else float(debounce_seconds)
        )
        self._watch_enabled = watch

        self._cache: CacheStore[Path, T] = CacheStore()
        self._save_lock = threading.Lock()
        self._notifier: ChangeNotifier[Path, T] = ChangeNotifier(self._path.stem)
        self._watch_loop: Optional[WatchLoop] = None
        self._closed = False

    @classmethod
    def yaml(cls, path: Path, model: Optional[Type[BaseModel]] = None, **kwargs: Any) -> "ConfigFactory[Any]":
        return cls(path, YamlFileHandler(model), **kwargs)

    @classmethod
    def json(cls, path: Path, model: Optional[Type[BaseModel]] = None, **kwargs: Any) -> "ConfigFactory[Any]":
        return cls(path, JsonFileHandler(model), **kwargs)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def watching(self) -> bool:
        return self._watch_loop is not None and self._watch_loop.running

    def exists(self) -> bool:
        """Check if the configuration file exists."""
        return self._path.is_file()

    def load_or_create(self, default: T, validator: Optional[Validator[T]] = None) -> None:
        """Load the existing configuration or create the file from defaults.

        If the file is missing it is seeded from the bundled defaults entry of
        the same name when one exists, otherwise ``default`` is written.

        :param default: Configuration used when no file exists.
        :param validator: Optional validation function for the configuration.
        :raises ConfigurationError: if loading, validation or saving fails.
        """
        if self._closed:
            raise ConfigurationError(f"Configuration factory for {self._path.name} is closed")

        if self.exists():
            self._load(validator)
        elif not self._seed_from_defaults(validator):
            self._create_default(default, validator)

        self._start_watching()

    def _seed_from_defaults(self, validator: Optional[Validator[T]]) -> bool:
        source = self._defaults
        if source is None:
            return False
        try:
            if not source.has(self._path.name):
                return False
            data = source.prepare(source.read(self._path.name))
        except (OSError, KeyError, zipfile.BadZipFile) as exc:
            logger.warning("Error copying default configuration %s: %s", self._path.name, exc)
            return False

        # The bundled file only replaces the target once it loads and validates.
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        staged = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            with self._save_lock:
                config = self._read_checked(staged, validator)
                os.replace(staged, self._path)
                self._update(config)
        finally:
            if staged.exists():
                staged.unlink()
        logger.info("Seeded %s from bundled defaults", self._path.name)
        return True

    def _create_default(self, default: T, validator: Optional[Validator[T]]) -> None:
        if not self._is_valid(default, validator):
            raise ConfigValidationError("Default configuration failed validation")
        try:
            self._write(default)
        except ConfigurationError as exc:
            raise ConfigurationError("Failed to save default configuration") from exc.__cause__

    def get_config(self) -> T:
        """Return the current configuration.

        :raises ConfigNotLoadedError: if no configuration has been loaded yet.
        """
        config = self._cache.get(self._path)
        if config is None:
            raise ConfigNotLoadedError("Configuration not loaded or invalid type")
        return config

    def reload_config(self, validator: Optional[Validator[T]] = None) -> None:
        """Manually reload the configuration from disk.

        :raises ConfigurationError: if loading or validation fails.
        """
        self._load(validator)

    def _load(self, validator: Optional[Validator[T]] = None) -> None:
        with self._save_lock:
            self._update(self._read_checked(self._path, validator))

    def _read_checked(self, path: Path, validator: Optional[Validator[T]]) -> T:
        try:
            loaded = self._handler.load(path)
        except Exception as exc:
            raise ConfigurationError(f"Failed to load configuration {self._path.name}") from exc
        if loaded is None:
            raise ConfigurationError(f"Failed to parse configuration file {self._path.name}")
        if not self._is_valid(loaded, validator):
            raise ConfigValidationError("Configuration failed validation")
        return loaded

    def save(self, config: T, validator: Optional[Validator[T]] = None) -> None:
        """Save the provided configuration to disk.

        :raises ConfigValidationError: if validation fails; nothing is written.
        :raises ConfigurationError: if saving fails.
        """
        if not self._is_valid(config, validator):
            raise ConfigValidationError("Configuration failed validation")
        self._write(config)

    def _write(self, config: T) -> None:
        with self._save_lock:
            try:
                self._handler.save(self._path, config)
            except Exception as exc:
                raise ConfigurationError(f"Failed to save configuration {self._path.name}") from exc
            self._update(config)

    def _update(self, config: T) -> None:
        old = self._cache.put(self._path, self._path, config)
        self._notifier.notify(self._path, old, config)

    def _is_valid(self, config: T, validator: Optional[Validator[T]]) -> bool:
        if validator is not None:
            return bool(validator(config))
        return self._handler.validate(config)

    def on_config_changed(self, listener: ConfigListener[T]) -> None:
        """Add a listener called with ``(old, new)`` whenever the configuration changes."""
        self._notifier.add_listener(lambda _path, old, new: listener(old, new))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until all pending change notifications have been delivered."""
        return self._notifier.flush(timeout)

    def _start_watching(self) -> None:
        if not self._watch_enabled or self._watch_loop is not None:
            return

        loop = WatchLoop(
            self._path.parent,
            accept=lambda candidate: candidate.name == self._path.name,
            on_change=self._on_file_changed,
            on_delete=self._on_file_deleted,
            debounce_seconds=self._debounce_seconds,
            poll_seconds=settings.watch_poll_seconds,
            name=self._path.stem,
        )
        try:
            loop.start()
        except OSError as exc:
            loop.stop(timeout=settings.shutdown_timeout)
            logger.error("Failed to watch %s: %s", self._path.parent, exc)
            return
        self._watch_loop = loop

    def _on_file_changed(self, _path: Path) -> None:
        try:
            self._load()
        except ConfigurationError as exc:
            # The last good configuration stays active.
            logger.error("Failed to reload configuration: %s", exc, exc_info=exc.__cause__ is not None)

    def _on_file_deleted(self, _path: Path) -> None:
        logger.warning(
            "Configuration file %s was deleted; keeping the last loaded configuration",
            self._path.name,
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._watch_loop is not None:
            self._watch_loop.stop(timeout=settings.shutdown_timeout)
        self._notifier.close()

    def __enter__(self) -> "ConfigFactory[T]":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
