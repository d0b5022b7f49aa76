from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Generic, List, Mapping, Optional, Set, Type, TypeVar

from pydantic import BaseModel

from watchstore.config.settings import settings
from watchstore.domain.errors import EntityValidationError, RepositoryError
from watchstore.handlers import FileHandler
from watchstore.handlers.json_handler import JsonFileHandler
from watchstore.handlers.yaml_handler import YamlFileHandler
from watchstore.infrastructure.cache_store import CacheStore
from watchstore.infrastructure.defaults import DefaultsSource, package_defaults, seed_defaults
from watchstore.infrastructure.notifier import ChangeNotifier
from watchstore.infrastructure.watch_loop import WatchLoop
from watchstore.logging_config import CacheStats

from . import LoadableRepository

I = TypeVar("I")  # noqa: E741 - identity type
E = TypeVar("E")

EntityListener = Callable[[I, Optional[E], Optional[E]], None]
ErrorHandler = Callable[[Exception], None]

logger = logging.getLogger(__name__)


def _chained(message: str, cause: BaseException) -> RepositoryError:
    error = RepositoryError(message)
    error.__cause__ = cause
    return error


class DirectoryRepository(LoadableRepository[I, E], Generic[I, E]):
    """Directory of files, one per identity, mirrored in an in-memory cache.

    Features:
    - Thread-safe entity handling: writes are serialized, reads never block.
    - File watching with automatic reloading of externally edited files.
    - Entity change callbacks ``(identity, old, new)`` and error callbacks.
    - Validation support (explicit validator or the handler's own check).
    - Seeding from bundled defaults when the directory is empty.

    Files are named ``<identity><extension>``. Files that appear on disk
    without being saved through the repository get their identity from
    ``identity_parser`` applied to the file name without extension.

    Example:
        >>> repo = DirectoryRepository.yaml(Path("servers"), ServerConfig)
        >>> repo.on_entity_changed(lambda key, old, new: print(key, old, new))
        >>> repo.load_or_create({"lobby": ServerConfig(name="lobby")})
        >>> repo.find("lobby")
    """

    def __init__(
        self,
        directory: Path,
        handler: FileHandler[E],
        *,
        validator: Optional[Callable[[E], bool]] = None,
        identity_parser: Callable[[str], I] = str,  # type: ignore[assignment]
        defaults: Optional[DefaultsSource] = None,
        debounce_seconds: Optional[float] = None,
        watch: bool = True,
        name: Optional[str] = None,
    ) -> None:
        self._directory = Path(directory).resolve()
        self._directory.mkdir(parents=True, exist_ok=True)
        self._handler = handler
        self._validator = validator
        self._identity_parser = identity_parser
        self._defaults = defaults
        self._debounce_seconds = (
            settings.debounce_seconds if debounce_seconds is None else float(debounce_seconds)
        )
        self._watch_enabled = watch
        self._name = name or self._directory.name

        self._cache: CacheStore[I, E] = CacheStore()
        self._write_lock = threading.Lock()
        self._error_handlers: List[ErrorHandler] = []
        self._error_lock = threading.Lock()
        self._notifier: ChangeNotifier[I, E] = ChangeNotifier(
            self._name,
            on_error=lambda exc: self._report(
                _chained("Error in change listener", exc), log=False
            ),
        )
        self._watch_loop: Optional[WatchLoop] = None
        self._closed = False
        self.stats = CacheStats(self._name)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def yaml(
        cls,
        directory: Path,
        model: Optional[Type[BaseModel]] = None,
        *,
        package: Optional[str] = None,
        prefix: Optional[str] = None,
        **kwargs: Any,
    ) -> "DirectoryRepository[Any, Any]":
        """YAML-backed repository, optionally seeded from ``package`` defaults."""
        if package is not None:
            kwargs.setdefault("defaults", package_defaults(package, prefix or settings.defaults_prefix))
        return cls(directory, YamlFileHandler(model), **kwargs)

    @classmethod
    def json(
        cls,
        directory: Path,
        model: Optional[Type[BaseModel]] = None,
        *,
        package: Optional[str] = None,
        prefix: Optional[str] = None,
        **kwargs: Any,
    ) -> "DirectoryRepository[Any, Any]":
        """JSON-backed repository, optionally seeded from ``package`` defaults."""
        if package is not None:
            kwargs.setdefault("defaults", package_defaults(package, prefix or settings.defaults_prefix))
        return cls(directory, JsonFileHandler(model), **kwargs)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def handler(self) -> FileHandler[E]:
        return self._handler

    @property
    def watching(self) -> bool:
        return self._watch_loop is not None and self._watch_loop.running

    def path_for(self, identity: I) -> Path:
        """Return the file an identity is stored in."""
        file_name = f"{identity}{self._handler.extension}"
        if Path(file_name).name != file_name or file_name.startswith("."):
            raise RepositoryError(f"Identity {identity!r} does not map to a plain file name")
        return self._directory / file_name

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def load_or_create(self, defaults: Optional[Mapping[I, E]] = None) -> None:
        """Load all entities, seeding the directory first if it is empty.

        :param defaults: Entities saved after the bundled defaults are copied,
            only when the directory was empty.
        :raises EntityValidationError: if one of ``defaults`` is invalid.
        :raises RepositoryError: if the directory cannot be read.
        """
        if self._closed:
            raise RepositoryError(f"Repository {self._name} is closed")

        try:
            if self._is_empty():
                self._bootstrap(defaults or {})
            self._load_all()
        except RepositoryError:
            raise
        except OSError as exc:
            error = _chained(f"Failed to load repository {self._directory}", exc)
            self._report(error)
            raise error from exc

        self._start_watching()

    def _is_empty(self) -> bool:
        if not self._directory.exists():
            return True
        return next(self._directory.iterdir(), None) is None

    def _bootstrap(self, defaults: Mapping[I, E]) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        if self._defaults is not None:
            seed_defaults(self._defaults, self._directory)
        else:
            logger.debug("%s: no bundled defaults configured", self._name)

        for identity, entity in defaults.items():
            self.save(identity, entity)

    def _load_all(self) -> None:
        for path in sorted(self._directory.iterdir()):
            if path.is_file() and self._handler.matches(path):
                self._load_file(path, notify=False)
        logger.info(
            "Loaded %d entities from %s",
            len(self._cache),
            self._directory,
            extra={"repository": self._name},
        )

    def _load_file(self, path: Path, *, notify: bool) -> None:
        error: Optional[RepositoryError] = None
        with self._write_lock:
            try:
                entity = self._handler.load(path)
            except Exception as exc:
                entity = None
                error = _chained(f"Error loading file {path.name}", exc)

            if error is None and entity is None:
                # Parse failure: a previously cached value is kept.
                error = RepositoryError(f"Could not parse file {path.name}")
            elif entity is not None and not self._is_valid(entity):
                error = EntityValidationError(f"Entity in {path.name} failed validation")

            if error is None:
                identity = self._cache.identity_for(path)
                if identity is None:
                    stem = path.name[: -len(self._handler.extension)]
                    try:
                        identity = self._identity_parser(stem)
                    except Exception as exc:
                        error = _chained(f"Cannot derive identity from file name {path.name}", exc)

            if error is None:
                old = self._cache.put(identity, path, entity)  # type: ignore[arg-type]
                if notify:
                    self._notifier.notify(identity, old, entity)  # type: ignore[arg-type]

        if error is not None:
            self._report(error)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def save(self, identity: I, entity: E) -> None:
        """Write ``entity`` to its file and update the cache.

        :raises EntityValidationError: if the entity is rejected; nothing is written.
        :raises RepositoryError: if the file cannot be written.
        """
        if not self._is_valid(entity):
            raise EntityValidationError(f"Entity validation failed for {identity!r}")

        path = self.path_for(identity)
        error: Optional[RepositoryError] = None
        with self._write_lock:
            try:
                self._handler.save(path, entity)
            except Exception as exc:
                error = _chained(f"Failed to save entity {identity!r}", exc)
            else:
                old = self._cache.put(identity, path, entity)
                self._notifier.notify(identity, old, entity)

        if error is not None:
            self._report(error)
            raise error

    def delete(self, identity: I) -> bool:
        """Delete the file of ``identity``; return ``False`` if there was nothing to delete.

        :raises RepositoryError: if the file exists but cannot be removed.
        """
        path = self.path_for(identity)
        error: Optional[RepositoryError] = None
        deleted = False
        with self._write_lock:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                error = _chained(f"Failed to delete entity {identity!r}", exc)
            else:
                deleted = True

            if error is None:
                old = self._cache.remove(identity)
                if old is not None:
                    deleted = True
                    self._notifier.notify(identity, old, None)

        if error is not None:
            self._report(error)
            raise error
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def find(self, identity: I) -> Optional[E]:
        entity = self._cache.get(identity)
        if entity is None:
            self.stats.record_miss()
        else:
            self.stats.record_hit()
        return entity

    def get_all(self) -> List[E]:
        return self._cache.get_all()

    def get_all_identifiers(self) -> Set[I]:
        return self._cache.identities()

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, identity: object) -> bool:
        return identity in self._cache

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------
    def on_entity_changed(self, listener: EntityListener) -> None:
        """Register ``listener(identity, old, new)``; ``new`` is ``None`` on deletion."""
        self._notifier.add_listener(listener)

    def on_error(self, handler: ErrorHandler) -> None:
        with self._error_lock:
            self._error_handlers.append(handler)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until all pending change notifications have been delivered."""
        return self._notifier.flush(timeout)

    def _is_valid(self, entity: E) -> bool:
        if self._validator is not None:
            return bool(self._validator(entity))
        return self._handler.validate(entity)

    def _report(self, error: RepositoryError, *, log: bool = True) -> None:
        if log:
            logger.error("%s: %s", self._name, error, exc_info=error.__cause__ is not None)
        with self._error_lock:
            handlers = list(self._error_handlers)
        for handler in handlers:
            try:
                handler(error)
            except Exception:
                logger.exception("%s: error handler failed", self._name)

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------
    def _start_watching(self) -> None:
        if not self._watch_enabled or self._watch_loop is not None:
            return

        loop = WatchLoop(
            self._directory,
            accept=self._handler.matches,
            on_change=self._on_file_changed,
            on_delete=self._on_file_deleted,
            debounce_seconds=self._debounce_seconds,
            poll_seconds=settings.watch_poll_seconds,
            name=self._name,
        )
        try:
            loop.start()
        except OSError as exc:
            loop.stop(timeout=settings.shutdown_timeout)
            self._report(_chained(f"Failed to watch directory {self._directory}", exc))
            return
        self._watch_loop = loop

    def _on_file_changed(self, path: Path) -> None:
        self._load_file(path, notify=True)

    def _on_file_deleted(self, path: Path) -> None:
        with self._write_lock:
            if path.exists():
                # Recreated since the event; the following create event reloads it.
                return
            removed = self._cache.remove_path(path)
            if removed is not None:
                identity, old = removed
                self._notifier.notify(identity, old, None)

    def close(self) -> None:
        """Stop watching and deliver pending notifications."""
        if self._closed:
            return
        self._closed = True
        if self._watch_loop is not None:
            self._watch_loop.stop(timeout=settings.shutdown_timeout)
        self._notifier.close()
        self.stats.log_hit_rate()

    def __enter__(self) -> "DirectoryRepository[I, E]":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DirectoryRepository({str(self._directory)!r}, {type(self._handler).__name__})"
