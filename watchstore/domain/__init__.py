"""Domain types shared by the cache, the watch loop and the repositories."""

from .entities import CacheEntry, FileEvent
from .errors import (
    ConfigNotLoadedError,
    ConfigurationError,
    ConfigValidationError,
    EntityValidationError,
    RepositoryError,
    StoreError,
)
from .value_objects import ChangeKind, DefaultsMode

__all__ = [
    "CacheEntry",
    "FileEvent",
    "ChangeKind",
    "DefaultsMode",
    "StoreError",
    "ConfigurationError",
    "ConfigValidationError",
    "ConfigNotLoadedError",
    "RepositoryError",
    "EntityValidationError",
]
