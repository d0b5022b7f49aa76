"""Building blocks of the file-backed repositories: cache, notifier, watch loop, defaults."""

from .cache_store import CacheStore
from .defaults import (
    ArchiveDefaults,
    DefaultsSource,
    DirectoryDefaults,
    package_defaults,
    seed_defaults,
)
from .notifier import ChangeNotifier
from .watch_loop import WatchLoop

__all__ = [
    "CacheStore",
    "ChangeNotifier",
    "WatchLoop",
    "DefaultsSource",
    "DirectoryDefaults",
    "ArchiveDefaults",
    "package_defaults",
    "seed_defaults",
]
