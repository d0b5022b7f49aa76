from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Generic, List, Mapping, NamedTuple, Optional, Set, Tuple, TypeVar

from watchstore.domain.entities import CacheEntry

K = TypeVar("K")
V = TypeVar("V")


class _Snapshot(NamedTuple):
    entries: Mapping
    paths: Mapping


class CacheStore(Generic[K, V]):
    """In-memory identity -> record cache with a path -> identity index.

    - Writers build a new snapshot under a lock and publish it with a single
      reference assignment (copy-on-write).
    - Readers never lock; they read whichever snapshot is current, so a
      concurrent ``put``/``remove`` is never observed half-applied.
    """

    def __init__(self) -> None:
        self._snapshot = _Snapshot({}, {})
        self._lock = threading.Lock()

    def get(self, key: K) -> Optional[V]:
        entry = self._snapshot.entries.get(key)
        if entry is None:
            return None
        return entry.record

    def get_entry(self, key: K) -> Optional[CacheEntry[V]]:
        return self._snapshot.entries.get(key)

    def get_all(self) -> List[V]:
        return [entry.record for entry in self._snapshot.entries.values()]

    def identities(self) -> Set[K]:
        return set(self._snapshot.entries)

    def identity_for(self, path: Path) -> Optional[K]:
        return self._snapshot.paths.get(path)

    def put(self, key: K, path: Path, record: V) -> Optional[V]:
        """Bind ``key`` to ``path`` with ``record`` and return the previous record."""
        with self._lock:
            current = self._snapshot
            entries: Dict[K, CacheEntry[V]] = dict(current.entries)
            paths: Dict[Path, K] = dict(current.paths)

            previous = entries.get(key)
            if previous is not None and previous.path != path:
                paths.pop(previous.path, None)
            owner = paths.get(path)
            if owner is not None and owner != key:
                # A path belongs to exactly one identity.
                entries.pop(owner, None)

            entries[key] = CacheEntry(path=path, record=record)
            paths[path] = key
            self._snapshot = _Snapshot(entries, paths)
        return previous.record if previous is not None else None

    def remove(self, key: K) -> Optional[V]:
        with self._lock:
            current = self._snapshot
            previous = current.entries.get(key)
            if previous is None:
                return None
            entries = dict(current.entries)
            paths = dict(current.paths)
            del entries[key]
            paths.pop(previous.path, None)
            self._snapshot = _Snapshot(entries, paths)
        return previous.record

    def remove_path(self, path: Path) -> Optional[Tuple[K, V]]:
        """Evict whatever identity ``path`` is bound to."""
        with self._lock:
            current = self._snapshot
            key = current.paths.get(path)
            if key is None:
                return None
            entries = dict(current.entries)
            paths = dict(current.paths)
            previous = entries.pop(key)
            del paths[path]
            self._snapshot = _Snapshot(entries, paths)
        return key, previous.record

    def __len__(self) -> int:
        return len(self._snapshot.entries)

    def __contains__(self, key: object) -> bool:
        return key in self._snapshot.entries
