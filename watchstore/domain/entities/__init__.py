from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

from ..value_objects.enums import ChangeKind

E = TypeVar("E")


@dataclass(frozen=True)
class CacheEntry(Generic[E]):
    """Snapshot of one record together with the file it is bound to."""

    path: Path
    record: E


@dataclass(frozen=True)
class FileEvent:
    """A filesystem change observed by the watch loop."""

    kind: ChangeKind
    path: Path

    @property
    def is_removal(self) -> bool:
        return self.kind == ChangeKind.DELETED


__all__ = [
    "CacheEntry",
    "FileEvent",
]
