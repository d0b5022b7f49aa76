"""File handler (codec) interface and shared write helpers.

A handler converts between one in-memory record and the bytes of one file.
Concrete implementations live in :mod:`watchstore.handlers.yaml_handler`,
:mod:`watchstore.handlers.json_handler` and :mod:`watchstore.handlers.png_handler`.
"""
from __future__ import annotations

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Generic, Optional, TypeVar

E = TypeVar("E")

TEXT_ENCODING = "utf-8"
# Files seeded from an archive carry a BOM; ``utf-8-sig`` reads both variants.
READ_ENCODING = "utf-8-sig"


class FileHandler(ABC, Generic[E]):
    """Codec interface for one on-disk format."""

    #: File suffix including the dot, e.g. ``".yml"``.
    extension: str

    @abstractmethod
    def load(self, path: Path) -> Optional[E]:
        """Read a record from ``path``.

        Returns ``None`` instead of raising for a missing, empty or
        non-conforming file so the caller decides whether to keep stale data.
        """

    @abstractmethod
    def save(self, path: Path, record: E) -> None:
        """Write ``record`` to ``path``, replacing any previous content."""

    def validate(self, record: E) -> bool:
        """Format-level sanity check applied when no validator is configured."""
        return True

    def matches(self, path: Path) -> bool:
        """Return ``True`` when ``path`` looks like a file of this format."""
        name = path.name
        return name.endswith(self.extension) and not name.startswith(".")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` next to ``path`` and move it into place in one step."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def atomic_write_text(path: Path, text: str) -> None:
    """Encode ``text`` as UTF-8 and write it with :func:`atomic_write_bytes`."""
    atomic_write_bytes(path, text.encode(TEXT_ENCODING))


def read_text(path: Path) -> Optional[str]:
    """Return the decoded content of ``path`` or ``None`` if it is absent or blank."""
    try:
        text = path.read_text(encoding=READ_ENCODING)
    except FileNotFoundError:
        return None
    if not text.strip():
        return None
    return text


__all__ = [
    "FileHandler",
    "atomic_write_bytes",
    "atomic_write_text",
    "read_text",
    "READ_ENCODING",
    "TEXT_ENCODING",
]
