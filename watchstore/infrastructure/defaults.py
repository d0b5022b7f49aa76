"""Bundled default files and first-run seeding.

Defaults ship inside a Python package under a ``defaults`` resource directory.
How they are read depends on how the package is installed:

- loose files on disk (source checkout, regular install): copied byte for byte;
- entries of a zip archive (zipapp, zipimport): re-encoded as UTF-8 and
  written with a leading UTF-8 byte-order mark.

The repositories only use the :class:`DefaultsSource` interface.
"""

from __future__ import annotations

import codecs
import logging
import zipfile
from abc import ABC, abstractmethod
from importlib import resources
from pathlib import Path
from typing import List, Optional

from watchstore.domain.value_objects.enums import DefaultsMode

logger = logging.getLogger(__name__)


class DefaultsSource(ABC):
    """Read-only view of a tree of bundled default files."""

    mode: DefaultsMode

    @abstractmethod
    def entries(self) -> List[str]:
        """Return relative POSIX names of every file in the tree."""

    @abstractmethod
    def read(self, name: str) -> bytes:
        """Return the raw bytes of entry ``name``."""

    def prepare(self, data: bytes) -> bytes:
        """Transform entry bytes before they are written to the target."""
        return data

    def has(self, name: str) -> bool:
        return name in self.entries()


class DirectoryDefaults(DefaultsSource):
    """Defaults stored as ordinary files below ``root``."""

    mode = DefaultsMode.LOOSE

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def entries(self) -> List[str]:
        if not self._root.is_dir():
            raise FileNotFoundError(f"Defaults directory does not exist: {self._root}")
        return sorted(
            path.relative_to(self._root).as_posix()
            for path in self._root.rglob("*")
            if path.is_file()
        )

    def read(self, name: str) -> bytes:
        return (self._root / name).read_bytes()

    def __repr__(self) -> str:
        return f"DirectoryDefaults({str(self._root)!r})"


class ArchiveDefaults(DefaultsSource):
    """Defaults stored as entries of a zip archive below ``prefix``."""

    mode = DefaultsMode.ARCHIVE

    def __init__(self, archive: Path, prefix: str) -> None:
        self._archive = Path(archive)
        self._prefix = prefix.strip("/") + "/" if prefix.strip("/") else ""

    @property
    def archive(self) -> Path:
        return self._archive

    @property
    def prefix(self) -> str:
        return self._prefix

    def entries(self) -> List[str]:
        with zipfile.ZipFile(self._archive) as zf:
            return [
                info.filename[len(self._prefix):]
                for info in zf.infolist()
                if info.filename.startswith(self._prefix)
                and not info.is_dir()
                and info.filename != self._prefix
            ]

    def read(self, name: str) -> bytes:
        with zipfile.ZipFile(self._archive) as zf:
            return zf.read(self._prefix + name)

    def prepare(self, data: bytes) -> bytes:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError:
            # Binary asset: copied unchanged.
            return data
        return codecs.BOM_UTF8 + text.encode("utf-8")

    def __repr__(self) -> str:
        return f"ArchiveDefaults({str(self._archive)!r}, {self._prefix!r})"


def package_defaults(package: str, prefix: str = "defaults") -> Optional[DefaultsSource]:
    """Locate the ``prefix`` resource directory of ``package``.

    Returns ``None`` (after logging) when the package or the directory cannot
    be found or the resource is neither a plain directory nor a zip entry.
    """
    try:
        root = resources.files(package).joinpath(prefix)
    except (ModuleNotFoundError, TypeError) as exc:
        logger.warning("Defaults package %r not found: %s", package, exc)
        return None

    if isinstance(root, Path):
        if not root.is_dir():
            logger.warning("Resource folder '%s/%s' not found", package, prefix)
            return None
        return DirectoryDefaults(root)

    if isinstance(root, zipfile.Path):
        if not root.is_dir():
            logger.warning("Resource folder '%s/%s' not found in archive", package, prefix)
            return None
        archive = Path(root.root.filename)  # type: ignore[arg-type]
        return ArchiveDefaults(archive, root.at)

    logger.warning(
        "Unsupported resource type for '%s/%s': %s", package, prefix, type(root).__name__
    )
    return None


def seed_defaults(source: DefaultsSource, target: Path) -> List[Path]:
    """Copy every entry of ``source`` into ``target``, overwriting conflicts.

    Failures are logged and never raised: a broken entry is skipped, and an
    unreadable source leaves ``target`` untouched.
    """
    try:
        names = source.entries()
    except (OSError, zipfile.BadZipFile) as exc:
        logger.warning("Error reading defaults from %r: %s", source, exc)
        return []

    written: List[Path] = []
    for name in names:
        parts = name.split("/")
        if ".." in parts:
            logger.warning("Skipping default file outside the target directory: %s", name)
            continue
        destination = target.joinpath(*parts)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(source.prepare(source.read(name)))
        except (OSError, KeyError, zipfile.BadZipFile) as exc:
            logger.warning("Error copying default file %s: %s", name, exc)
            continue
        written.append(destination)

    logger.info(
        "Seeded %d default file(s) into %s",
        len(written),
        target,
        extra={"mode": source.mode.value},
    )
    return written
