"""Repository interfaces and implementations.

This package defines the abstract repository interfaces and the file-backed
implementations :class:`~watchstore.repositories.directory.DirectoryRepository`
(one file per identity) and
:class:`~watchstore.repositories.config_factory.ConfigFactory` (one file).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, List, Mapping, Optional, TypeVar

I = TypeVar("I")  # noqa: E741 - identity type
E = TypeVar("E")


class Repository(ABC, Generic[I, E]):
    """Repository interface for keyed records."""

    @abstractmethod
    def save(self, identity: I, entity: E) -> None:
        """Persist ``entity`` under ``identity``."""

    @abstractmethod
    def delete(self, identity: I) -> bool:
        """Remove the record stored under ``identity``."""

    @abstractmethod
    def find(self, identity: I) -> Optional[E]:
        """Retrieve a record by identity."""

    @abstractmethod
    def get_all(self) -> List[E]:
        """List every record."""


class LoadableRepository(Repository[I, E]):
    """Repository whose content is loaded from backing storage once at startup."""

    @abstractmethod
    def load_or_create(self, defaults: Optional[Mapping[I, E]] = None) -> None:
        """Load existing records or seed storage with ``defaults``."""
