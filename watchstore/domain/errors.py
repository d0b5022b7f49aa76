"""Exception types raised by the repositories.

All errors derive from :class:`StoreError`, itself a ``RuntimeError`` so that
callers which only guard against runtime failures keep working.
"""

from __future__ import annotations


class StoreError(RuntimeError):
    """Base class for failures of a file-backed store."""


class ConfigurationError(StoreError):
    """Raised when a single-file configuration cannot be loaded or saved."""


class ConfigValidationError(ConfigurationError):
    """Raised when a configuration is rejected by its validator."""


class ConfigNotLoadedError(ConfigurationError):
    """Raised when the configuration is read before the first successful load."""


class RepositoryError(StoreError):
    """Raised when a directory repository operation fails."""


class EntityValidationError(RepositoryError):
    """Raised when an entity is rejected by the repository validator."""
