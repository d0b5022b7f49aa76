"""File-backed, self-reloading record repositories.

- :class:`ConfigFactory` keeps one configuration file in memory.
- :class:`DirectoryRepository` keeps a directory of files, one per identity.

Both reload automatically when their files are edited on disk.
"""

from .domain.errors import (
    ConfigNotLoadedError,
    ConfigurationError,
    ConfigValidationError,
    EntityValidationError,
    RepositoryError,
    StoreError,
)
from .handlers import FileHandler
from .handlers.enums import enum_by_name
from .handlers.json_handler import JsonFileHandler
from .handlers.png_handler import PngFileHandler
from .handlers.yaml_handler import YamlFileHandler
from .infrastructure.defaults import (
    ArchiveDefaults,
    DefaultsSource,
    DirectoryDefaults,
    package_defaults,
)
from .repositories.config_factory import ConfigFactory
from .repositories.directory import DirectoryRepository

__all__ = [
    "ConfigFactory",
    "DirectoryRepository",
    "FileHandler",
    "YamlFileHandler",
    "JsonFileHandler",
    "PngFileHandler",
    "enum_by_name",
    "DefaultsSource",
    "DirectoryDefaults",
    "ArchiveDefaults",
    "package_defaults",
    "StoreError",
    "ConfigurationError",
    "ConfigValidationError",
    "ConfigNotLoadedError",
    "RepositoryError",
    "EntityValidationError",
]
