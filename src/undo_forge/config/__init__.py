"""Configuration package for undo-forge."""

from undo_forge.config.loader import ConfigLoader
from undo_forge.config.models import (
    DEFAULT_FILE_EXTENSIONS,
    DEFAULT_IGNORE_PATTERNS,
    DiffConfig,
    MonitorConfig,
    StorageConfig,
    UndoForgeConfig,
)
from undo_forge.config.sources import IConfigSource, JsonFileSource, YamlFileSource

__all__ = [
    "DEFAULT_FILE_EXTENSIONS",
    "DEFAULT_IGNORE_PATTERNS",
    "ConfigLoader",
    "DiffConfig",
    "IConfigSource",
    "JsonFileSource",
    "MonitorConfig",
    "StorageConfig",
    "UndoForgeConfig",
    "YamlFileSource",
]
