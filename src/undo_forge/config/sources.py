"""Configuration sources for undo-forge.

Each source knows how to read one settings file format. Monitor and
storage settings are deliberately file-driven only; the log level is
the one knob read from the environment (see core.logging).
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import yaml

from undo_forge.core import ConfigError, get_logger

logger = get_logger("config.sources")


class IConfigSource(ABC):
    """Interface for configuration sources."""

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """Load configuration from source.

        Returns:
            Dictionary containing configuration data.
            Returns empty dict if source doesn't exist.

        Raises:
            ConfigError: If source exists but cannot be parsed.
        """
        ...

    @abstractmethod
    def exists(self) -> bool:
        """Check if source exists."""
        ...


class _FileSource(IConfigSource):
    """Shared plumbing for file-backed sources."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def exists(self) -> bool:
        """Check if the file exists."""
        return self._path.exists() and self._path.is_file()

    @property
    def path(self) -> Path:
        """Get the file path."""
        return self._path

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._path})"


class JsonFileSource(_FileSource):
    """Load configuration from JSON file."""

    def load(self) -> dict[str, Any]:
        """Load configuration from JSON file.

        Raises:
            ConfigError: If file exists but contains invalid JSON.
        """
        if not self.exists():
            return {}

        try:
            content = self._path.read_text(encoding="utf-8")
            if not content.strip():
                return {}
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning("Invalid JSON in %s: %s", self._path, e)
            raise ConfigError(f"Invalid JSON in {self._path}: {e}") from e
        except OSError as e:
            logger.warning("Cannot read %s: %s", self._path, e)
            raise ConfigError(f"Cannot read {self._path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"JSON root must be object, got {type(data).__name__}")
        return data


class YamlFileSource(_FileSource):
    """Load configuration from YAML file."""

    def load(self) -> dict[str, Any]:
        """Load configuration from YAML file.

        Raises:
            ConfigError: If file exists but contains invalid YAML.
        """
        if not self.exists():
            return {}

        try:
            with self._path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning("Invalid YAML in %s: %s", self._path, e)
            raise ConfigError(f"Invalid YAML in {self._path}: {e}") from e
        except OSError as e:
            logger.warning("Cannot read %s: %s", self._path, e)
            raise ConfigError(f"Cannot read {self._path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"YAML root must be mapping, got {type(data).__name__}")
        return data
