"""Configuration loader for undo-forge.

Settings files are layered, later layers winning key by key:

1. Defaults from UndoForgeConfig
2. User settings: ~/.undo-forge/settings.json (or settings.yaml)
3. Project settings: ./.undo-forge/settings.json (or settings.yaml)
4. Local project overrides: ./.undo-forge/settings.local.json
5. Explicit overrides passed by the caller (command-line arguments)
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from undo_forge.config.models import UndoForgeConfig
from undo_forge.config.sources import IConfigSource, JsonFileSource, YamlFileSource
from undo_forge.core import ConfigError, get_logger

logger = get_logger("config.loader")

CONFIG_DIR_NAME = ".undo-forge"


def _settings_source(directory: Path) -> IConfigSource:
    """JSON settings in a directory, or YAML when only that exists."""
    json_path = directory / "settings.json"
    yaml_path = directory / "settings.yaml"
    if not json_path.exists() and yaml_path.exists():
        return YamlFileSource(yaml_path)
    return JsonFileSource(json_path)


class ConfigLoader:
    """Layered settings loader."""

    def __init__(
        self,
        user_dir: Path | None = None,
        project_dir: Path | None = None,
    ) -> None:
        """Initialize configuration loader.

        Args:
            user_dir: Per-user settings directory. Defaults to ~/.undo-forge
            project_dir: Per-project settings directory. Defaults to ./.undo-forge
        """
        self._user_dir = user_dir or Path.home() / CONFIG_DIR_NAME
        self._project_dir = project_dir or Path.cwd() / CONFIG_DIR_NAME

    @property
    def user_dir(self) -> Path:
        """Get user configuration directory."""
        return self._user_dir

    @property
    def project_dir(self) -> Path:
        """Get project configuration directory."""
        return self._project_dir

    def sources(self) -> list[IConfigSource]:
        """Settings sources in the order they are applied."""
        return [
            _settings_source(self._user_dir),
            _settings_source(self._project_dir),
            JsonFileSource(self._project_dir / "settings.local.json"),
        ]

    def load_all(self, overrides: dict[str, Any] | None = None) -> UndoForgeConfig:
        """Merge every settings layer and validate the result.

        Args:
            overrides: Values applied after all files.

        Raises:
            ConfigError: If the merged settings fail validation.
        """
        merged: dict[str, Any] = UndoForgeConfig().model_dump()
        for source in self.sources():
            merged = self._apply(merged, source)
        if overrides:
            merged = self.merge(merged, overrides)

        try:
            return UndoForgeConfig.model_validate(merged)
        except ValidationError as e:
            logger.error("Configuration validation failed: %s", e)
            raise ConfigError(f"Configuration validation failed: {e}") from e

    def _apply(self, base: dict[str, Any], source: IConfigSource) -> dict[str, Any]:
        """Merge one source into ``base``; a broken or vanished source is skipped."""
        if not source.exists():
            return base
        try:
            layer = source.load()
        except ConfigError as e:
            logger.debug("Skipped config source %s: %s", source, e)
            return base
        except FileNotFoundError:
            logger.debug("Config source %s disappeared before load", source)
            return base

        if not layer:
            return base
        logger.debug("Loaded config from %s", source)
        return self.merge(base, layer)

    def load(self, path: Path) -> dict[str, Any]:
        """Read one settings file, choosing the parser by extension.

        Raises:
            ConfigError: If the extension is not .json/.yaml/.yml or the
                file cannot be parsed.
        """
        suffix = path.suffix.lower()
        if suffix == ".json":
            return JsonFileSource(path).load()
        if suffix in (".yaml", ".yml"):
            return YamlFileSource(path).load()
        raise ConfigError(f"Unsupported configuration format: {suffix}")

    def merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge ``override`` into a copy of ``base``.

        Mappings present on both sides are merged key by key; any other
        value in ``override`` replaces the one in ``base``.
        """
        result = copy.deepcopy(base)
        for key, value in override.items():
            current = result.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                result[key] = self.merge(current, value)
            else:
                result[key] = copy.deepcopy(value)
        return result

    def validate(self, config: dict[str, Any]) -> tuple[bool, list[str]]:
        """Check settings without raising.

        Returns:
            (is_valid, error_messages)
        """
        try:
            UndoForgeConfig.model_validate(config)
        except ValidationError as e:
            return False, [str(e)]
        return True, []
