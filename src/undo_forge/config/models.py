"""Configuration models for undo-forge.

This module defines Pydantic models for the change monitor, the storage
layout (operation log and backups) and the diff engine.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DATA_DIR = Path.home() / ".undo-forge"

DEFAULT_IGNORE_PATTERNS: list[str] = [
    "**/node_modules/**",
    "**/.git/**",
    "**/__pycache__/**",
    "**/.venv/**",
    "**/venv/**",
    "**/logs/**",
    "**/.undo-forge/**",
    "**/*.log",
    "**/.*",
]

DEFAULT_FILE_EXTENSIONS: list[str] = [
    ".js", ".ts", ".jsx", ".tsx", ".vue", ".py", ".rb", ".go",
    ".java", ".c", ".cpp", ".cs", ".php", ".swift", ".kt",
    ".rs", ".scala", ".clj", ".hs", ".ml", ".elm", ".dart",
    ".json", ".xml", ".yaml", ".yml", ".toml", ".ini",
    ".md", ".txt", ".csv", ".sql", ".html", ".css", ".scss",
    ".sass", ".less", ".styl",
]


class MonitorConfig(BaseModel):
    """Change monitor configuration.

    Attributes:
        watch_path: Root directory to watch.
        ignore_patterns: Glob patterns (relative to watch_path) to skip.
        file_extensions: Extensions of files worth tracking.
        max_file_size: Largest file, in bytes, the monitor will read.
        debounce_ms: Settle window before a changed file is read.
    """

    model_config = ConfigDict(validate_assignment=True)

    watch_path: Path = Field(default_factory=Path.cwd)
    ignore_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS)
    )
    file_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FILE_EXTENSIONS)
    )
    max_file_size: int = Field(default=1_048_576, ge=1)
    debounce_ms: int = Field(default=100, ge=0, le=60_000)

    @field_validator("watch_path")
    @classmethod
    def resolve_watch_path(cls, v: Path) -> Path:
        """Expand ~ and make the watch root absolute."""
        return v.expanduser().resolve()

    @field_validator("file_extensions")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        """Lowercase extensions and make sure each has a leading dot."""
        normalized: list[str] = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            if not ext.startswith("."):
                ext = f".{ext}"
            if ext not in normalized:
                normalized.append(ext)
        return normalized

    @property
    def debounce_seconds(self) -> float:
        """Settle window in seconds."""
        return self.debounce_ms / 1000.0


class StorageConfig(BaseModel):
    """Where the operation log and backups live.

    Attributes:
        data_dir: Base directory for undo-forge state.
        log_file: Operation log file name inside data_dir.
        backup_dir: Snapshot directory name inside data_dir.
    """

    model_config = ConfigDict(validate_assignment=True)

    data_dir: Path = DEFAULT_DATA_DIR
    log_file: str = "log.jsonl"
    backup_dir: str = "backups"

    @field_validator("data_dir")
    @classmethod
    def expand_data_dir(cls, v: Path) -> Path:
        """Expand ~ in the data directory."""
        return v.expanduser()

    @field_validator("log_file", "backup_dir")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Require a non-empty name."""
        if not v or not v.strip():
            raise ValueError("Name must be a non-empty string")
        return v.strip()

    @property
    def log_path(self) -> Path:
        """Full path to the operation log."""
        return self.data_dir / self.log_file

    @property
    def backup_path(self) -> Path:
        """Full path to the backup directory."""
        return self.data_dir / self.backup_dir


class DiffConfig(BaseModel):
    """Diff engine tuning.

    Attributes:
        edit_threshold: Minimum characters for a significant edit.
        context_lines: Lines of context stored around each edit.
    """

    model_config = ConfigDict(validate_assignment=True)

    edit_threshold: int = Field(default=3, ge=1, le=1000)
    context_lines: int = Field(default=5, ge=0, le=100)


class UndoForgeConfig(BaseModel):
    """Root configuration model.

    Attributes:
        monitor: Change monitor settings.
        storage: Operation log and backup locations.
        diff: Diff engine settings.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra="ignore",
    )

    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    diff: DiffConfig = Field(default_factory=DiffConfig)
