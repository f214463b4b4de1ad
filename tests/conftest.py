"""Shared test fixtures for undo-forge tests.

::

    tmp_path
    ├── project_dir (files the operations touch)
    └── data_dir (undo-forge state)
        ├── log (OperationLog at data_dir/log.jsonl)
        ├── backups (BackupStore at data_dir/backups)
        └── engine (UndoRedoEngine over log + backups)

    write_raw_lines (append hand-written JSONL lines to the log)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from undo_forge.core.logging import LOGGER_NAMESPACE
from undo_forge.undo import BackupStore, OperationLog, UndoRedoEngine


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Drop handlers that setup_logging() attached during a test."""
    yield
    logger = logging.getLogger(LOGGER_NAMESPACE)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Directory holding the files under test."""
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Directory holding the log and backups."""
    data = tmp_path / "data"
    data.mkdir()
    return data


@pytest.fixture
def log(data_dir: Path) -> OperationLog:
    """Operation log inside the data directory."""
    return OperationLog(data_dir / "log.jsonl")


@pytest.fixture
def backups(data_dir: Path) -> BackupStore:
    """Backup store inside the data directory."""
    return BackupStore(data_dir / "backups")


@pytest.fixture
def engine(log: OperationLog, backups: BackupStore) -> UndoRedoEngine:
    """Undo/redo engine over the test log."""
    return UndoRedoEngine(log, backups)


@pytest.fixture
def write_raw_lines(log: OperationLog) -> Callable[..., None]:
    """Append raw lines (dicts are JSON-encoded) to the log file."""

    def write(*lines: dict[str, Any] | str) -> None:
        log.path.parent.mkdir(parents=True, exist_ok=True)
        with log.path.open("a", encoding="utf-8") as f:
            for line in lines:
                text = line if isinstance(line, str) else json.dumps(line)
                f.write(text + "\n")

    return write
