"""Logging for undo-forge.

Every logger lives under the ``undo_forge`` namespace. setup_logging()
attaches two handlers to that namespace: a Rich console handler at the
user's level and a rotating DEBUG file so that any cascade can be
reconstructed afterwards from the log file.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler

LOGGER_NAMESPACE = "undo_forge"
LOG_LEVEL_ENV = "UNDO_FORGE_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

DEFAULT_LOG_DIR = Path.home() / ".undo-forge" / "logs"
DEFAULT_LOG_FILE = DEFAULT_LOG_DIR / "undo-forge.log"

MAX_LOG_SIZE = 10 * 1024 * 1024
BACKUP_COUNT = 5


def get_log_level_from_env() -> int:
    """Console level named by UNDO_FORGE_LOG_LEVEL, WARNING if unset or unknown."""
    name = os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
    return LOG_LEVEL_MAP.get(name, logging.WARNING)


def get_default_log_file() -> Path:
    """Get the default log file path, creating directory if needed."""
    DEFAULT_LOG_DIR.mkdir(parents=True, exist_ok=True)
    return DEFAULT_LOG_FILE


def _file_handler(log_file: Path) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(logging.DEBUG)
    return handler


def _console_handler(level: int, rich_console: bool) -> logging.Handler:
    if rich_console:
        return RichHandler(
            level=level,
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
        )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)
    return handler


def setup_logging(
    level: int | None = None,
    log_file: Path | None = None,
    console_output: bool = True,
    rich_console: bool = True,
    file_logging: bool = True,
) -> None:
    """Install the undo-forge handlers, replacing any from an earlier call.

    The console level comes from ``level``, then UNDO_FORGE_LOG_LEVEL,
    then WARNING. The file handler always records DEBUG.

    Args:
        level: Console logging level.
        log_file: Rotating log file. Defaults to ~/.undo-forge/logs/undo-forge.log.
        console_output: Attach a console handler.
        rich_console: Use Rich for the console handler.
        file_logging: Attach the rotating file handler.
    """
    handlers: list[logging.Handler] = []
    if file_logging:
        handlers.append(_file_handler(log_file or get_default_log_file()))
    if console_output:
        console_level = get_log_level_from_env() if level is None else level
        handlers.append(_console_handler(console_level, rich_console))

    namespace = logging.getLogger(LOGGER_NAMESPACE)
    namespace.setLevel(logging.DEBUG)
    for old in list(namespace.handlers):
        namespace.removeHandler(old)
        old.close()
    for handler in handlers:
        namespace.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``undo_forge.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")
