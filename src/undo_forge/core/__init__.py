"""Core package containing errors and logging."""

from undo_forge.core.errors import (
    AlreadyInStateError,
    CommandNotReversibleError,
    ConfigError,
    FileIOError,
    InvalidIndexError,
    LogUnavailableError,
    MalformedRecordError,
    MissingPayloadError,
    MonitorError,
    OperationLogError,
    OperationNotFoundError,
    StateUpdateError,
    UndoError,
    UndoForgeError,
)
from undo_forge.core.logging import get_logger, setup_logging

__all__ = [
    "AlreadyInStateError",
    "CommandNotReversibleError",
    "ConfigError",
    "FileIOError",
    "InvalidIndexError",
    "LogUnavailableError",
    "MalformedRecordError",
    "MissingPayloadError",
    "MonitorError",
    "OperationLogError",
    "OperationNotFoundError",
    "StateUpdateError",
    "UndoError",
    "UndoForgeError",
    "get_logger",
    "setup_logging",
]
