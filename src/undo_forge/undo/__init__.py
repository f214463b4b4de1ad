"""Operation log and cascading undo/redo.

This package records file mutations (automatically through the change
monitor, or manually through the log's record_* helpers) and reverses
or replays any contiguous range of them.

Example:
    from undo_forge.undo import BackupStore, OperationLog, UndoRedoEngine

    log = OperationLog("~/.undo-forge/log.jsonl")
    log.record_file_edit("notes.txt", before="hello", after="hello world")

    engine = UndoRedoEngine(log, BackupStore("~/.undo-forge/backups"))
    result = engine.undo(0)
    result = engine.redo(result.target.id)
"""

from undo_forge.undo.backup import BackupSnapshot, BackupStore
from undo_forge.undo.diff import DiffEngine, EditCandidate
from undo_forge.undo.engine import (
    CascadePlan,
    CascadeResult,
    Preview,
    StepOutcome,
    StepStatus,
    UndoRedoEngine,
)
from undo_forge.undo.log import OperationLog
from undo_forge.undo.models import (
    CascadeDirection,
    ChangeCategory,
    CommandExecution,
    FileCreate,
    FileDelete,
    FileEditFull,
    FileEditReplace,
    Operation,
    OperationMetadata,
    OperationMode,
    OperationType,
    UndoState,
    operation_from_dict,
)
from undo_forge.undo.monitor import ChangeMonitor, MonitorStats, MonitorStatus

__all__ = [
    "BackupSnapshot",
    "BackupStore",
    "CascadeDirection",
    "CascadePlan",
    "CascadeResult",
    "ChangeCategory",
    "ChangeMonitor",
    "CommandExecution",
    "DiffEngine",
    "EditCandidate",
    "FileCreate",
    "FileDelete",
    "FileEditFull",
    "FileEditReplace",
    "MonitorStats",
    "MonitorStatus",
    "Operation",
    "OperationLog",
    "OperationMetadata",
    "OperationMode",
    "OperationType",
    "Preview",
    "StepOutcome",
    "StepStatus",
    "UndoRedoEngine",
    "UndoState",
    "operation_from_dict",
]
