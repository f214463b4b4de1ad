"""Error taxonomy for undo-forge.

Every error raised by the library derives from UndoForgeError so callers
can catch the whole family at once. Errors that abort an undo/redo are
raised before any file is touched; per-step failures during a cascade
are reported through the cascade result instead of being raised.
"""

from __future__ import annotations


class UndoForgeError(Exception):
    """Base class for all undo-forge errors."""

    pass


class ConfigError(UndoForgeError):
    """Configuration could not be loaded or validated."""

    pass


class OperationLogError(UndoForgeError):
    """Error reading or writing the operation log."""

    pass


class LogUnavailableError(OperationLogError):
    """No operation log store is present."""

    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(f"No operation log found at {path}")


class MalformedRecordError(OperationLogError):
    """A log line could not be parsed into an operation."""

    def __init__(self, reason: str, line_number: int | None = None) -> None:
        self.reason = reason
        self.line_number = line_number
        where = f"line {line_number}: " if line_number is not None else ""
        super().__init__(f"Malformed record ({where}{reason})")


class OperationNotFoundError(OperationLogError):
    """No record matches the requested operation id."""

    def __init__(self, operation_id: str) -> None:
        self.operation_id = operation_id
        super().__init__(f"Operation not found: {operation_id}")


class StateUpdateError(OperationLogError):
    """Files were changed by a cascade but the new states were not saved."""

    def __init__(self, state: str, applied: list[str], reason: str) -> None:
        self.state = state
        self.applied = applied
        self.reason = reason
        steps = ", ".join(applied) if applied else "none"
        super().__init__(
            f"Could not mark operations {state}: {reason}. "
            f"Files already changed by: {steps}"
        )


class UndoError(UndoForgeError):
    """Error raised by the undo/redo engine."""

    pass


class InvalidIndexError(UndoError):
    """An index reference is outside the addressable range."""

    def __init__(self, index: int, available: int) -> None:
        self.index = index
        self.available = available
        if available:
            message = f"Invalid operation index: {index}. Available: 0-{available - 1}"
        else:
            message = f"Invalid operation index: {index}. No operations available"
        super().__init__(message)


class AlreadyInStateError(UndoError):
    """Undo of an undone operation, or redo of an active one."""

    def __init__(self, operation_id: str, state: str) -> None:
        self.operation_id = operation_id
        self.state = state
        super().__init__(f"Operation {operation_id} is already {state}")


class MissingPayloadError(UndoError):
    """The content needed to apply a step is absent from the record."""

    def __init__(self, operation_id: str, field_name: str) -> None:
        self.operation_id = operation_id
        self.field_name = field_name
        super().__init__(
            f"No '{field_name}' content available for operation {operation_id}"
        )


class FileIOError(UndoError):
    """A backup or apply step failed on the filesystem."""

    def __init__(self, operation_id: str, path: str | None, reason: str) -> None:
        self.operation_id = operation_id
        self.path = path
        self.reason = reason
        super().__init__(f"Operation {operation_id} on {path}: {reason}")


class CommandNotReversibleError(UndoError):
    """A command execution cannot be physically undone or redone.

    Never raised; attached to the step outcome as a warning.
    """

    def __init__(self, operation_id: str, command: str | None) -> None:
        self.operation_id = operation_id
        self.command = command
        super().__init__(
            f"Cannot automatically reverse command execution: {command}. "
            "The operation state was changed for tracking purposes only."
        )


class MonitorError(UndoForgeError):
    """Change monitor lifecycle error (start twice, stop when idle)."""

    pass
