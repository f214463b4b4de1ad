"""Operation log data models.

An Operation is one recorded mutation. The record shape depends on what
was recorded, so each kind is its own dataclass sharing a common base:

- FileCreate: a file appeared (``after`` holds its content)
- FileEditFull: a file changed, full ``before``/``after`` text
- FileEditReplace: a file changed, one ``old_string`` -> ``new_string``
  replacement near ``line_number``
- FileDelete: a file disappeared (``before`` holds its content)
- CommandExecution: a shell command ran (tracked, never reversed)

Records are persisted one JSON object per line. ``operation_from_dict``
is the single place where legacy and partial records are normalized;
everything downstream works with the canonical variants only.

Example:
    op = FileEditFull(file="/tmp/a.txt", before="hello", after="hello world")
    line = json.dumps(op.to_dict())
    same = operation_from_dict(json.loads(line))
"""

from __future__ import annotations

import dataclasses
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

from undo_forge.core import MalformedRecordError


class OperationType(str, Enum):
    """Kind of recorded mutation."""

    FILE_CREATE = "file_create"
    FILE_EDIT = "file_edit"
    FILE_DELETE = "file_delete"
    COMMAND_EXECUTION = "command_execution"


class OperationMode(str, Enum):
    """How the payload of a record is expressed."""

    FULL_CONTENT = "full_content"
    STRING_REPLACE = "string_replace"
    FILE_CREATE = "file_create"
    FILE_DELETE = "file_delete"
    COMMAND = "command"


class UndoState(str, Enum):
    """Whether an operation is currently applied."""

    ACTIVE = "active"
    UNDONE = "undone"


class CascadeDirection(str, Enum):
    """Direction of a cascade; also the backup name suffix."""

    UNDO = "undo"
    REDO = "redo"

    @property
    def resulting_state(self) -> UndoState:
        """State every processed operation ends up in."""
        return UndoState.UNDONE if self is CascadeDirection.UNDO else UndoState.ACTIVE

    @property
    def required_state(self) -> UndoState:
        """State the target must be in for the cascade to start."""
        return UndoState.ACTIVE if self is CascadeDirection.UNDO else UndoState.UNDONE


class ChangeCategory(str, Enum):
    """Coarse label attached to edits by the diff engine."""

    ADDITION = "ADDITION"
    DELETION = "DELETION"
    DECLARATION_CHANGE = "DECLARATION_CHANGE"
    IMPORT_CHANGE = "IMPORT_CHANGE"
    ASSIGNMENT_CHANGE = "ASSIGNMENT_CHANGE"
    TEXT_CHANGE = "TEXT_CHANGE"
    FULL_FILE_REPLACE = "FULL_FILE_REPLACE"


def generate_operation_id() -> str:
    """Generate a unique, generation-ordered operation id.

    Returns:
        Id of the form ``op_<epoch millis>_<8 hex chars>``.
    """
    return f"op_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


@dataclass
class OperationMetadata:
    """Diagnostic data attached to a record by the diff engine.

    Attributes:
        confidence: Heuristic confidence that the edit was detected correctly.
        change_type: ChangeCategory value.
        context: Surrounding lines (``before``, ``after``, ``lineNumber``).
        lines: Line count of created/deleted content.
        chars: Character count of created/deleted content.
        extra: Unrecognized keys, kept so a rewrite does not lose them.
    """

    confidence: float | None = None
    change_type: str | None = None
    context: dict[str, Any] | None = None
    lines: int | None = None
    chars: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN_KEYS: ClassVar[frozenset[str]] = frozenset(
        {"confidence", "changeType", "context", "lines", "chars"}
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary, omitting unset fields."""
        data: dict[str, Any] = dict(self.extra)
        if self.confidence is not None:
            data["confidence"] = self.confidence
        if self.change_type is not None:
            data["changeType"] = self.change_type
        if self.context is not None:
            data["context"] = self.context
        if self.lines is not None:
            data["lines"] = self.lines
        if self.chars is not None:
            data["chars"] = self.chars
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OperationMetadata:
        """Deserialize from dictionary."""
        return cls(
            confidence=data.get("confidence"),
            change_type=data.get("changeType"),
            context=data.get("context"),
            lines=data.get("lines"),
            chars=data.get("chars"),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN_KEYS},
        )


@dataclass(kw_only=True)
class Operation:
    """Fields shared by every recorded operation.

    Attributes:
        id: Unique identifier (assigned on append if empty).
        timestamp: Creation time (assigned on append if None).
        seq: Monotonic insertion sequence, breaks timestamp ties.
        undo_state: ACTIVE or UNDONE.
        metadata: Optional diff-engine diagnostics.
    """

    type: ClassVar[OperationType]
    mode: ClassVar[OperationMode]

    id: str = ""
    timestamp: datetime | None = None
    seq: int | None = None
    undo_state: UndoState = UndoState.ACTIVE
    metadata: OperationMetadata | None = None

    @property
    def is_active(self) -> bool:
        """Whether the operation is currently applied."""
        return self.undo_state is UndoState.ACTIVE

    @property
    def target_path(self) -> str | None:
        """File the operation touches, None for commands."""
        return None

    def sort_key(self) -> tuple[datetime, int]:
        """Canonical chronological ordering key: (timestamp, seq)."""
        ts = self.timestamp or datetime.min.replace(tzinfo=UTC)
        return (ts, self.seq if self.seq is not None else 0)

    def with_state(self, state: UndoState) -> Operation:
        """Copy of this operation with a different undo state."""
        return dataclasses.replace(self, undo_state=state)

    def missing_payload(self, direction: CascadeDirection) -> str | None:
        """Name of the payload field a cascade step needs but lacks.

        Returns:
            Wire name of the missing field, or None if the step can run.
        """
        return None

    def content_before(self) -> str | None:
        """Text the operation replaced (for previews)."""
        return None

    def content_after(self) -> str | None:
        """Text the operation produced (for previews)."""
        return None

    def summary(self) -> str:
        """One-line human description."""
        return self.type.value

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the log's wire format."""
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
        if self.seq is not None:
            data["seq"] = self.seq
        data["type"] = self.type.value
        data["operation"] = self.mode.value
        data.update(self._payload_dict())
        data["undoState"] = self.undo_state.value
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data

    def _payload_dict(self) -> dict[str, Any]:
        return {}


@dataclass(kw_only=True)
class FileOperation(Operation):
    """An operation on a single file."""

    file: str

    @property
    def target_path(self) -> str | None:
        return self.file

    @property
    def file_name(self) -> str:
        """Base name of the file, for messages."""
        return os.path.basename(self.file)


@dataclass(kw_only=True)
class FileCreate(FileOperation):
    """A file was created with ``after`` as its content."""

    type: ClassVar[OperationType] = OperationType.FILE_CREATE
    mode: ClassVar[OperationMode] = OperationMode.FILE_CREATE

    after: str | None = None

    def missing_payload(self, direction: CascadeDirection) -> str | None:
        if direction is CascadeDirection.REDO and self.after is None:
            return "after"
        return None

    def content_after(self) -> str | None:
        return self.after

    def summary(self) -> str:
        return f"Create {self.file}"

    def _payload_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"file": self.file}
        if self.after is not None:
            data["after"] = self.after
        return data


@dataclass(kw_only=True)
class FileEditFull(FileOperation):
    """A file changed; both full versions are stored."""

    type: ClassVar[OperationType] = OperationType.FILE_EDIT
    mode: ClassVar[OperationMode] = OperationMode.FULL_CONTENT

    before: str | None = None
    after: str | None = None

    def missing_payload(self, direction: CascadeDirection) -> str | None:
        if direction is CascadeDirection.UNDO and self.before is None:
            return "before"
        if direction is CascadeDirection.REDO and self.after is None:
            return "after"
        return None

    def content_before(self) -> str | None:
        return self.before

    def content_after(self) -> str | None:
        return self.after

    def summary(self) -> str:
        return f"Edit {self.file}"

    def _payload_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"file": self.file}
        if self.before is not None:
            data["before"] = self.before
        if self.after is not None:
            data["after"] = self.after
        return data


@dataclass(kw_only=True)
class FileEditReplace(FileOperation):
    """A file changed by replacing ``old_string`` with ``new_string``."""

    type: ClassVar[OperationType] = OperationType.FILE_EDIT
    mode: ClassVar[OperationMode] = OperationMode.STRING_REPLACE

    old_string: str | None = None
    new_string: str | None = None
    line_number: int | None = None

    def missing_payload(self, direction: CascadeDirection) -> str | None:
        if self.old_string is None:
            return "oldString"
        if self.new_string is None:
            return "newString"
        return None

    def content_before(self) -> str | None:
        return self.old_string

    def content_after(self) -> str | None:
        return self.new_string

    def summary(self) -> str:
        where = f":{self.line_number}" if self.line_number is not None else ""
        return f"Edit {self.file}{where}"

    def _payload_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"file": self.file}
        if self.old_string is not None:
            data["oldString"] = self.old_string
        if self.new_string is not None:
            data["newString"] = self.new_string
        if self.line_number is not None:
            data["lineNumber"] = self.line_number
        return data


@dataclass(kw_only=True)
class FileDelete(FileOperation):
    """A file was deleted; ``before`` holds its last content."""

    type: ClassVar[OperationType] = OperationType.FILE_DELETE
    mode: ClassVar[OperationMode] = OperationMode.FILE_DELETE

    before: str | None = None

    def missing_payload(self, direction: CascadeDirection) -> str | None:
        if direction is CascadeDirection.UNDO and self.before is None:
            return "before"
        return None

    def content_before(self) -> str | None:
        return self.before

    def summary(self) -> str:
        return f"Delete {self.file}"

    def _payload_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"file": self.file}
        if self.before is not None:
            data["before"] = self.before
        return data


@dataclass(kw_only=True)
class CommandExecution(Operation):
    """A shell command ran. Only its state can be toggled."""

    type: ClassVar[OperationType] = OperationType.COMMAND_EXECUTION
    mode: ClassVar[OperationMode] = OperationMode.COMMAND

    command: str
    working_directory: str | None = None
    exit_code: int | None = None
    output: str | None = None

    def summary(self) -> str:
        return f"Run `{self.command}`"

    def _payload_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"command": self.command}
        if self.working_directory is not None:
            data["workingDirectory"] = self.working_directory
        if self.exit_code is not None:
            data["exitCode"] = self.exit_code
        if self.output is not None:
            data["output"] = self.output
        return data


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC.

    Raises:
        MalformedRecordError: If the value is missing or unparseable.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str) and value:
        try:
            ts = datetime.fromisoformat(value)
        except ValueError as e:
            raise MalformedRecordError(f"invalid timestamp {value!r}") from e
    else:
        raise MalformedRecordError("missing timestamp")

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def _optional_str(data: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = data.get(key)
        if value is not None:
            if not isinstance(value, str):
                raise MalformedRecordError(f"'{key}' must be a string")
            return value
    return None


def _required_file(data: dict[str, Any]) -> str:
    path = _optional_str(data, "file", "filePath")
    if not path:
        raise MalformedRecordError("missing file path")
    return path


def operation_from_dict(data: Any) -> Operation:
    """Build the canonical variant for one log record.

    Normalizes legacy shapes: missing ``undoState`` means active, a
    ``file_edit`` without ``operation`` is a string replacement when
    ``oldString``/``newString`` are present and full content otherwise,
    ``content`` stands in for ``after``/``before`` on create/delete, and
    ``filePath`` stands in for ``file``.

    Raises:
        MalformedRecordError: If the record cannot be interpreted.
    """
    if not isinstance(data, dict):
        raise MalformedRecordError("record is not an object")

    raw_type = data.get("type")
    if not isinstance(raw_type, str):
        raise MalformedRecordError("missing operation type")
    try:
        op_type = OperationType(raw_type.lower())
    except ValueError as e:
        raise MalformedRecordError(f"unknown operation type {raw_type!r}") from e

    op_id = data.get("id")
    if not isinstance(op_id, str) or not op_id:
        raise MalformedRecordError("missing operation id")

    raw_state = data.get("undoState")
    if raw_state is None:
        undo_state = UndoState.ACTIVE
    else:
        try:
            undo_state = UndoState(raw_state)
        except ValueError as e:
            raise MalformedRecordError(f"invalid undoState {raw_state!r}") from e

    seq = data.get("seq")
    if seq is not None and (not isinstance(seq, int) or isinstance(seq, bool)):
        raise MalformedRecordError("'seq' must be an integer")

    raw_metadata = data.get("metadata")
    metadata = (
        OperationMetadata.from_dict(raw_metadata)
        if isinstance(raw_metadata, dict)
        else None
    )

    common: dict[str, Any] = {
        "id": op_id,
        "timestamp": parse_timestamp(data.get("timestamp")),
        "seq": seq,
        "undo_state": undo_state,
        "metadata": metadata,
    }

    if op_type is OperationType.FILE_CREATE:
        return FileCreate(
            file=_required_file(data),
            after=_optional_str(data, "after", "content"),
            **common,
        )

    if op_type is OperationType.FILE_DELETE:
        return FileDelete(
            file=_required_file(data),
            before=_optional_str(data, "before", "content"),
            **common,
        )

    if op_type is OperationType.FILE_EDIT:
        mode = data.get("operation")
        if mode is None:
            if "oldString" in data or "newString" in data:
                mode = OperationMode.STRING_REPLACE.value
            else:
                mode = OperationMode.FULL_CONTENT.value

        if mode == OperationMode.STRING_REPLACE.value:
            line_number = data.get("lineNumber")
            if line_number is not None and not isinstance(line_number, int):
                raise MalformedRecordError("'lineNumber' must be an integer")
            return FileEditReplace(
                file=_required_file(data),
                old_string=_optional_str(data, "oldString"),
                new_string=_optional_str(data, "newString"),
                line_number=line_number,
                **common,
            )
        if mode == OperationMode.FULL_CONTENT.value:
            return FileEditFull(
                file=_required_file(data),
                before=_optional_str(data, "before"),
                after=_optional_str(data, "after"),
                **common,
            )
        raise MalformedRecordError(f"unknown edit mode {mode!r}")

    command = _optional_str(data, "command")
    if command is None:
        raise MalformedRecordError("missing command")
    exit_code = data.get("exitCode")
    if exit_code is not None and not isinstance(exit_code, int):
        raise MalformedRecordError("'exitCode' must be an integer")
    return CommandExecution(
        command=command,
        working_directory=_optional_str(data, "workingDirectory"),
        exit_code=exit_code,
        output=_optional_str(data, "output"),
        **common,
    )


def sort_chronologically(operations: list[Operation]) -> list[Operation]:
    """Return operations ordered by (timestamp, seq)."""
    return sorted(operations, key=lambda op: op.sort_key())
