"""Tests for the error hierarchy."""

from __future__ import annotations

import pytest

from undo_forge.core import (
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


@pytest.mark.parametrize(
    ("error", "parent"),
    [
        (ConfigError("x"), UndoForgeError),
        (LogUnavailableError("/tmp/log.jsonl"), OperationLogError),
        (MalformedRecordError("bad"), OperationLogError),
        (OperationNotFoundError("op_1"), OperationLogError),
        (StateUpdateError("undone", ["op_1"], "disk full"), OperationLogError),
        (InvalidIndexError(5, 2), UndoError),
        (AlreadyInStateError("op_1", "undone"), UndoError),
        (MissingPayloadError("op_1", "before"), UndoError),
        (FileIOError("op_1", "/a", "boom"), UndoError),
        (CommandNotReversibleError("op_1", "ls"), UndoError),
        (MonitorError("x"), UndoForgeError),
    ],
)
def test_hierarchy(error: UndoForgeError, parent: type[UndoForgeError]) -> None:
    """Test every error sits under its family and the common base."""
    assert isinstance(error, parent)
    assert isinstance(error, UndoForgeError)


class TestMessages:
    """Tests for error attributes and messages."""

    def test_invalid_index(self) -> None:
        """Test the available range is reported."""
        error = InvalidIndexError(7, 3)

        assert error.index == 7
        assert error.available == 3
        assert str(error) == "Invalid operation index: 7. Available: 0-2"

    def test_invalid_index_empty(self) -> None:
        """Test an empty view is reported as such."""
        assert "No operations available" in str(InvalidIndexError(0, 0))

    def test_malformed_record_line(self) -> None:
        """Test the line number is included when known."""
        assert str(MalformedRecordError("no id", 4)) == "Malformed record (line 4: no id)"
        assert str(MalformedRecordError("no id")) == "Malformed record (no id)"

    def test_missing_payload(self) -> None:
        """Test the missing field is named."""
        error = MissingPayloadError("op_9", "after")

        assert error.field_name == "after"
        assert "'after'" in str(error)
        assert "op_9" in str(error)

    def test_file_io(self) -> None:
        """Test the path and reason are kept."""
        error = FileIOError("op_1", "/a.txt", "permission denied")

        assert error.path == "/a.txt"
        assert error.reason == "permission denied"

    def test_state_update_lists_applied_steps(self) -> None:
        """Test the message names the operations whose files changed."""
        error = StateUpdateError("undone", ["op_2", "op_1"], "disk full")

        assert error.applied == ["op_2", "op_1"]
        assert "disk full" in str(error)
        assert "op_2, op_1" in str(error)

    def test_command_not_reversible(self) -> None:
        """Test the command is quoted in the message."""
        error = CommandNotReversibleError("op_1", "rm -rf build")

        assert "rm -rf build" in str(error)
        assert "tracking purposes" in str(error)
