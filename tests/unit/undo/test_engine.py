"""Tests for UndoRedoEngine."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import pytest

from undo_forge.core import (
    AlreadyInStateError,
    CommandNotReversibleError,
    FileIOError,
    InvalidIndexError,
    LogUnavailableError,
    MissingPayloadError,
    OperationNotFoundError,
    StateUpdateError,
)
from undo_forge.undo.backup import BackupStore
from undo_forge.undo.diff import DiffEngine
from undo_forge.undo.engine import StepStatus, UndoRedoEngine
from undo_forge.undo.log import OperationLog
from undo_forge.undo.models import (
    CascadeDirection,
    FileEditFull,
    FileEditReplace,
    Operation,
    UndoState,
)


def record_history(log: OperationLog, path: Path, contents: list[str]) -> list[Operation]:
    """Write each version of a file and log what changed.

    The first version is a create; later ones are diffed against the
    previous version. The file is left holding the last version.
    """
    diff_engine = DiffEngine()
    operations: list[Operation] = []
    previous: str | None = None
    for content in contents:
        path.write_text(content)
        operations.extend(log.append_many(diff_engine.analyze(str(path), previous, content)))
        previous = content
    return operations


def states(log: OperationLog) -> dict[str, UndoState]:
    return {op.id: op.undo_state for op in log.load()}


class TestScenarios:
    """End-to-end cascades on a single file."""

    def test_create_undo_redo(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test undoing a create deletes the file and redo recreates it."""
        path = project_dir / "a.txt"
        [op] = record_history(log, path, ["hello"])

        engine.undo(op.id)
        assert not path.exists()

        engine.redo(op.id)
        assert path.read_text() == "hello"

    def test_edit_undo_redo(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test a full-content edit toggles between before and after."""
        path = project_dir / "a.txt"
        path.write_text("hello world")
        op = log.record_file_edit(path, before="hello", after="hello world")

        engine.undo(op.id)
        assert path.read_text() == "hello"

        engine.redo(op.id)
        assert path.read_text() == "hello world"

    def test_cascade_from_middle(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test undoing the second of three operations also undoes the third."""
        path = project_dir / "a.txt"
        create, edit, append = record_history(log, path, ["hello", "hi", "hi there"])

        result = engine.undo(1)

        assert path.read_text() == "hello"
        assert [o.operation.id for o in result.outcomes] == [append.id, edit.id]
        assert result.target.id == edit.id
        assert [op.id for op in result.cascaded] == [append.id]
        assert states(log) == {
            create.id: UndoState.ACTIVE,
            edit.id: UndoState.UNDONE,
            append.id: UndoState.UNDONE,
        }

    def test_undo_recorded_delete(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test undoing a delete recreates the file with its content."""
        path = project_dir / "a.txt"
        op = log.record_file_delete(path, "data")

        engine.undo(op.id)

        assert path.read_text() == "data"


class TestCascadeProperties:
    """Properties that hold for any history."""

    VERSIONS = [
        "alpha\n",
        "alpha\nbeta\n",
        "alpha\nbeta\ngamma\n",
        "ALPHA\nbeta\ngamma\n",
        "ALPHA\ngamma\n",
    ]

    @pytest.mark.parametrize("k", range(1, len(VERSIONS)))
    def test_undo_restores_previous_version(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path, k: int
    ) -> None:
        """Test undoing operation k leaves the file as it was before k."""
        path = project_dir / "a.txt"
        ops = record_history(log, path, self.VERSIONS)

        engine.undo(ops[k].id)

        assert path.read_text() == self.VERSIONS[k - 1]

    @pytest.mark.parametrize("k", range(len(VERSIONS)))
    def test_undo_then_redo_round_trips(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path, k: int
    ) -> None:
        """Test redo at the undo point replays through the latest version."""
        path = project_dir / "a.txt"
        ops = record_history(log, path, self.VERSIONS)

        engine.undo(ops[k].id)
        engine.redo(ops[k].id)

        assert path.read_text() == self.VERSIONS[-1]
        assert all(state is UndoState.ACTIVE for state in states(log).values())

    @pytest.mark.parametrize(
        ("old", "new"),
        [
            (
                "first_value = 10\nmiddle line stays\nsecond_value = 20\n",
                "first_value = 99999\nmiddle line stays\nsecond_value = 77777\n",
            ),
            ("aaaa==========MARK", "MARK==========bbbb"),
        ],
    )
    def test_recorded_edits_round_trip(
        self,
        engine: UndoRedoEngine,
        log: OperationLog,
        project_dir: Path,
        old: str,
        new: str,
    ) -> None:
        """Test diff engine records undo and redo to the exact versions."""
        path = project_dir / "a.txt"
        ops = record_history(log, path, [old, new])
        first_edit = ops[1]

        result = engine.undo(first_edit.id)
        assert path.read_text() == old
        engine.redo(first_edit.id)

        assert path.read_text() == new
        assert not result.failures

    def test_undo_last_then_redo_last(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test undo/redo of the latest operation returns to its result."""
        path = project_dir / "a.txt"
        ops = record_history(log, path, self.VERSIONS)

        engine.undo(ops[-1].id)
        assert path.read_text() == self.VERSIONS[-2]
        engine.redo(ops[-1].id)

        assert path.read_text() == self.VERSIONS[-1]

    def test_earlier_operations_untouched(self, engine: UndoRedoEngine, log: OperationLog) -> None:
        """Test undo never changes operations recorded before the target."""
        ops = [log.record_command(f"step {i}") for i in range(4)]

        engine.undo(ops[2].id)

        assert states(log) == {
            ops[0].id: UndoState.ACTIVE,
            ops[1].id: UndoState.ACTIVE,
            ops[2].id: UndoState.UNDONE,
            ops[3].id: UndoState.UNDONE,
        }

    def test_redo_replays_forward_only(self, engine: UndoRedoEngine, log: OperationLog) -> None:
        """Test redo leaves earlier undone operations undone."""
        ops = [log.record_command(f"step {i}") for i in range(3)]
        engine.undo(ops[0].id)

        result = engine.redo(ops[1].id)

        assert [o.operation.id for o in result.outcomes] == [ops[1].id, ops[2].id]
        assert states(log)[ops[0].id] is UndoState.UNDONE

    def test_ordering_follows_timestamps(
        self,
        engine: UndoRedoEngine,
        log: OperationLog,
        write_raw_lines: Callable[..., None],
    ) -> None:
        """Test a backdated record is ordered by its timestamp, not its position."""
        write_raw_lines(
            {"id": "op_late", "timestamp": "2024-01-02T00:00:00Z",
             "type": "command_execution", "command": "late"},
            {"id": "op_early", "timestamp": "2024-01-01T00:00:00Z",
             "type": "command_execution", "command": "early"},
        )

        result = engine.undo("op_early")

        assert [op.id for op in result.cascaded] == ["op_late"]

    def test_already_undone_fails_without_mutation(
        self,
        engine: UndoRedoEngine,
        log: OperationLog,
        backups: BackupStore,
        project_dir: Path,
    ) -> None:
        """Test a second undo raises and touches nothing."""
        path = project_dir / "a.txt"
        path.write_text("hello world")
        op = log.record_file_edit(path, before="hello", after="hello world")
        engine.undo(op.id)
        path.write_text("edited since")
        snapshots = len(backups.list_snapshots())

        with pytest.raises(AlreadyInStateError):
            engine.undo(op.id)

        assert path.read_text() == "edited since"
        assert len(backups.list_snapshots()) == snapshots

    def test_redo_active_fails(self, engine: UndoRedoEngine, log: OperationLog) -> None:
        """Test redo of an active operation raises."""
        op = log.record_command("ls")

        with pytest.raises(AlreadyInStateError):
            engine.redo(op.id)


class TestResolution:
    """Tests for id and index references."""

    def test_no_store(self, engine: UndoRedoEngine) -> None:
        """Test a missing log raises LogUnavailableError."""
        with pytest.raises(LogUnavailableError):
            engine.undo(0)

    def test_unknown_id(self, engine: UndoRedoEngine, log: OperationLog) -> None:
        """Test an unknown id raises OperationNotFoundError."""
        log.record_command("ls")

        with pytest.raises(OperationNotFoundError):
            engine.undo("op_missing")

    @pytest.mark.parametrize("index", [-1, 2, 10])
    def test_index_out_of_range(
        self, engine: UndoRedoEngine, log: OperationLog, index: int
    ) -> None:
        """Test out-of-range indexes raise InvalidIndexError."""
        log.record_command("a")
        log.record_command("b")

        with pytest.raises(InvalidIndexError) as exc_info:
            engine.undo(index)

        assert exc_info.value.available == 2

    def test_undo_index_counts_active_only(
        self, engine: UndoRedoEngine, log: OperationLog
    ) -> None:
        """Test undo indexes skip undone operations."""
        ops = [log.record_command(f"step {i}") for i in range(3)]
        engine.undo(ops[2].id)

        result = engine.undo(1)

        assert result.target.id == ops[1].id

    def test_redo_index_counts_undone_only(
        self, engine: UndoRedoEngine, log: OperationLog
    ) -> None:
        """Test redo indexes skip active operations."""
        ops = [log.record_command(f"step {i}") for i in range(3)]
        engine.undo(ops[1].id)

        result = engine.redo(1)

        assert result.target.id == ops[2].id

    def test_resolve_all(self, engine: UndoRedoEngine, log: OperationLog) -> None:
        """Test resolve without a view indexes every operation."""
        ops = [log.record_command(f"step {i}") for i in range(2)]

        assert engine.resolve(1).id == ops[1].id


class TestPayloadChecks:
    """Tests for content checks before a cascade runs."""

    def test_missing_before(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test an edit without before content cannot be undone."""
        path = project_dir / "a.txt"
        path.write_text("new")
        op = log.append(FileEditFull(file=str(path), after="new"))

        with pytest.raises(MissingPayloadError) as exc_info:
            engine.undo(op.id)

        assert exc_info.value.field_name == "before"
        assert path.read_text() == "new"
        assert states(log)[op.id] is UndoState.ACTIVE

    def test_missing_payload_in_cascade_aborts(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test a later step without content blocks the whole cascade."""
        first = project_dir / "first.txt"
        second = project_dir / "second.txt"
        first.write_text("one")
        second.write_text("two")
        target = log.record_file_create(first, "one")
        log.append(FileEditFull(file=str(second), after="two"))

        with pytest.raises(MissingPayloadError):
            engine.undo(target.id)

        assert first.exists()
        assert all(state is UndoState.ACTIVE for state in states(log).values())

    def test_plan_has_no_side_effects(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test planning reports steps without touching files or states."""
        path = project_dir / "a.txt"
        create, edit = record_history(log, path, ["hello", "hi"])

        plan = engine.plan_undo(create.id)

        assert plan.direction is CascadeDirection.UNDO
        assert [op.id for op in plan.steps] == [edit.id, create.id]
        assert plan.files == [str(path)]
        assert path.read_text() == "hi"
        assert states(log)[create.id] is UndoState.ACTIVE


class TestStepOutcomes:
    """Tests for per-step results."""

    def test_backups_written_before_apply(
        self,
        engine: UndoRedoEngine,
        log: OperationLog,
        backups: BackupStore,
        project_dir: Path,
    ) -> None:
        """Test each step snapshots the file it is about to change."""
        path = project_dir / "a.txt"
        path.write_text("hello world")
        op = log.record_file_edit(path, before="hello", after="hello world")

        undo_result = engine.undo(op.id)
        redo_result = engine.redo(op.id)

        undo_backup = undo_result.outcomes[0].backup_path
        redo_backup = redo_result.outcomes[0].backup_path
        assert undo_backup is not None and redo_backup is not None
        assert undo_backup.name == f"{op.id}-undo.bak"
        assert backups.read(undo_backup) == "hello world"
        assert redo_backup.name == f"{op.id}-redo.bak"
        assert backups.read(redo_backup) == "hello"

    def test_failed_step_does_not_stop_cascade(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test a step that cannot apply is reported and later steps still run."""
        created = project_dir / "created.txt"
        edited = project_dir / "edited.py"
        created.write_text("new file")
        edited.write_text("value = 2\n")
        target = log.record_file_create(created, "new file")
        log.record_file_edit(edited, old_string="value = 1", new_string="value = 2")
        # Changed behind the log's back
        edited.write_text("value = 3\n")

        result = engine.undo(target.id)

        assert [o.status for o in result.outcomes] == [StepStatus.FAILED, StepStatus.APPLIED]
        assert isinstance(result.failures[0].error, FileIOError)
        assert result.ok is False
        assert not created.exists()
        assert edited.read_text() == "value = 3\n"
        assert all(state is UndoState.UNDONE for state in states(log).values())

    def test_state_save_failure_names_applied_steps(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test a failed state rewrite raises after reporting changed files."""
        path = project_dir / "a.txt"
        [op] = record_history(log, path, ["hello"])

        with (
            patch.object(log, "update_states", side_effect=OSError("disk full")),
            pytest.raises(StateUpdateError) as excinfo,
        ):
            engine.undo(op.id)

        assert excinfo.value.applied == [op.id]
        assert "disk full" in str(excinfo.value)
        assert not path.exists()
        assert states(log) == {op.id: UndoState.ACTIVE}

    def test_replace_on_missing_file_fails(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test a replacement cannot be undone on a vanished file."""
        path = project_dir / "gone.py"
        op = log.append(
            FileEditReplace(file=str(path), old_string="alpha", new_string="beta")
        )

        result = engine.undo(op.id)

        assert result.outcomes[0].status is StepStatus.FAILED
        assert not path.exists()

    def test_full_content_recreates_missing_file(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test restoring full content works even if the file was removed."""
        path = project_dir / "nested" / "dir" / "a.txt"
        op = log.record_file_edit(path, before="hello", after="hello world")

        result = engine.undo(op.id)

        assert result.ok
        assert result.outcomes[0].backup_path is None
        assert path.read_text() == "hello"

    def test_commands_are_tracked_only(
        self, engine: UndoRedoEngine, log: OperationLog
    ) -> None:
        """Test commands change state and carry a warning."""
        op = log.record_command("rm -rf build")

        result = engine.undo(op.id)

        outcome = result.outcomes[0]
        assert outcome.status is StepStatus.TRACKED
        assert isinstance(outcome.error, CommandNotReversibleError)
        assert result.warnings == [outcome]
        assert result.ok is True
        assert result.target.undo_state is UndoState.UNDONE


class TestPreview:
    """Tests for preview."""

    def test_preview_active_shows_undo(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test previewing an active operation plans an undo."""
        path = project_dir / "a.txt"
        create, edit = record_history(log, path, ["hello", "hi"])

        preview = engine.preview(0)

        assert preview.operation.id == create.id
        assert preview.plan.direction is CascadeDirection.UNDO
        assert [op.id for op in preview.plan.steps] == [edit.id, create.id]
        assert preview.executable

    def test_preview_undone_shows_redo(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test previewing an undone operation plans a redo."""
        path = project_dir / "a.txt"
        create, edit = record_history(log, path, ["hello", "hi"])
        engine.undo(create.id)

        preview = engine.preview(edit.id)

        assert preview.plan.direction is CascadeDirection.REDO
        assert [op.id for op in preview.plan.steps] == [edit.id]

    def test_preview_reports_missing_content(
        self, engine: UndoRedoEngine, log: OperationLog, project_dir: Path
    ) -> None:
        """Test preview lists missing content instead of raising."""
        op = log.append(FileEditFull(file=str(project_dir / "a.txt"), after="x"))

        preview = engine.preview(op.id)

        assert preview.executable is False
        assert preview.missing[0].field_name == "before"
