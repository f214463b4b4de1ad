"""Cascading undo/redo over the operation log.

Undoing an operation also undoes every ACTIVE operation recorded after
it, newest first, so that the target is reversed against the content it
originally produced. Redoing an operation replays every UNDONE operation
from it onward, oldest first.

A cascade is planned completely before anything is touched: the store
must exist, the reference must resolve, the target must be in the right
state and every step must carry the content it needs. Once execution
starts, each step is backed up and applied on its own. A step that
fails on the filesystem is reported in the result and the cascade moves
on; states are written for every step in a single log rewrite at the end.

Example:
    engine = UndoRedoEngine(OperationLog(log_path), BackupStore(backup_dir))
    result = engine.undo(0)
    for outcome in result.failures:
        print(outcome.operation.id, outcome.error)
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from undo_forge.core import (
    AlreadyInStateError,
    CommandNotReversibleError,
    FileIOError,
    InvalidIndexError,
    LogUnavailableError,
    MissingPayloadError,
    OperationNotFoundError,
    StateUpdateError,
    UndoError,
    get_logger,
)
from undo_forge.undo.backup import BackupStore
from undo_forge.undo.log import OperationLog
from undo_forge.undo.models import (
    CascadeDirection,
    CommandExecution,
    FileCreate,
    FileDelete,
    FileEditFull,
    FileEditReplace,
    FileOperation,
    Operation,
    UndoState,
    sort_chronologically,
)

logger = get_logger("undo.engine")

OperationRef = str | int


class StepStatus(str, Enum):
    """Outcome of one cascade step."""

    APPLIED = "applied"
    FAILED = "failed"
    TRACKED = "tracked"


@dataclass
class StepOutcome:
    """What happened to one operation during a cascade.

    Attributes:
        operation: The operation as it was before the cascade.
        status: APPLIED, FAILED, or TRACKED (state-only, for commands).
        backup_path: Snapshot taken before the step, if the file existed.
        error: FileIOError for failures, CommandNotReversibleError for
            tracked commands.
    """

    operation: Operation
    status: StepStatus
    backup_path: Path | None = None
    error: UndoError | None = None


@dataclass
class CascadePlan:
    """Ordered steps a cascade would process.

    Attributes:
        direction: UNDO or REDO.
        target: Operation the cascade was requested for.
        steps: Every operation to process, in execution order.
    """

    direction: CascadeDirection
    target: Operation
    steps: list[Operation]

    @property
    def cascaded(self) -> list[Operation]:
        """Steps other than the target."""
        return [op for op in self.steps if op.id != self.target.id]

    @property
    def files(self) -> list[str]:
        """Distinct files touched, in step order."""
        seen: dict[str, None] = {}
        for op in self.steps:
            if op.target_path is not None:
                seen.setdefault(op.target_path, None)
        return list(seen)


@dataclass
class CascadeResult:
    """Result of an executed cascade.

    Attributes:
        direction: UNDO or REDO.
        target: The target with its new state.
        cascaded: Other processed operations with their new states.
        outcomes: One outcome per step, in execution order.
    """

    direction: CascadeDirection
    target: Operation
    cascaded: list[Operation] = field(default_factory=list)
    outcomes: list[StepOutcome] = field(default_factory=list)

    @property
    def failures(self) -> list[StepOutcome]:
        """Steps whose file could not be restored."""
        return [o for o in self.outcomes if o.status is StepStatus.FAILED]

    @property
    def warnings(self) -> list[StepOutcome]:
        """Steps that only changed state (command executions)."""
        return [o for o in self.outcomes if o.status is StepStatus.TRACKED]

    @property
    def ok(self) -> bool:
        """True when no step failed."""
        return not self.failures


@dataclass
class Preview:
    """What undoing or redoing an operation would do.

    Attributes:
        operation: The referenced operation.
        plan: Undo plan if the operation is ACTIVE, redo plan otherwise.
        missing: Steps that lack content; executing the plan would fail.
    """

    operation: Operation
    plan: CascadePlan
    missing: list[MissingPayloadError] = field(default_factory=list)

    @property
    def executable(self) -> bool:
        """Whether the plan passes the payload checks."""
        return not self.missing


class UndoRedoEngine:
    """Plans and executes cascading undo/redo against the filesystem."""

    def __init__(self, log: OperationLog, backups: BackupStore) -> None:
        """Initialize the engine.

        Args:
            log: Store holding the recorded operations.
            backups: Where pre-mutation snapshots are written.
        """
        self.log = log
        self.backups = backups
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Resolution and planning
    # ------------------------------------------------------------------

    def _load_operations(self) -> list[Operation]:
        if not self.log.exists():
            raise LogUnavailableError(self.log.path)
        return sort_chronologically(self.log.load())

    @staticmethod
    def _resolve(
        ref: OperationRef,
        operations: list[Operation],
        view: UndoState | None,
    ) -> Operation:
        """Find the operation a reference names.

        Ids are looked up among all operations. Integers are 0-based
        positions in the chronological view filtered to ``view`` (all
        operations when ``view`` is None).
        """
        if isinstance(ref, str):
            for op in operations:
                if op.id == ref:
                    return op
            raise OperationNotFoundError(ref)

        candidates = operations if view is None else [
            op for op in operations if op.undo_state is view
        ]
        if ref < 0 or ref >= len(candidates):
            raise InvalidIndexError(ref, len(candidates))
        return candidates[ref]

    def resolve(self, ref: OperationRef, view: UndoState | None = None) -> Operation:
        """Return the operation a reference names.

        Args:
            ref: Operation id, or 0-based index into the view.
            view: Restrict index references to this state.

        Raises:
            LogUnavailableError: If the store does not exist.
            OperationNotFoundError: If no operation has the id.
            InvalidIndexError: If the index is out of range.
        """
        with self.log.lock:
            return self._resolve(ref, self._load_operations(), view)

    @staticmethod
    def _steps_for(
        direction: CascadeDirection,
        target: Operation,
        operations: list[Operation],
    ) -> list[Operation]:
        key = target.sort_key()
        if direction is CascadeDirection.UNDO:
            later = [
                op for op in operations
                if op.id != target.id and op.is_active and op.sort_key() > key
            ]
            later.reverse()
            return [*later, target]

        following = [
            op for op in operations
            if op.id != target.id
            and op.undo_state is UndoState.UNDONE
            and op.sort_key() >= key
        ]
        return [target, *following]

    def _plan(
        self,
        direction: CascadeDirection,
        ref: OperationRef,
        operations: list[Operation],
    ) -> CascadePlan:
        target = self._resolve(ref, operations, direction.required_state)
        if target.undo_state is not direction.required_state:
            raise AlreadyInStateError(target.id, target.undo_state.value)

        plan = CascadePlan(
            direction=direction,
            target=target,
            steps=self._steps_for(direction, target, operations),
        )
        missing = self._missing_payloads(plan)
        if missing:
            raise missing[0]
        return plan

    @staticmethod
    def _missing_payloads(plan: CascadePlan) -> list[MissingPayloadError]:
        errors = []
        for op in plan.steps:
            field_name = op.missing_payload(plan.direction)
            if field_name is not None:
                errors.append(MissingPayloadError(op.id, field_name))
        return errors

    def plan_undo(self, ref: OperationRef) -> CascadePlan:
        """Work out what undoing an operation would process.

        Args:
            ref: Operation id, or 0-based index among ACTIVE operations.

        Raises:
            LogUnavailableError: If the store does not exist.
            OperationNotFoundError: If no operation has the id.
            InvalidIndexError: If the index is out of range.
            AlreadyInStateError: If the operation is already undone.
            MissingPayloadError: If a step lacks the content it needs.
        """
        with self.log.lock:
            return self._plan(CascadeDirection.UNDO, ref, self._load_operations())

    def plan_redo(self, ref: OperationRef) -> CascadePlan:
        """Work out what redoing an operation would process.

        Args:
            ref: Operation id, or 0-based index among UNDONE operations.

        Raises:
            Same as plan_undo, with AlreadyInStateError for ACTIVE targets.
        """
        with self.log.lock:
            return self._plan(CascadeDirection.REDO, ref, self._load_operations())

    def preview(self, ref: OperationRef) -> Preview:
        """Describe the cascade an operation's next transition would run.

        Args:
            ref: Operation id, or 0-based index among all operations.

        Returns:
            Preview with an undo plan for ACTIVE operations and a redo
            plan for UNDONE ones. Missing content is reported rather
            than raised.
        """
        with self.log.lock:
            operations = self._load_operations()
            target = self._resolve(ref, operations, None)

        direction = CascadeDirection.UNDO if target.is_active else CascadeDirection.REDO
        plan = CascadePlan(
            direction=direction,
            target=target,
            steps=self._steps_for(direction, target, operations),
        )
        return Preview(operation=target, plan=plan, missing=self._missing_payloads(plan))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def undo(self, ref: OperationRef) -> CascadeResult:
        """Undo an operation and every ACTIVE operation after it.

        Args:
            ref: Operation id, or 0-based index among ACTIVE operations.

        Returns:
            The cascade result. Per-step filesystem failures are listed
            in ``failures``; the operations are marked UNDONE regardless.

        Raises:
            Same as plan_undo. Nothing is touched when these are raised.
            StateUpdateError: If the new states cannot be saved after the
                files were changed.
        """
        return self._execute(CascadeDirection.UNDO, ref)

    def redo(self, ref: OperationRef) -> CascadeResult:
        """Redo an operation and every UNDONE operation after it.

        Args:
            ref: Operation id, or 0-based index among UNDONE operations.

        Returns:
            The cascade result, as for undo().

        Raises:
            Same as plan_redo. Nothing is touched when these are raised.
        """
        return self._execute(CascadeDirection.REDO, ref)

    def _execute(self, direction: CascadeDirection, ref: OperationRef) -> CascadeResult:
        with self._lock, self.log.lock:
            plan = self._plan(direction, ref, self._load_operations())
            logger.info(
                "%s %s (%d step(s))",
                direction.value.capitalize(),
                plan.target.id,
                len(plan.steps),
            )

            outcomes = [self._run_step(op, direction) for op in plan.steps]
            state = direction.resulting_state
            try:
                updated = self.log.update_states([op.id for op in plan.steps], state)
            except OSError as e:
                applied = [o.operation.id for o in outcomes if o.status is StepStatus.APPLIED]
                logger.error("Saving %s states failed after applying %s", state.value, applied)
                raise StateUpdateError(state.value, applied, str(e)) from e

        by_id = {op.id: op for op in updated}
        result = CascadeResult(
            direction=direction,
            target=by_id[plan.target.id],
            cascaded=[by_id[op.id] for op in plan.cascaded],
            outcomes=outcomes,
        )

        if result.failures:
            logger.warning(
                "%s of %s finished with %d failed step(s)",
                direction.value.capitalize(),
                plan.target.id,
                len(result.failures),
            )
        return result

    def _run_step(self, op: Operation, direction: CascadeDirection) -> StepOutcome:
        if isinstance(op, CommandExecution):
            warning = CommandNotReversibleError(op.id, op.command)
            logger.warning(str(warning))
            return StepOutcome(operation=op, status=StepStatus.TRACKED, error=warning)

        if not isinstance(op, FileOperation):
            return StepOutcome(operation=op, status=StepStatus.TRACKED)

        path = Path(op.file)
        try:
            backup_path = self.backups.snapshot(op.id, direction, path)
        except OSError as e:
            return self._failed(op, FileIOError(op.id, op.file, f"backup failed: {e}"))

        try:
            _apply(op, path, direction)
        except FileIOError as e:
            return self._failed(op, e, backup_path)
        except (OSError, UnicodeError) as e:
            return self._failed(op, FileIOError(op.id, op.file, str(e)), backup_path)

        logger.debug("%s applied to %s", op.id, op.file)
        return StepOutcome(operation=op, status=StepStatus.APPLIED, backup_path=backup_path)

    @staticmethod
    def _failed(
        op: Operation,
        error: FileIOError,
        backup_path: Path | None = None,
    ) -> StepOutcome:
        logger.error(str(error))
        return StepOutcome(
            operation=op,
            status=StepStatus.FAILED,
            backup_path=backup_path,
            error=error,
        )


def _apply(op: FileOperation, path: Path, direction: CascadeDirection) -> None:
    """Make the file reflect the operation being reversed or replayed."""
    undo = direction is CascadeDirection.UNDO

    if isinstance(op, FileCreate):
        if undo:
            path.unlink(missing_ok=True)
        else:
            _write(path, op.after)
    elif isinstance(op, FileDelete):
        if undo:
            _write(path, op.before)
        else:
            path.unlink(missing_ok=True)
    elif isinstance(op, FileEditFull):
        _write(path, op.before if undo else op.after)
    elif isinstance(op, FileEditReplace):
        if undo:
            _replace_first(op, path, op.new_string, op.old_string)
        else:
            _replace_first(op, path, op.old_string, op.new_string)


def _write(path: Path, content: str | None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content or "", encoding="utf-8", newline="")


def _replace_first(
    op: FileEditReplace,
    path: Path,
    search: str | None,
    replacement: str | None,
) -> None:
    if not path.is_file():
        raise FileIOError(op.id, op.file, "file does not exist")
    if not search:
        raise FileIOError(op.id, op.file, "no text to locate")

    with path.open(encoding="utf-8", newline="") as f:
        content = f.read()

    index = content.find(search)
    if index < 0:
        raise FileIOError(op.id, op.file, "text to replace not found")

    _write(path, content[:index] + (replacement or "") + content[index + len(search):])
