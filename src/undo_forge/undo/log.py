"""Append-only operation log.

Operations are stored one JSON object per line. New records are only
ever appended; state changes, removals and compaction rewrite the whole
file atomically (temp file + rename).

Every OperationLog instance pointing at the same file shares one
re-entrant lock, so monitor capture, undo/redo state updates and manual
log edits in the same process never interleave their read-modify-write
cycles. Callers that need a longer critical section (the undo engine
loads, applies and then updates states) hold ``log.lock`` around it.

Example:
    log = OperationLog(Path("~/.undo-forge/log.jsonl").expanduser())
    op = log.record_file_edit("/tmp/a.txt", before="hello", after="hello world")
    log.update_state(op.id, UndoState.UNDONE)
"""

from __future__ import annotations

import contextlib
import json
import os
import shutil
import tempfile
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from undo_forge.core import (
    LogUnavailableError,
    MalformedRecordError,
    OperationNotFoundError,
    get_logger,
)
from undo_forge.undo.models import (
    CommandExecution,
    FileCreate,
    FileDelete,
    FileEditFull,
    FileEditReplace,
    Operation,
    UndoState,
    generate_operation_id,
    operation_from_dict,
    utc_now,
)

logger = get_logger("undo.log")

_LOCKS: dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()

# Round-trips undecodable bytes of malformed lines through rewrites
_RAW_ERRORS = "surrogateescape"


def _lock_for(path: Path) -> threading.RLock:
    """Process-wide lock for one store path."""
    key = os.path.normcase(str(path.resolve()))
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = threading.RLock()
            _LOCKS[key] = lock
        return lock


@dataclass
class _Line:
    """One non-blank line of the store, parsed if possible."""

    raw: str
    operation: Operation | None


class OperationLog:
    """Persisted, ordered sequence of Operation records."""

    BACKUP_DIR_NAME = "log-backups"

    def __init__(self, path: Path | str) -> None:
        """Initialize the log.

        The file is created on the first append.

        Args:
            path: Location of the JSONL store.
        """
        self.path = Path(path).expanduser()
        self._lock = _lock_for(self.path)

    @property
    def lock(self) -> threading.RLock:
        """Lock serializing every access to this store."""
        return self._lock

    def exists(self) -> bool:
        """Whether the store file is present."""
        return self.path.is_file()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _read_lines(self) -> list[_Line]:
        """Read and parse every non-blank line.

        Unparseable lines are kept (with ``operation`` None) so rewrites
        can preserve them. Lines are decoded one at a time; invalid UTF-8
        is held as surrogate escapes and written back byte for byte.
        Records without a sequence number get one after the highest seen
        so far, in storage order.
        """
        if not self.exists():
            return []

        lines: list[_Line] = []
        max_seq = 0
        for line_number, chunk in enumerate(self.path.read_bytes().split(b"\n"), start=1):
            raw = chunk.decode("utf-8", errors=_RAW_ERRORS).rstrip("\r")
            if not raw.strip():
                continue
            try:
                try:
                    chunk.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise MalformedRecordError(
                        f"invalid UTF-8 at byte {e.start}", line_number
                    ) from e
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise MalformedRecordError(f"invalid JSON: {e.msg}", line_number) from e
                try:
                    op = operation_from_dict(data)
                except MalformedRecordError as e:
                    raise MalformedRecordError(e.reason, line_number) from e
            except MalformedRecordError as e:
                logger.warning("Skipping record in %s: %s", self.path, e)
                lines.append(_Line(raw=raw, operation=None))
                continue

            if op.seq is None:
                op.seq = max_seq + 1
            max_seq = max(max_seq, op.seq)
            lines.append(_Line(raw=raw, operation=op))
        return lines

    def load(self) -> list[Operation]:
        """Return every parseable record in storage order.

        Malformed lines are skipped with a warning. A missing store is
        simply empty.
        """
        with self._lock:
            return [line.operation for line in self._read_lines() if line.operation]

    def get(self, operation_id: str) -> Operation:
        """Return the record with the given id.

        Raises:
            OperationNotFoundError: If no record matches.
        """
        for op in self.load():
            if op.id == operation_id:
                return op
        raise OperationNotFoundError(operation_id)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def append(self, operation: Operation) -> Operation:
        """Append one record, assigning id, timestamp and seq if absent.

        Args:
            operation: Record to store. It is updated in place with the
                assigned fields.

        Returns:
            The stored operation.
        """
        return self.append_many([operation])[0]

    def append_many(self, operations: Iterable[Operation]) -> list[Operation]:
        """Append several records in order under one lock acquisition."""
        operations = list(operations)
        if not operations:
            return []

        with self._lock:
            existing = self._read_lines()
            next_seq = max(
                (line.operation.seq or 0 for line in existing if line.operation),
                default=0,
            ) + 1
            known_ids = {line.operation.id for line in existing if line.operation}

            for op in operations:
                if not op.id or op.id in known_ids:
                    op.id = generate_operation_id()
                    while op.id in known_ids:
                        op.id = generate_operation_id()
                known_ids.add(op.id)
                if op.timestamp is None:
                    op.timestamp = utc_now()
                op.seq = next_seq
                next_seq += 1

            payload = "".join(self._encode(op) + "\n" for op in operations)
            # Keep line framing intact if the last write was cut short
            if self._ends_without_newline():
                payload = "\n" + payload

            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(payload)

        for op in operations:
            logger.debug("Logged %s (%s)", op.id, op.summary())
        return operations

    def update_state(self, operation_id: str, state: UndoState) -> Operation:
        """Change one record's undo state.

        Raises:
            LogUnavailableError: If the store does not exist.
            OperationNotFoundError: If no record matches.
        """
        return self.update_states([operation_id], state)[0]

    def update_states(self, operation_ids: Iterable[str], state: UndoState) -> list[Operation]:
        """Change several records' undo state in one rewrite.

        Raises:
            LogUnavailableError: If the store does not exist.
            OperationNotFoundError: If any id has no record; nothing is
                written in that case.
        """
        wanted = list(operation_ids)
        with self._lock:
            lines = self._require_lines()
            by_id: dict[str, Operation] = {}
            for line in lines:
                if line.operation is not None and line.operation.id in wanted:
                    line.operation.undo_state = state
                    line.raw = self._encode(line.operation)
                    by_id[line.operation.id] = line.operation

            for op_id in wanted:
                if op_id not in by_id:
                    raise OperationNotFoundError(op_id)

            self._rewrite(line.raw for line in lines)

        logger.debug("Marked %d operation(s) %s", len(wanted), state.value)
        return [by_id[op_id] for op_id in wanted]

    def remove(self, operation_id: str) -> Operation:
        """Delete one record from the store.

        Raises:
            LogUnavailableError: If the store does not exist.
            OperationNotFoundError: If no record matches.
        """
        with self._lock:
            lines = self._require_lines()
            removed: Operation | None = None
            kept: list[_Line] = []
            for line in lines:
                if removed is None and line.operation is not None and line.operation.id == operation_id:
                    removed = line.operation
                    continue
                kept.append(line)

            if removed is None:
                raise OperationNotFoundError(operation_id)

            self.backup_store_file()
            self._rewrite(line.raw for line in kept)

        logger.info("Removed operation %s from log", operation_id)
        return removed

    def compact(self) -> int:
        """Rewrite all records sorted by (timestamp, seq).

        Unparseable lines are dropped.

        Returns:
            Number of records written.

        Raises:
            LogUnavailableError: If the store does not exist.
        """
        with self._lock:
            lines = self._require_lines()
            operations = [line.operation for line in lines if line.operation is not None]
            dropped = len(lines) - len(operations)
            if dropped:
                logger.warning("Dropping %d malformed line(s) during compaction", dropped)

            operations.sort(key=lambda op: op.sort_key())
            self.backup_store_file()
            self._rewrite(self._encode(op) for op in operations)

        logger.info("Log compacted: %d operations", len(operations))
        return len(operations)

    def backup_store_file(self) -> Path | None:
        """Copy the store next to itself before a destructive rewrite."""
        if not self.exists():
            return None
        backup_dir = self.path.parent / self.BACKUP_DIR_NAME
        backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = utc_now().strftime("%Y-%m-%dT%H-%M-%S-%f")
        target = backup_dir / f"{self.path.stem}.{stamp}.bak"
        shutil.copyfile(self.path, target)
        return target

    def _ends_without_newline(self) -> bool:
        if not self.exists() or self.path.stat().st_size == 0:
            return False
        with self.path.open("rb") as f:
            f.seek(-1, os.SEEK_END)
            return f.read(1) != b"\n"

    def _require_lines(self) -> list[_Line]:
        if not self.exists():
            raise LogUnavailableError(self.path)
        return self._read_lines()

    def _rewrite(self, raw_lines: Iterable[str]) -> None:
        """Atomically replace the store with the given lines."""
        content = "".join(f"{raw}\n" for raw in raw_lines)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            dir=self.path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", errors=_RAW_ERRORS) as f:
                f.write(content)
            Path(temp_path).replace(self.path)
        except Exception:
            with contextlib.suppress(OSError):
                Path(temp_path).unlink()
            raise

    @staticmethod
    def _encode(operation: Operation) -> str:
        return json.dumps(operation.to_dict(), ensure_ascii=False)

    # ------------------------------------------------------------------
    # Manual integration helpers
    # ------------------------------------------------------------------

    def record_file_edit(
        self,
        file_path: str | os.PathLike[str],
        *,
        before: str | None = None,
        after: str | None = None,
        old_string: str | None = None,
        new_string: str | None = None,
        line_number: int | None = None,
    ) -> Operation:
        """Log an edit made outside the monitor.

        Passing ``old_string`` and ``new_string`` records a string
        replacement; otherwise ``before``/``after`` are stored in full.
        """
        path = _resolve(file_path)
        op: Operation
        if old_string is not None and new_string is not None:
            op = FileEditReplace(
                file=path,
                old_string=old_string,
                new_string=new_string,
                line_number=line_number,
            )
        else:
            op = FileEditFull(file=path, before=before, after=after)
        return self.append(op)

    def record_file_create(self, file_path: str | os.PathLike[str], content: str) -> Operation:
        """Log a file creation made outside the monitor."""
        return self.append(FileCreate(file=_resolve(file_path), after=content))

    def record_file_delete(self, file_path: str | os.PathLike[str], content: str) -> Operation:
        """Log a file deletion made outside the monitor."""
        return self.append(FileDelete(file=_resolve(file_path), before=content))

    def record_command(
        self,
        command: str,
        *,
        working_directory: str | None = None,
        exit_code: int | None = None,
        output: str | None = None,
    ) -> Operation:
        """Log a shell command. Commands are tracked, never reversed."""
        return self.append(
            CommandExecution(
                command=command,
                working_directory=working_directory or os.getcwd(),
                exit_code=exit_code,
                output=output,
            )
        )


def _resolve(file_path: str | os.PathLike[str]) -> str:
    return str(Path(file_path).expanduser().resolve())
