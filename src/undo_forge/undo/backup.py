"""Pre-mutation file snapshots.

Before every destructive undo/redo step the engine copies the file it is
about to change into the backup directory, named after the operation and
the direction of the cascade: ``<operation id>-<undo|redo>.bak``. If the
same operation is processed again in a later cascade the snapshot gets a
counter (``<id>-undo.1.bak``, ``<id>-undo.2.bak``, ...) so no earlier
snapshot is ever overwritten.
"""

from __future__ import annotations

import contextlib
import re
import shutil
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from undo_forge.core import get_logger
from undo_forge.undo.models import CascadeDirection

logger = get_logger("undo.backup")

_SNAPSHOT_NAME = re.compile(r"^(?P<op_id>.+)-(?P<direction>undo|redo)(?:\.(?P<n>\d+))?\.bak$")


@dataclass
class BackupSnapshot:
    """One stored snapshot.

    Attributes:
        path: Location of the snapshot file.
        operation_id: Operation whose step produced it.
        direction: Cascade direction of that step.
        sequence: 0 for the first snapshot of the pair, then 1, 2, ...
        created: Modification time of the snapshot file.
    """

    path: Path
    operation_id: str
    direction: CascadeDirection
    sequence: int
    created: datetime


class BackupStore:
    """Directory of per-operation content snapshots."""

    SUFFIX = ".bak"

    def __init__(self, directory: Path | str) -> None:
        """Initialize the store.

        The directory is created lazily on the first snapshot.

        Args:
            directory: Where snapshot files are written.
        """
        self.directory = Path(directory).expanduser()

    def _ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        # Snapshots may contain source code; keep them owner-only
        with contextlib.suppress(OSError):
            self.directory.chmod(0o700)

    def next_path(self, operation_id: str, direction: CascadeDirection) -> Path:
        """First unused snapshot path for an (operation, direction) pair."""
        base = self.directory / f"{operation_id}-{direction.value}{self.SUFFIX}"
        if not base.exists():
            return base
        n = 1
        while True:
            candidate = self.directory / f"{operation_id}-{direction.value}.{n}{self.SUFFIX}"
            if not candidate.exists():
                return candidate
            n += 1

    def snapshot(
        self,
        operation_id: str,
        direction: CascadeDirection,
        file_path: Path | str,
    ) -> Path | None:
        """Copy a file's current content into the store.

        Args:
            operation_id: Operation about to be applied.
            direction: Direction of the cascade applying it.
            file_path: File about to be mutated.

        Returns:
            Path of the snapshot, or None if the file does not exist.

        Raises:
            OSError: If the copy fails.
        """
        source = Path(file_path)
        if not source.is_file():
            return None

        self._ensure_directory()
        target = self.next_path(operation_id, direction)
        shutil.copyfile(source, target)
        logger.debug("Backed up %s to %s", source, target)
        return target

    def list_snapshots(self, operation_id: str | None = None) -> list[BackupSnapshot]:
        """List stored snapshots, oldest first.

        Args:
            operation_id: Only return snapshots for this operation.
        """
        if not self.directory.is_dir():
            return []

        snapshots: list[BackupSnapshot] = []
        for path in self.directory.iterdir():
            match = _SNAPSHOT_NAME.match(path.name)
            if match is None:
                continue
            if operation_id is not None and match.group("op_id") != operation_id:
                continue
            snapshots.append(
                BackupSnapshot(
                    path=path,
                    operation_id=match.group("op_id"),
                    direction=CascadeDirection(match.group("direction")),
                    sequence=int(match.group("n") or 0),
                    created=datetime.fromtimestamp(path.stat().st_mtime, UTC),
                )
            )

        snapshots.sort(key=lambda s: (s.created, s.operation_id, s.direction.value, s.sequence))
        return snapshots

    def read(self, snapshot_path: Path | str) -> str:
        """Return the text of a snapshot."""
        return Path(snapshot_path).read_text(encoding="utf-8")
