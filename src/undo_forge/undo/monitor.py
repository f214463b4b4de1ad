"""Automatic change capture.

The change monitor keeps the text of every watchable file under a root
directory in memory. When watchdog reports that a file was created,
modified, moved or deleted, the event is held for a short settle window
so that a burst of writes to one file collapses into one event. Settled
paths go onto a queue drained by a single writer thread, which diffs the
new content against the cached copy and appends the resulting records
to the operation log.

Example:
    monitor = ChangeMonitor(MonitorConfig(watch_path=Path(".")), log)
    monitor.start()
    ...
    stats = monitor.stop()
"""

from __future__ import annotations

import fnmatch
import os
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path, PurePath
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from undo_forge.config.models import MonitorConfig
from undo_forge.core import MonitorError, get_logger
from undo_forge.undo.diff import DiffEngine
from undo_forge.undo.log import OperationLog
from undo_forge.undo.models import Operation, utc_now

logger = get_logger("undo.monitor")

_STOP = object()


@dataclass
class CachedFile:
    """Last known content of a watched file."""

    content: str
    size: int
    last_seen: datetime


@dataclass
class MonitorStats:
    """Counters accumulated while the monitor runs.

    Attributes:
        files_watched: Files currently held in the content cache.
        operations_logged: Records appended since start.
        start_time: When start() completed.
        last_activity: When the last record was appended.
        stop_time: When stop() completed.
    """

    files_watched: int = 0
    operations_logged: int = 0
    start_time: datetime | None = None
    last_activity: datetime | None = None
    stop_time: datetime | None = None

    @property
    def uptime(self) -> float:
        """Seconds between start and stop (or now, while running)."""
        if self.start_time is None:
            return 0.0
        end = self.stop_time or utc_now()
        return (end - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "files_watched": self.files_watched,
            "operations_logged": self.operations_logged,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
            "uptime": round(self.uptime, 1),
        }


@dataclass
class MonitorStatus:
    """Snapshot returned by ChangeMonitor.status()."""

    active: bool
    config: MonitorConfig
    stats: MonitorStats

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "active": self.active,
            "config": self.config.model_dump(mode="json"),
            "stats": self.stats.to_dict(),
        }


class _MonitorEventHandler(FileSystemEventHandler):
    """Translate watchdog events into settled paths.

    Each path gets its own settle timer; a new event for the same path
    restarts it. When a timer fires the path is handed to ``sink``.
    """

    def __init__(
        self,
        monitor: ChangeMonitor,
        sink: Callable[[str], None],
        debounce_seconds: float,
    ) -> None:
        super().__init__()
        self._monitor = monitor
        self._sink = sink
        self._debounce = debounce_seconds
        self._timers: dict[str, threading.Timer] = {}
        self._closed = False
        self._lock = threading.Lock()

    def _schedule(self, src_path: str) -> None:
        path = self._monitor.normalize(src_path)
        if not self._monitor.should_watch(path):
            return

        with self._lock:
            if self._closed:
                return

            pending = self._timers.pop(path, None)
            if pending is not None:
                pending.cancel()

            def settle() -> None:
                with self._lock:
                    # Superseded or flushed by stop()
                    if self._timers.get(path) is not timer:
                        return
                    del self._timers[path]
                    self._sink(path)

            timer = threading.Timer(self._debounce, settle)
            timer.daemon = True
            self._timers[path] = timer
            timer.start()

    def flush(self) -> list[str]:
        """Cancel every pending timer and return the paths it held.

        No further events are accepted afterwards.
        """
        with self._lock:
            self._closed = True
            paths = list(self._timers)
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
        return paths

    def _schedule_directory(self, directory: str) -> None:
        for path in self._monitor.cached_paths_under(directory):
            self._schedule(path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._schedule(str(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._schedule(str(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._schedule_directory(str(event.src_path))
        else:
            self._schedule(str(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._schedule_directory(str(event.src_path))
            for root, _dirs, files in os.walk(str(event.dest_path)):
                for name in files:
                    self._schedule(os.path.join(root, name))
            return

        self._schedule(str(event.src_path))
        self._schedule(str(event.dest_path))


class ChangeMonitor:
    """Watch a directory tree and log every file mutation.

    All cache updates and log appends run under one lock, whether they
    come from the writer thread or from direct handle_* calls.
    """

    def __init__(
        self,
        config: MonitorConfig,
        log: OperationLog,
        diff_engine: DiffEngine | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            config: Watch root, filters and settle window.
            log: Store the captured operations are appended to.
            diff_engine: Engine used to describe changes.
        """
        self.config = config
        self.log = log
        self.diff_engine = diff_engine or DiffEngine()

        self._log_dir = log.path.resolve().parent
        self._cache: dict[str, CachedFile] = {}
        self._stats = MonitorStats()
        self._lock = threading.RLock()
        self._state_lock = threading.Lock()
        self._active = False

        self._queue: queue.Queue[object] = queue.Queue()
        self._writer: threading.Thread | None = None
        self._observer: Any = None
        self._handler: _MonitorEventHandler | None = None

    @property
    def is_active(self) -> bool:
        """Whether the monitor is watching."""
        return self._active

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Scan the watch root and begin watching it.

        Raises:
            MonitorError: If already active or the root is not a directory.
        """
        with self._state_lock:
            if self._active:
                raise MonitorError("Monitor is already active")

            root = self.config.watch_path
            if not root.is_dir():
                raise MonitorError(f"Watch path is not a directory: {root}")

            self._stats = MonitorStats()
            self.scan()

            self._queue = queue.Queue()
            self._writer = threading.Thread(
                target=self._writer_loop,
                name="undo-forge-writer",
                daemon=True,
            )
            self._writer.start()

            self._handler = _MonitorEventHandler(
                self, self._queue.put, self.config.debounce_seconds
            )
            self._observer = Observer()
            self._observer.schedule(self._handler, str(root), recursive=True)
            self._observer.start()

            self._stats.start_time = utc_now()
            self._active = True

        logger.info(
            "Monitoring %s (%d files cached)", root, self._stats.files_watched
        )

    def stop(self) -> MonitorStats:
        """Stop watching.

        Pending settle timers are cancelled and their paths processed,
        then the writer drains the queue and exits.

        Returns:
            Final statistics.

        Raises:
            MonitorError: If the monitor is not active.
        """
        with self._state_lock:
            if not self._active:
                raise MonitorError("Monitor is not active")

            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None

            if self._handler is not None:
                for path in self._handler.flush():
                    self._queue.put(path)
                self._handler = None

            self._queue.put(_STOP)
            if self._writer is not None:
                self._writer.join()
                self._writer = None

            self._active = False
            with self._lock:
                self._stats.stop_time = utc_now()
                stats = replace(self._stats)

        logger.info(
            "Monitor stopped: %d operations logged in %.1fs",
            stats.operations_logged,
            stats.uptime,
        )
        return stats

    def status(self) -> MonitorStatus:
        """Active flag, configuration and live statistics."""
        with self._lock:
            stats = replace(self._stats, files_watched=len(self._cache))
        return MonitorStatus(
            active=self._active,
            config=self.config.model_copy(),
            stats=stats,
        )

    def wait(
        self,
        stop_event: threading.Event,
        heartbeat: Callable[[MonitorStatus], None] | None = None,
        interval: float = 1.0,
    ) -> None:
        """Block until ``stop_event`` is set.

        Args:
            stop_event: Event that ends the wait.
            heartbeat: Called with the current status every interval.
            interval: Seconds between heartbeats.
        """
        while not stop_event.wait(interval):
            if heartbeat is not None:
                heartbeat(self.status())

    def _writer_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            try:
                self.process(str(item))
            except Exception:
                logger.exception("Failed to record change to %s", item)

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    @staticmethod
    def normalize(path: str | os.PathLike[str]) -> str:
        """Absolute, symlink-free form of a path."""
        return str(Path(path).resolve())

    def is_ignored(self, relative_path: str, is_dir: bool = False) -> bool:
        """Check a root-relative path against the ignore patterns.

        Args:
            relative_path: Path relative to the watch root.
            is_dir: Treat the last component as a directory too.
        """
        path = PurePath(relative_path)
        path_str = path.as_posix()
        directories = path.parts if is_dir else path.parts[:-1]

        for pattern in self.config.ignore_patterns:
            # **/dir/** matches the directory at any depth
            if pattern.startswith("**/") and pattern.endswith("/**"):
                dir_pattern = pattern[3:-3]
                if any(fnmatch.fnmatch(part, dir_pattern) for part in directories):
                    return True
            elif fnmatch.fnmatch(path_str, pattern):
                return True
            elif pattern.startswith("**/") and fnmatch.fnmatch(path.name, pattern[3:]):
                return True
        return False

    def should_watch(self, path: str | os.PathLike[str]) -> bool:
        """Whether changes to a file are captured.

        The file must sit under the watch root, outside the log's own
        directory, with a tracked extension and no matching ignore
        pattern. Existence is not checked.
        """
        candidate = Path(path)
        try:
            relative = candidate.relative_to(self.config.watch_path)
        except ValueError:
            return False

        if candidate == self._log_dir or self._log_dir in candidate.parents:
            return False

        extensions = self.config.file_extensions
        if extensions and candidate.suffix.lower() not in extensions:
            return False

        return not self.is_ignored(str(relative))

    def cached_paths_under(self, directory: str | os.PathLike[str]) -> list[str]:
        """Cached files inside a directory."""
        prefix = self.normalize(directory) + os.sep
        with self._lock:
            return [path for path in self._cache if path.startswith(prefix)]

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def scan(self) -> int:
        """Rebuild the content cache from disk without logging anything.

        Returns:
            Number of files cached.
        """
        root = self.config.watch_path
        with self._lock:
            self._cache.clear()
            self._scan_tree(root)
            self._stats.files_watched = len(self._cache)

        logger.debug("Scan of %s cached %d files", root, self._stats.files_watched)
        return self._stats.files_watched

    def _scan_tree(self, root: Path) -> None:
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            dirnames[:] = [
                name for name in dirnames
                if (current / name) != self._log_dir
                and not self.is_ignored(str((current / name).relative_to(root)), is_dir=True)
            ]
            for name in filenames:
                path = self.normalize(current / name)
                if not self.should_watch(path):
                    continue
                content = self._read(path)
                if content is not None:
                    self._remember(path, content)

    def _read(self, path: str) -> str | None:
        """Read a file's text, or None if it cannot or should not be tracked."""
        try:
            size = os.path.getsize(path)
            if size > self.config.max_file_size:
                logger.debug("Skipping %s: %d bytes exceeds limit", path, size)
                return None
            with open(path, encoding="utf-8", newline="") as f:
                content = f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping unreadable file %s: %s", path, e)
            return None

        if "\x00" in content:
            logger.debug("Skipping binary file %s", path)
            return None
        return content

    def _remember(self, path: str, content: str) -> None:
        self._cache[path] = CachedFile(
            content=content,
            size=len(content.encode("utf-8")),
            last_seen=utc_now(),
        )

    def _record(self, operations: list[Operation]) -> None:
        if not operations:
            return
        self.log.append_many(operations)
        self._stats.operations_logged += len(operations)
        self._stats.last_activity = utc_now()
        for op in operations:
            logger.info("Captured %s", op.summary())

    def process(self, path: str) -> list[Operation]:
        """Handle a settled path, deciding the event kind from state.

        A present file that is cached changed, a present file that is
        not cached was added, and a missing file that is cached was
        removed.
        """
        path = self.normalize(path)
        with self._lock:
            exists = os.path.isfile(path)
            cached = path in self._cache
            if exists and cached:
                return self.handle_change(path)
            if exists:
                return self.handle_add(path)
            if cached:
                return self.handle_remove(path)
            return []

    def handle_add(self, path: str | os.PathLike[str]) -> list[Operation]:
        """Record a newly created file and start caching it."""
        file_path = self.normalize(path)
        with self._lock:
            content = self._read(file_path)
            if content is None:
                return []
            operations = self.diff_engine.analyze(file_path, None, content)
            self._record(operations)
            self._remember(file_path, content)
            self._stats.files_watched = len(self._cache)
            return operations

    def handle_change(self, path: str | os.PathLike[str]) -> list[Operation]:
        """Record a modification against the cached content.

        Files that vanished before they could be read are ignored.
        """
        file_path = self.normalize(path)
        with self._lock:
            content = self._read(file_path)
            if content is None:
                return []
            cached = self._cache.get(file_path)
            old_content = cached.content if cached is not None else ""
            operations = self.diff_engine.analyze(file_path, old_content, content)
            self._record(operations)
            self._remember(file_path, content)
            self._stats.files_watched = len(self._cache)
            return operations

    def handle_remove(self, path: str | os.PathLike[str]) -> list[Operation]:
        """Record a deletion using the cached content, then forget the file."""
        file_path = self.normalize(path)
        with self._lock:
            cached = self._cache.pop(file_path, None)
            if cached is None:
                return []
            operations = self.diff_engine.analyze(file_path, cached.content, None)
            self._record(operations)
            self._stats.files_watched = len(self._cache)
            return operations
