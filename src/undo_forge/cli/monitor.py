"""Monitor control for the command line.

``monitor start`` runs the change monitor in the foreground and keeps a
small JSON state file (pid, configuration, statistics) in the data
directory up to date. ``monitor stop`` and ``monitor status``, run from
another shell, read that file: stop sends SIGTERM to the recorded pid,
status reports the last statistics if the process is still alive.
"""

from __future__ import annotations

import contextlib
import json
import os
import signal
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

from undo_forge.core import get_logger
from undo_forge.undo import ChangeMonitor, DiffEngine, OperationLog
from undo_forge.undo.models import utc_now

if TYPE_CHECKING:
    from rich.console import Console

    from undo_forge.config import UndoForgeConfig
    from undo_forge.undo import MonitorStatus

logger = get_logger("cli.monitor")

STATE_FILE_NAME = "monitor.json"


def state_path(config: UndoForgeConfig) -> Path:
    """Location of the running monitor's state file."""
    return config.storage.data_dir / STATE_FILE_NAME


def read_state(path: Path) -> dict[str, Any] | None:
    """Load the state file, or None if absent or unreadable."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("Ignoring unreadable monitor state %s: %s", path, e)
        return None
    if not isinstance(data, dict) or not isinstance(data.get("pid"), int):
        return None
    return data


def write_state(path: Path, status: MonitorStatus) -> None:
    """Atomically write the state file for this process."""
    data = {
        "pid": os.getpid(),
        "updated": utc_now().isoformat(),
        **status.to_dict(),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        Path(temp_path).replace(path)
    except Exception:
        with contextlib.suppress(OSError):
            Path(temp_path).unlink()
        raise


def is_process_alive(pid: int) -> bool:
    """Check whether a process with this pid exists."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to someone else
        return True
    return True


def _running_state(config: UndoForgeConfig) -> dict[str, Any] | None:
    path = state_path(config)
    state = read_state(path)
    if state is None:
        return None
    if not is_process_alive(state["pid"]):
        logger.debug("Removing stale monitor state for pid %s", state["pid"])
        with contextlib.suppress(OSError):
            path.unlink()
        return None
    return state


def start_monitor(config: UndoForgeConfig, console: Console) -> int:
    """Run the monitor until SIGINT or SIGTERM.

    Returns:
        Exit code.
    """
    running = _running_state(config)
    if running is not None:
        console.print(f"[yellow]Monitor is already running (pid {running['pid']})[/yellow]")
        return 1

    log = OperationLog(config.storage.log_path)
    diff_engine = DiffEngine(
        edit_threshold=config.diff.edit_threshold,
        context_lines=config.diff.context_lines,
    )
    monitor = ChangeMonitor(config.monitor, log, diff_engine)
    path = state_path(config)
    stop_event = threading.Event()

    def request_stop(signum: int, frame: Any) -> None:
        stop_event.set()

    previous = {
        sig: signal.signal(sig, request_stop)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        monitor.start()
        write_state(path, monitor.status())
        console.print(f"[green]Monitoring[/green] {config.monitor.watch_path}")
        console.print(f"[dim]Logging to {log.path}. Press Ctrl+C to stop.[/dim]")
        monitor.wait(stop_event, heartbeat=lambda status: write_state(path, status))
    finally:
        stats = monitor.stop() if monitor.is_active else None
        with contextlib.suppress(OSError):
            path.unlink()
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    if stats is not None:
        console.print("[bold]Monitor stopped[/bold]")
        console.print(f"  Files watched:      {stats.files_watched}")
        console.print(f"  Operations logged:  {stats.operations_logged}")
        console.print(f"  Uptime:             {stats.uptime:.1f}s")
    return 0


def stop_monitor(config: UndoForgeConfig, console: Console) -> int:
    """Signal a running monitor to stop.

    Returns:
        Exit code (1 if no monitor is running).
    """
    state = _running_state(config)
    if state is None:
        console.print("[yellow]Monitor is not running[/yellow]")
        return 1

    os.kill(state["pid"], signal.SIGTERM)
    console.print(f"Sent stop signal to monitor (pid {state['pid']})")
    return 0


def show_status(config: UndoForgeConfig, console: Console) -> int:
    """Print the running monitor's last reported status."""
    state = _running_state(config)
    if state is None:
        console.print("Monitor: [dim]inactive[/dim]")
        return 0

    stats = state.get("stats", {})
    watch_path = state.get("config", {}).get("watch_path", "?")
    console.print(f"Monitor: [green]active[/green] (pid {state['pid']})")
    console.print(f"  Watching:           {watch_path}")
    console.print(f"  Files watched:      {stats.get('files_watched', 0)}")
    console.print(f"  Operations logged:  {stats.get('operations_logged', 0)}")
    console.print(f"  Uptime:             {stats.get('uptime', 0)}s")
    if stats.get("last_activity"):
        console.print(f"  Last activity:      {stats['last_activity']}")
    return 0
