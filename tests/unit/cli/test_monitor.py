"""Tests for monitor control from the command line."""

from __future__ import annotations

import json
import os
import signal
from io import StringIO
from pathlib import Path
from unittest.mock import patch

import pytest
from rich.console import Console

from undo_forge.cli import monitor as monitor_cli
from undo_forge.config import MonitorConfig, StorageConfig, UndoForgeConfig
from undo_forge.undo import ChangeMonitor, OperationLog


@pytest.fixture
def config(project_dir: Path, data_dir: Path) -> UndoForgeConfig:
    """Configuration rooted at the test project and data directories."""
    return UndoForgeConfig(
        monitor=MonitorConfig(watch_path=project_dir),
        storage=StorageConfig(data_dir=data_dir),
    )


@pytest.fixture
def output() -> StringIO:
    return StringIO()


@pytest.fixture
def console(output: StringIO) -> Console:
    """Console writing plain text into a buffer."""
    return Console(file=output, width=120, color_system=None, highlight=False)


class TestStateFile:
    """Tests for reading and writing the state file."""

    def test_write_and_read(self, config: UndoForgeConfig, log: OperationLog) -> None:
        """The state file carries pid, config and stats."""
        path = monitor_cli.state_path(config)
        monitor_cli.write_state(path, ChangeMonitor(config.monitor, log).status())

        state = monitor_cli.read_state(path)

        assert state is not None
        assert state["pid"] == os.getpid()
        assert state["active"] is False
        assert state["config"]["watch_path"] == str(config.monitor.watch_path)
        assert "operations_logged" in state["stats"]
        assert not list(path.parent.glob("*.tmp"))

    def test_read_missing(self, tmp_path: Path) -> None:
        """A missing file reads as None."""
        assert monitor_cli.read_state(tmp_path / "monitor.json") is None

    @pytest.mark.parametrize("content", ["{broken", "[1]", '{"pid": "12"}'])
    def test_read_invalid(self, tmp_path: Path, content: str) -> None:
        """Unusable content reads as None."""
        path = tmp_path / "monitor.json"
        path.write_text(content)

        assert monitor_cli.read_state(path) is None

    def test_current_process_is_alive(self) -> None:
        """The test process itself is alive."""
        assert monitor_cli.is_process_alive(os.getpid()) is True


class TestCommands:
    """Tests for start, stop and status."""

    def test_status_inactive(self, config: UndoForgeConfig, console: Console, output: StringIO) -> None:
        """No state file means inactive."""
        assert monitor_cli.show_status(config, console) == 0
        assert "inactive" in output.getvalue()

    def test_status_active(self, config: UndoForgeConfig, console: Console, output: StringIO) -> None:
        """A live pid in the state file is reported as active."""
        path = monitor_cli.state_path(config)
        path.write_text(
            json.dumps(
                {
                    "pid": os.getpid(),
                    "config": {"watch_path": "/work/project"},
                    "stats": {"files_watched": 4, "operations_logged": 2, "uptime": 3.5},
                }
            )
        )

        assert monitor_cli.show_status(config, console) == 0
        text = output.getvalue()
        assert "Monitor: active" in text
        assert "/work/project" in text
        assert "Operations logged:  2" in text

    def test_stale_state_removed(
        self,
        config: UndoForgeConfig,
        console: Console,
        output: StringIO,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A dead pid's state file is cleaned up."""
        path = monitor_cli.state_path(config)
        path.write_text(json.dumps({"pid": 999_999}))
        monkeypatch.setattr(monitor_cli, "is_process_alive", lambda pid: False)

        assert monitor_cli.show_status(config, console) == 0
        assert "inactive" in output.getvalue()
        assert not path.exists()

    def test_stop_sends_sigterm(
        self,
        config: UndoForgeConfig,
        console: Console,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Stop signals the recorded pid."""
        monitor_cli.state_path(config).write_text(json.dumps({"pid": 4242}))
        monkeypatch.setattr(monitor_cli, "is_process_alive", lambda pid: True)
        with patch.object(monitor_cli.os, "kill") as kill:
            assert monitor_cli.stop_monitor(config, console) == 0

        kill.assert_called_once_with(4242, signal.SIGTERM)

    def test_start_refuses_second_instance(
        self, config: UndoForgeConfig, console: Console, output: StringIO
    ) -> None:
        """Start fails when a live monitor already owns the state file."""
        monitor_cli.state_path(config).write_text(json.dumps({"pid": os.getpid()}))

        assert monitor_cli.start_monitor(config, console) == 1
        assert "already running" in output.getvalue()

    def test_start_runs_until_stopped(
        self,
        config: UndoForgeConfig,
        console: Console,
        output: StringIO,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Start writes the state file, waits, then stops and cleans up."""
        path = monitor_cli.state_path(config)
        seen: list[bool] = []

        def fake_wait(self: ChangeMonitor, stop_event: object, **kwargs: object) -> None:
            seen.append(path.exists())

        monkeypatch.setattr(ChangeMonitor, "wait", fake_wait)

        assert monitor_cli.start_monitor(config, console) == 0
        assert seen == [True]
        assert not path.exists()
        assert "Monitor stopped" in output.getvalue()
