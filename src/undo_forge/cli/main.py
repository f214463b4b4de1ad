"""CLI entry point for undo-forge."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape

from undo_forge import __version__
from undo_forge.cli import monitor as monitor_cli
from undo_forge.cli.visual import DiffPresenter, format_change_summary
from undo_forge.config import ConfigLoader, UndoForgeConfig
from undo_forge.core import (
    ConfigError,
    InvalidIndexError,
    UndoForgeError,
    get_logger,
    setup_logging,
)
from undo_forge.undo import BackupStore, OperationLog, UndoRedoEngine
from undo_forge.undo.engine import CascadeResult, OperationRef

if TYPE_CHECKING:
    from undo_forge.undo import Operation

logger = get_logger("cli")

CASCADE_COMMANDS = ("undo", "redo", "preview")
MONITOR_ACTIONS = ("start", "stop", "status")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for undo-forge CLI.

    Args:
        argv: Arguments without the program name; defaults to sys.argv.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    args = sys.argv[1:] if argv is None else list(argv)

    if "--version" in args or "-v" in args:
        print(f"undo-forge {__version__}")
        return 0

    if not args or "--help" in args or "-h" in args:
        print_help()
        return 0

    command, rest = args[0], args[1:]
    overrides: dict[str, Any] = {}

    if command == "monitor":
        if not rest or rest[0] not in MONITOR_ACTIONS:
            print("Error: Usage: undo-forge monitor start|stop|status", file=sys.stderr)
            return 1
        if rest[0] == "start" and len(rest) > 1:
            overrides = {"monitor": {"watch_path": str(Path(rest[1]).resolve())}}
    elif command in CASCADE_COMMANDS:
        if len(rest) != 1:
            print(f"Error: Usage: undo-forge {command} <id|index>", file=sys.stderr)
            return 1
    else:
        print(f"Error: Unknown command '{command}'", file=sys.stderr)
        print("Run 'undo-forge --help' for usage information", file=sys.stderr)
        return 1

    try:
        config = load_config(overrides)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(
            "Hint: Check your config files at ~/.undo-forge/settings.json or "
            ".undo-forge/settings.json",
            file=sys.stderr,
        )
        return 1

    setup_logging(log_file=config.storage.data_dir / "logs" / "undo-forge.log")
    console = Console(highlight=False)

    try:
        if command == "monitor":
            return run_monitor(rest[0], config, console)
        return run_cascade_command(command, rest[0], config, console)
    except InvalidIndexError as e:
        if e.available:
            hint = f"Available: 1-{e.available}"
        else:
            hint = "No operations available"
        print(f"Error: Invalid operation index: {rest[0]}. {hint}", file=sys.stderr)
        return 1
    except UndoForgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


def load_config(overrides: dict[str, Any] | None = None) -> UndoForgeConfig:
    """Load configuration from the default locations."""
    return ConfigLoader().load_all(overrides)


def build_engine(config: UndoForgeConfig) -> UndoRedoEngine:
    """Engine over the configured log and backup directory."""
    return UndoRedoEngine(
        OperationLog(config.storage.log_path),
        BackupStore(config.storage.backup_path),
    )


def parse_reference(value: str) -> OperationRef:
    """Turn a command-line reference into an engine reference.

    Numbers are 1-based positions and become 0-based indexes; anything
    else is an operation id.
    """
    if value.startswith("op_"):
        return value
    try:
        return int(value) - 1
    except ValueError:
        return value


def run_cascade_command(
    command: str,
    reference: str,
    config: UndoForgeConfig,
    console: Console,
) -> int:
    """Run undo, redo or preview for one reference."""
    engine = build_engine(config)
    ref = parse_reference(reference)

    if command == "preview":
        return show_preview(engine, ref, config, console)

    result = engine.undo(ref) if command == "undo" else engine.redo(ref)
    return report_result(result, console)


def run_monitor(action: str, config: UndoForgeConfig, console: Console) -> int:
    """Dispatch a monitor subcommand."""
    if action == "start":
        return monitor_cli.start_monitor(config, console)
    if action == "stop":
        return monitor_cli.stop_monitor(config, console)
    return monitor_cli.show_status(config, console)


def _describe(op: Operation) -> str:
    return f"{escape(op.summary())} [dim]({op.id})[/dim]"


def report_result(result: CascadeResult, console: Console) -> int:
    """Print a cascade result.

    Returns:
        0 when every step applied, 1 when any step failed.
    """
    verb = "Undone" if result.direction.value == "undo" else "Redone"
    console.print(f"[green]{verb}:[/green] {_describe(result.target)}")

    if result.cascaded:
        console.print(f"[dim]Cascaded to {len(result.cascaded)} other operation(s):[/dim]")
        for op in result.cascaded:
            console.print(f"  - {_describe(op)}")

    for outcome in result.warnings:
        if outcome.error is not None:
            console.print(f"[yellow]Warning:[/yellow] {escape(str(outcome.error))}")

    for outcome in result.failures:
        console.print(f"[red]Failed:[/red] {escape(str(outcome.error))}")

    if result.failures:
        console.print(
            f"[red]{len(result.failures)} step(s) failed; "
            "the affected files were not restored.[/red]"
        )
        return 1
    return 0


def show_preview(
    engine: UndoRedoEngine,
    ref: OperationRef,
    config: UndoForgeConfig,
    console: Console,
) -> int:
    """Print what the next undo or redo of an operation would do."""
    preview = engine.preview(ref)
    plan = preview.plan
    op = preview.operation

    console.print(f"[bold]{_describe(op)}[/bold]")
    console.print(f"State: {op.undo_state.value}")
    console.print(
        f"[bold]{plan.direction.value.capitalize()}[/bold] would process "
        f"{len(plan.steps)} operation(s):"
    )

    presenter = DiffPresenter(console=console, context_lines=config.diff.context_lines)
    for number, step in enumerate(plan.steps, start=1):
        before, after = step.content_before(), step.content_after()
        summary = ""
        if before is not None and after is not None:
            summary = f" [dim]({format_change_summary(before, after)})[/dim]"
        console.print(f"\n{number}. {_describe(step)}{summary}")
        presenter.show_step(step, plan.direction)

    for error in preview.missing:
        console.print(f"[red]Cannot {plan.direction.value}:[/red] {escape(str(error))}")

    return 0 if preview.executable else 1


def print_help() -> None:
    """Print help message."""
    help_text = """
undo-forge - Cascading undo/redo for file changes

Usage: undo-forge <command> [ARGS]

Commands:
  undo <id|n>            Undo an operation and every active one after it
  redo <id|n>            Redo an operation and every undone one after it
  preview <id|n>         Show what undoing or redoing an operation would do
  monitor start [path]   Watch a directory and record changes (foreground)
  monitor stop           Stop the running monitor
  monitor status         Show the running monitor's statistics

  n is a 1-based position: among active operations for undo, undone
  operations for redo, and all operations for preview.

Options:
  -v, --version          Show version and exit
  -h, --help             Show this help message

Environment:
  UNDO_FORGE_LOG_LEVEL   Console log level (default WARNING)
"""
    print(help_text.strip())


if __name__ == "__main__":
    sys.exit(main())
