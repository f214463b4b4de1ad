"""Diff presenter for undo-forge previews.

This module renders what a cascade step would do to a file: a colored
line diff for full-content steps, the located/replacement strings for
string replacements, and a one-line note for creates, deletes and
commands.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

from undo_forge.undo.models import (
    CascadeDirection,
    CommandExecution,
    FileCreate,
    FileDelete,
    FileEditReplace,
    Operation,
)

if TYPE_CHECKING:
    from collections.abc import Iterator


class DiffStyle(str, Enum):
    """Style options for diff display."""

    UNIFIED = "unified"  # Hunks with context lines
    MINIMAL = "minimal"  # Changed lines only


@dataclass
class DiffLine:
    """One rendered diff line.

    Attributes:
        content: Line text without its newline.
        line_type: "+", "-", " " for context, or "@" for a hunk header.
        old_line_no: 1-based line in the old text (None for additions).
        new_line_no: 1-based line in the new text (None for deletions).
    """

    content: str
    line_type: str
    old_line_no: int | None = None
    new_line_no: int | None = None


_LINE_STYLES = {"-": "red", "+": "green", " ": "dim", "@": "cyan"}


class DiffPresenter:
    """Presents cascade steps as colored diffs.

    Removed lines are red with a - prefix, added lines green with a +
    prefix, context lines dim.
    """

    DEFAULT_CONTEXT = 3

    # Keep long previews readable
    MAX_DIFF_LINES = 100

    def __init__(
        self,
        console: Console | None = None,
        style: DiffStyle = DiffStyle.UNIFIED,
        context_lines: int = DEFAULT_CONTEXT,
        show_line_numbers: bool = True,
        max_lines: int = MAX_DIFF_LINES,
    ) -> None:
        """Initialize the diff presenter.

        Args:
            console: Rich console for output (creates one if not provided).
            style: Diff display style.
            context_lines: Unchanged lines shown around each change.
            show_line_numbers: Whether to prefix lines with their number.
            max_lines: Maximum lines to display per diff.
        """
        self._console = console or Console()
        self._style = style
        self._context_lines = context_lines
        self._show_line_numbers = show_line_numbers
        self._max_lines = max_lines

    def show_step(self, operation: Operation, direction: CascadeDirection) -> None:
        """Display what undoing or redoing one operation would change.

        Args:
            operation: Step of a cascade plan.
            direction: Direction the step would run in.
        """
        undo = direction is CascadeDirection.UNDO

        if isinstance(operation, CommandExecution):
            self._console.print(
                f"[yellow]Command `{escape(operation.command)}` cannot be reversed; "
                "only its state changes[/yellow]"
            )
            return

        if isinstance(operation, FileCreate | FileDelete):
            removes = isinstance(operation, FileCreate) == undo
            filename = escape(operation.file)
            if removes:
                self._console.print(f"[red]Deletes[/red] {filename}")
            else:
                content = operation.content_before() if undo else operation.content_after()
                lines = len((content or "").splitlines())
                self._console.print(f"[green]Recreates[/green] {filename} ({lines} lines)")
            return

        if isinstance(operation, FileEditReplace):
            search = operation.new_string if undo else operation.old_string
            replacement = operation.old_string if undo else operation.new_string
            where = f" near line {operation.line_number}" if operation.line_number else ""
            self._console.print(
                f"[dim]Replaces first match in[/dim] [cyan]{escape(operation.file)}"
                f"[/cyan][dim]{where}[/dim]"
            )
            self.show_diff(search or "", replacement or "", operation.file_name)
            return

        old, new = operation.content_after(), operation.content_before()
        if not undo:
            old, new = new, old
        self.show_diff(old or "", new or "", operation.target_path or "file")

    def show_diff(self, old_content: str, new_content: str, filename: str = "file") -> None:
        """Print the line diff between two texts under a ``--- filename`` header."""
        diff_lines = self.diff_lines(old_content, new_content)
        if not diff_lines:
            self._console.print("[dim]No changes[/dim]")
            return

        if self._style is DiffStyle.MINIMAL:
            diff_lines = [d for d in diff_lines if d.line_type in ("+", "-")]

        self._console.print(f"[dim]--- {escape(filename)}[/dim]")
        for shown, diff_line in enumerate(diff_lines):
            if shown == self._max_lines:
                remaining = len(diff_lines) - shown
                self._console.print(f"[dim]... ({remaining} more lines)[/dim]")
                break
            self._console.print(self._format_line(diff_line))

    def get_change_summary(self, old_content: str, new_content: str) -> dict[str, int]:
        """Count added and removed lines."""
        diff_lines = self.diff_lines(old_content, new_content)
        additions = sum(1 for d in diff_lines if d.line_type == "+")
        deletions = sum(1 for d in diff_lines if d.line_type == "-")
        return {
            "additions": additions,
            "deletions": deletions,
            "total_changes": additions + deletions,
        }

    def diff_lines(self, old_content: str, new_content: str) -> list[DiffLine]:
        """Hunks of changed lines with context, numbered in both texts."""
        if old_content == new_content:
            return []
        return list(self._hunks(old_content.splitlines(), new_content.splitlines()))

    def _hunks(self, old: list[str], new: list[str]) -> Iterator[DiffLine]:
        matcher = difflib.SequenceMatcher(None, old, new, autojunk=False)
        for group in matcher.get_grouped_opcodes(self._context_lines):
            _, i1, _, j1, _ = group[0]
            _, _, i2, _, j2 = group[-1]
            yield DiffLine(f"@@ -{i1 + 1},{i2 - i1} +{j1 + 1},{j2 - j1} @@", "@")

            for tag, a1, a2, b1, b2 in group:
                if tag == "equal":
                    for offset, line in enumerate(old[a1:a2]):
                        yield DiffLine(line, " ", a1 + offset + 1, b1 + offset + 1)
                    continue
                for offset, line in enumerate(old[a1:a2]):
                    yield DiffLine(line, "-", old_line_no=a1 + offset + 1)
                for offset, line in enumerate(new[b1:b2]):
                    yield DiffLine(line, "+", new_line_no=b1 + offset + 1)

    def _format_line(self, diff_line: DiffLine) -> str:
        color = _LINE_STYLES[diff_line.line_type]
        content = escape(diff_line.content)
        if diff_line.line_type == "@":
            return f"[{color}]{content}[/{color}]"

        prefix = ""
        line_no = diff_line.old_line_no if diff_line.line_type == "-" else diff_line.new_line_no
        if self._show_line_numbers and self._style is DiffStyle.UNIFIED and line_no:
            prefix = f"[dim]{line_no:4d}[/dim] "
        return f"{prefix}[{color}]{diff_line.line_type} {content}[/{color}]"


def format_change_summary(old_content: str, new_content: str) -> str:
    """Brief summary like "+5 -3 lines"."""
    summary = DiffPresenter().get_change_summary(old_content, new_content)

    parts = []
    if summary["additions"] > 0:
        parts.append(f"+{summary['additions']}")
    if summary["deletions"] > 0:
        parts.append(f"-{summary['deletions']}")

    if not parts:
        return "no changes"
    return " ".join(parts) + " lines"
