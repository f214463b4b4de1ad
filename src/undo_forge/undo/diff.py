"""Turn old/new file content into operation records.

The diff engine compares two versions of one file at character level
and reports each contiguous changed region as a candidate string
replacement. Candidates too small to matter, or that only change
whitespace, are dropped. When nothing significant is left, or when a
candidate could not be replayed by first-occurrence replacement, the
whole change is recorded as one full-content edit instead, so a real
change is never lost.

Example:
    engine = DiffEngine()
    ops = engine.analyze("/tmp/a.py", "x = 1\\n", "x = 2\\ny = 3\\n")
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass
from typing import Any

from undo_forge.core import get_logger
from undo_forge.undo.models import (
    ChangeCategory,
    FileCreate,
    FileDelete,
    FileEditFull,
    FileEditReplace,
    Operation,
    OperationMetadata,
)

logger = get_logger("undo.diff")

_DECLARATION = re.compile(r"\b(def|class|function|func|fn|interface|struct)\b")
_IMPORT = re.compile(r"\b(import|require|include|using)\b")


@dataclass
class EditCandidate:
    """One contiguous changed region.

    Attributes:
        offset: Character offset of the region in the old content.
        old_text: Text removed from the old content.
        new_text: Text inserted in its place.
    """

    offset: int
    old_text: str
    new_text: str

    @property
    def size(self) -> int:
        """Length of the larger side."""
        return max(len(self.old_text), len(self.new_text))


class DiffEngine:
    """Extract significant edits between two versions of a file."""

    EDIT_THRESHOLD = 3
    MAX_CONTEXT_LINES = 5
    FALLBACK_CONFIDENCE = 0.7

    def __init__(
        self,
        edit_threshold: int = EDIT_THRESHOLD,
        context_lines: int = MAX_CONTEXT_LINES,
    ) -> None:
        """Initialize the engine.

        Args:
            edit_threshold: Minimum characters on either side of a
                candidate for it to count as significant.
            context_lines: Lines of context stored around each edit.
        """
        self.edit_threshold = edit_threshold
        self.context_lines = context_lines

    def analyze(
        self,
        file_path: str,
        old_content: str | None,
        new_content: str | None,
    ) -> list[Operation]:
        """Describe the change from old to new content.

        Args:
            file_path: Path of the changed file.
            old_content: Previous content, None if the file did not exist.
            new_content: Current content, None if the file no longer exists.

        Returns:
            Operation records in file order; empty when nothing changed.
        """
        if old_content is None and new_content is None:
            return []

        if old_content is None:
            return [
                FileCreate(
                    file=file_path,
                    after=new_content,
                    metadata=_size_metadata(new_content or ""),
                )
            ]

        if new_content is None:
            return [
                FileDelete(
                    file=file_path,
                    before=old_content,
                    metadata=_size_metadata(old_content),
                )
            ]

        if old_content == new_content:
            return []

        return self._extract_edits(file_path, old_content, new_content)

    def _extract_edits(
        self,
        file_path: str,
        old_content: str,
        new_content: str,
    ) -> list[Operation]:
        candidates = [
            c for c in self.group_edits(old_content, new_content) if self.is_significant(c)
        ]

        if (
            candidates
            and all(self.is_replayable(c, old_content, new_content) for c in candidates)
            and self.replays_exactly(candidates, old_content, new_content)
        ):
            old_lines = old_content.split("\n")
            operations: list[Operation] = []
            for candidate in candidates:
                line_number = self.find_line_number(old_content, candidate.offset)
                operations.append(
                    FileEditReplace(
                        file=file_path,
                        old_string=candidate.old_text,
                        new_string=candidate.new_text,
                        line_number=line_number,
                        metadata=OperationMetadata(
                            confidence=self.calculate_confidence(candidate),
                            change_type=self.categorize_change(
                                candidate.old_text, candidate.new_text
                            ).value,
                            context=self.get_context_lines(old_lines, line_number),
                        ),
                    )
                )
            return operations

        if candidates:
            logger.debug(
                "Edits in %s cannot be replayed as string replacements; "
                "recording full content",
                file_path,
            )

        return [
            FileEditFull(
                file=file_path,
                before=old_content,
                after=new_content,
                metadata=OperationMetadata(
                    confidence=self.FALLBACK_CONFIDENCE,
                    change_type=ChangeCategory.FULL_FILE_REPLACE.value,
                ),
            )
        ]

    def group_edits(self, old_content: str, new_content: str) -> list[EditCandidate]:
        """Merge consecutive non-equal runs of a character diff.

        Returns:
            Candidates in ascending offset order.
        """
        matcher = difflib.SequenceMatcher(None, old_content, new_content, autojunk=False)
        edits: list[EditCandidate] = []
        current: EditCandidate | None = None

        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                if current is not None:
                    edits.append(current)
                    current = None
                continue

            if current is None:
                current = EditCandidate(offset=i1, old_text="", new_text="")
            current.old_text += old_content[i1:i2]
            current.new_text += new_content[j1:j2]

        if current is not None:
            edits.append(current)

        return edits

    def is_significant(self, edit: EditCandidate) -> bool:
        """Check if an edit is worth recording on its own."""
        # Tiny changes (typos, single chars)
        if (
            len(edit.old_text) < self.edit_threshold
            and len(edit.new_text) < self.edit_threshold
        ):
            return False

        # Pure formatting
        if edit.old_text.strip() == edit.new_text.strip():
            return False

        return True

    @staticmethod
    def is_replayable(edit: EditCandidate, old_content: str, new_content: str) -> bool:
        """Check first-occurrence replacement finds this edit both ways.

        Both sides must be non-empty and each must occur exactly once in
        its version of the file.
        """
        if not edit.old_text or not edit.new_text:
            return False
        return (
            old_content.count(edit.old_text) == 1
            and new_content.count(edit.new_text) == 1
        )

    @staticmethod
    def replays_exactly(
        edits: list[EditCandidate], old_content: str, new_content: str
    ) -> bool:
        """Check that replacing edits one at a time reproduces each version.

        Redo applies the edits in file order starting from the old content,
        undo in reverse order starting from the new content. Each step
        replaces the first occurrence in the text left by the previous one,
        so an earlier replacement can shadow a later edit's match. Dropped
        insignificant edits also make the replay miss its target.
        """
        forward: str | None = old_content
        for edit in edits:
            forward = _replace_first(forward, edit.old_text, edit.new_text)
            if forward is None:
                return False

        backward: str | None = new_content
        for edit in reversed(edits):
            backward = _replace_first(backward, edit.new_text, edit.old_text)
            if backward is None:
                return False

        return forward == new_content and backward == old_content

    @staticmethod
    def find_line_number(content: str, offset: int) -> int:
        """1-based line number of a character offset."""
        return content.count("\n", 0, offset) + 1

    def get_context_lines(self, lines: list[str], line_number: int) -> dict[str, Any]:
        """Lines surrounding a change.

        Args:
            lines: Old content split into lines.
            line_number: 1-based line of the change.
        """
        start = max(0, line_number - 1 - self.context_lines)
        end = min(len(lines), line_number + self.context_lines)
        return {
            "before": lines[start:line_number - 1],
            "after": lines[line_number:end],
            "lineNumber": line_number,
        }

    @staticmethod
    def categorize_change(old_text: str, new_text: str) -> ChangeCategory:
        """Coarse category from keywords present in either side."""
        if not old_text:
            return ChangeCategory.ADDITION
        if not new_text:
            return ChangeCategory.DELETION

        combined = f"{old_text}\n{new_text}"
        if _DECLARATION.search(combined):
            return ChangeCategory.DECLARATION_CHANGE
        if _IMPORT.search(combined):
            return ChangeCategory.IMPORT_CHANGE
        if "=" in combined:
            return ChangeCategory.ASSIGNMENT_CHANGE
        return ChangeCategory.TEXT_CHANGE

    @staticmethod
    def calculate_confidence(edit: EditCandidate) -> float:
        """Heuristic confidence between 0.1 and 1.0.

        Larger edits score higher; edits whose two sides differ a lot in
        length score lower.
        """
        confidence = 0.8
        size = edit.size
        if size > 50:
            confidence += 0.1

        delta = abs(len(edit.old_text) - len(edit.new_text))
        if delta > size * 0.5:
            confidence -= 0.2

        return round(max(0.1, min(1.0, confidence)), 2)


def _replace_first(content: str | None, search: str, replacement: str) -> str | None:
    if content is None:
        return None
    index = content.find(search)
    if index < 0:
        return None
    return content[:index] + replacement + content[index + len(search):]


def _size_metadata(content: str) -> OperationMetadata:
    return OperationMetadata(lines=len(content.split("\n")), chars=len(content))
