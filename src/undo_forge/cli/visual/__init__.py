"""Visual presentation components for the undo-forge CLI.

This package provides colored diff display for previews of undo and
redo cascades.
"""

from .diff import DiffPresenter, DiffStyle, format_change_summary

__all__ = [
    "DiffPresenter",
    "DiffStyle",
    "format_change_summary",
]
