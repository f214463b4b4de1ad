"""CLI package for undo-forge.

This package provides the command-line interface:
- undo/redo/preview over the operation log
- monitor start/stop/status for automatic change capture
- colored diff rendering for previews
"""

from undo_forge.cli.main import main

__all__ = [
    "main",
]
