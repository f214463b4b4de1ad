"""undo-forge - cascading undo/redo for file mutations."""

try:
    from importlib.metadata import version

    __version__ = version("undo-forge")
except Exception:
    __version__ = "0.0.0"  # Fallback for development/testing

__all__ = ["__version__"]
