"""Stream a single large file to an HTTP receiver with live progress."""

__version__ = "2026.10.0"
