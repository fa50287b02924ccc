"""An in-memory key-value server with append-only persistence and an interactive client."""

__version__ = "0.1.0"