"""Data layer for an imageboard thread watcher and reply notification service."""

__version__ = "0.1.0"
