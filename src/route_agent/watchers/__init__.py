"""Watcher implementations used by the route controller."""

from .file import FileStateWatcher  # noqa: F401

__all__ = ["FileStateWatcher"]
