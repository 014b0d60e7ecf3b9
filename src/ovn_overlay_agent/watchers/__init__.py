"""Watcher implementations used by the overlay agent."""

from .file import FileNetworkWatcher  # noqa: F401

__all__ = ["FileNetworkWatcher"]
