"""Watcher implementations used by the metalnet agent."""

from .routes import FileRouteWatcher  # noqa: F401
from .topology import FileTopologyWatcher  # noqa: F401

__all__ = ["FileRouteWatcher", "FileTopologyWatcher"]
