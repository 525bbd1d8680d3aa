"""Plugin manager contract consumed by repositories."""

from __future__ import annotations

from typing import Protocol

from .monitor import Monitor


class PluginManager(Protocol):
    count: int

    def ensure_plugins(self, monitor: Monitor, branch_name: str) -> bool:
        """Bind the plugins of ``branch_name``. Returns ``False`` on failure."""

    def is_initialized(self, branch_name: str) -> bool:
        ...


class NoPluginManager:
    """Plugin manager for repositories that carry no plugins."""

    count = 0

    def __init__(self) -> None:
        self._initialized: set[str] = set()

    def ensure_plugins(self, monitor: Monitor, branch_name: str) -> bool:
        self._initialized.add(branch_name)
        return True

    def is_initialized(self, branch_name: str) -> bool:
        return branch_name in self._initialized


__all__ = ["PluginManager", "NoPluginManager"]
