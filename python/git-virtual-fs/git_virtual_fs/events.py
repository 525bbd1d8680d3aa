"""Owned lists of lifecycle callbacks."""

from __future__ import annotations

from typing import Any, Callable

from .monitor import TRACE, Monitor

EventHandler = Callable[..., bool]


class EventHook:
    """Callbacks fired in registration order.

    Every handler runs even after a failure; :meth:`fire` returns ``False`` when at
    least one handler returned ``False`` or raised, and the first failure is kept in
    :attr:`last_failure`.
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: list[EventHandler] = []
        self.last_failure: str | None = None

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def __len__(self) -> int:
        return len(self._handlers)

    def fire(self, monitor: Monitor, *args: Any) -> bool:
        self.last_failure = None
        if not self._handlers:
            return True
        with monitor.open_group(f"Raising {self.name} event.", level=TRACE):
            for handler in list(self._handlers):
                name = getattr(handler, "__qualname__", repr(handler))
                try:
                    ok = handler(monitor, *args)
                except Exception as exc:
                    monitor.error(f"{self.name} handler '{name}' failed.", exc)
                    ok = False
                if not ok and self.last_failure is None:
                    self.last_failure = name
        return self.last_failure is None


__all__ = ["EventHook", "EventHandler"]
