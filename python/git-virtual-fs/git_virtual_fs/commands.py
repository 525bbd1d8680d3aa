"""Registry exposing repository operations to an outer command line."""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from .exceptions import ValidationError

F = TypeVar("F", bound=Callable[..., Any])

_COMMAND_ATTR = "__gvfs_command__"


def command(func: F) -> F:
    """Mark a method as invokable through a :class:`CommandRegistry`."""

    setattr(func, _COMMAND_ATTR, True)
    return func


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: dict[str, Callable[..., Any]] = {}
        self._owners: dict[int, list[str]] = {}

    def register(self, owner: object, namespace: str) -> list[str]:
        """Register every ``@command`` method of ``owner`` as ``<namespace>/<method>``."""

        if id(owner) in self._owners:
            raise ValidationError(f"Object already registered under '{namespace}'.")
        names: list[str] = []
        for attr in dir(type(owner)):
            func = getattr(type(owner), attr, None)
            if not getattr(func, _COMMAND_ATTR, False):
                continue
            name = f"{namespace}/{attr}"
            if name in self._commands:
                raise ValidationError(f"Duplicate command name: {name}")
            self._commands[name] = getattr(owner, attr)
            names.append(name)
        self._owners[id(owner)] = names
        return names

    def unregister(self, owner: object) -> None:
        for name in self._owners.pop(id(owner), []):
            self._commands.pop(name, None)

    def names(self) -> list[str]:
        return sorted(self._commands)

    def invoke(self, name: str, *args: Any, **kwargs: Any) -> Any:
        try:
            handler = self._commands[name]
        except KeyError as exc:
            raise ValidationError(f"Unknown command: {name}") from exc
        return handler(*args, **kwargs)


__all__ = ["command", "CommandRegistry"]
