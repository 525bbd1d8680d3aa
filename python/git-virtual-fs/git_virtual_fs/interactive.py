"""Prompts of the command line, built on InquirerPy."""

from __future__ import annotations

import sys
from typing import Iterable

from InquirerPy import inquirer
from InquirerPy.base.control import Choice

from .exceptions import UserAbort, ValidationError


def _ensure_tty() -> None:
    if not sys.stdin.isatty():
        raise ValidationError(
            "Interactive mode requires a TTY. Provide the branch name to run non-interactively."
        )


def branch_choices(local: Iterable[str], remote: Iterable[str], current: str | None = None) -> list[Choice]:
    """Local branches first, then remote-only ones; the current branch is marked."""

    result: list[Choice] = []
    seen: set[str] = set()
    for name in sorted(local):
        seen.add(name)
        label = f"{name} (current)" if name == current else name
        result.append(Choice(value=name, name=label))
    for name in sorted(remote):
        if name in seen:
            continue
        seen.add(name)
        result.append(Choice(value=name, name=f"{name} (remote)"))
    return result


def select_branch(choices: list[Choice]) -> str:
    _ensure_tty()
    if not choices:
        raise ValidationError("No branch to choose from.")
    selected = inquirer.fuzzy(message="Branch to check out:", choices=choices).execute()
    if not selected:
        raise UserAbort("No branch selected.")
    return selected


def confirm(message: str, default: bool = False) -> bool:
    _ensure_tty()
    return bool(inquirer.confirm(message=message, default=default).execute())


__all__ = ["branch_choices", "select_branch", "confirm"]
