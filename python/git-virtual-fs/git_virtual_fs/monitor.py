"""Leveled, grouped logging on top of the standard logging module."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from rich.console import Console
from rich.logging import RichHandler

TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def configure_logging(verbose: bool) -> None:
    level = TRACE if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_time=False, show_path=False, markup=False)],
    )


class Monitor:
    """Logger facade with Info/Warn/Error/Fatal levels and nested groups.

    Messages logged inside :meth:`open_group` are indented by the group depth so
    that a multi-step operation reads as one block in the output.
    """

    def __init__(self, name: str = "git_virtual_fs", logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(name)
        self._depth = 0

    @property
    def depth(self) -> int:
        return self._depth

    def trace(self, message: str) -> None:
        self._log(TRACE, message)

    def debug(self, message: str) -> None:
        self._log(logging.DEBUG, message)

    def info(self, message: str) -> None:
        self._log(logging.INFO, message)

    def warn(self, message: str) -> None:
        self._log(logging.WARNING, message)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        self._log(logging.ERROR, message, exc)

    def fatal(self, message: str, exc: BaseException | None = None) -> None:
        self._log(logging.CRITICAL, message, exc)

    @contextmanager
    def open_group(self, title: str, level: int = logging.INFO) -> Iterator[Monitor]:
        self._log(level, title)
        self._depth += 1
        try:
            yield self
        finally:
            self._depth -= 1

    def _log(self, level: int, message: str, exc: BaseException | None = None) -> None:
        prefix = "  " * self._depth
        if exc is not None:
            message = f"{message} {exc}" if message else str(exc)
        self.logger.log(level, f"{prefix}{message}")


__all__ = ["Monitor", "configure_logging", "TRACE"]
