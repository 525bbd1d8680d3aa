"""Commit-range and date-range diffs bucketed by root folders."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Sequence

from . import git
from .config import BotIdentity
from .exceptions import ValidationError
from .monitor import Monitor

OTHERS = "Others"


@dataclass(frozen=True)
class DiffRoot:
    """A named set of path prefixes, such as the folders of one project."""

    name: str
    paths: tuple[str, ...]

    def matches(self, path: str) -> bool:
        for prefix in self.paths:
            folder = prefix.rstrip("/")
            if path == folder or path.startswith(folder + "/"):
                return True
        return False


@dataclass(frozen=True)
class ModifiedPath:
    path: str
    old_path: str | None = None

    def __str__(self) -> str:
        if self.old_path and self.old_path != self.path:
            return f"{self.old_path} -> {self.path}"
        return self.path


@dataclass
class DiffRootResult:
    name: str
    paths: tuple[str, ...] = ()
    added: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    modified: list[ModifiedPath] = field(default_factory=list)

    @property
    def change_count(self) -> int:
        return len(self.added) + len(self.deleted) + len(self.modified)

    def __str__(self) -> str:
        if self.change_count == 0:
            return f"=> {self.name} (no change)."
        lines = [
            f"=> {self.name} - {self.change_count} changes: {len(self.added)} added, "
            f"{len(self.modified)} modified, {len(self.deleted)} removed:"
        ]
        lines.extend(f"    + {path}" for path in self.added)
        lines.extend(f"    ~ {item}" for item in self.modified)
        lines.extend(f"    - {path}" for path in self.deleted)
        return "\n".join(lines)


@dataclass
class GitDiffResult:
    """Changes per root plus a trailing ``Others`` bucket, and optional messages."""

    roots: list[DiffRootResult]
    messages: list[str] | None = None

    @property
    def others(self) -> DiffRootResult:
        return self.roots[-1]

    @property
    def is_empty(self) -> bool:
        return all(root.change_count == 0 for root in self.roots)

    def root(self, name: str) -> DiffRootResult:
        for item in self.roots:
            if item.name == name:
                return item
        raise KeyError(name)

    def __str__(self) -> str:
        parts = [str(root) for root in self.roots]
        if self.messages:
            parts.append("Commits:")
            parts.extend(f"  {message.splitlines()[0]}" for message in self.messages if message)
        return "\n".join(parts)


def empty_result(roots: Sequence[DiffRoot], with_messages: bool) -> GitDiffResult:
    buckets = [DiffRootResult(root.name, root.paths) for root in roots]
    buckets.append(DiffRootResult(OTHERS))
    return GitDiffResult(buckets, [] if with_messages else None)


class DiffEngine:
    def __init__(self, working_dir: Path, bot: BotIdentity, monitor: Monitor | None = None):
        self.working_dir = working_dir
        self.bot = bot
        self.monitor = monitor or Monitor()

    def diff(
        self,
        from_commit: str,
        to_commit: str,
        roots: Sequence[DiffRoot],
        with_messages: bool = False,
    ) -> GitDiffResult:
        """Changes between two commits, ``from_commit`` excluded."""

        from_sha = self._resolve(from_commit)
        to_sha = self._resolve(to_commit)
        result = empty_result(roots, with_messages)
        if from_sha == to_sha:
            return result
        buckets = {root.name: bucket for root, bucket in zip(roots, result.roots)}

        def bucket_of(path: str) -> DiffRootResult:
            target = next((root for root in roots if root.matches(path)), None)
            return buckets[target.name] if target else result.others

        for change in git.diff_name_status(self.working_dir, from_sha, to_sha):
            bucket = bucket_of(change.path)
            if change.status in ("A", "C"):
                bucket.added.append(change.path)
            elif change.status == "D":
                bucket.deleted.append(change.path)
            elif change.old_path and bucket_of(change.old_path) is not bucket:
                # Moved across roots: removed from one, added to the other.
                bucket_of(change.old_path).deleted.append(change.old_path)
                bucket.added.append(change.path)
            else:
                bucket.modified.append(ModifiedPath(change.path, change.old_path))
        if with_messages:
            result.messages = self.commit_messages_between(from_sha, to_sha)
        return result

    def diff_dates(
        self,
        from_date: datetime,
        to_date: datetime,
        roots: Sequence[DiffRoot],
        with_messages: bool = False,
    ) -> GitDiffResult:
        """Changes made by the commits of HEAD's history within ``[from_date, to_date]``."""

        from_date = _aware(from_date)
        to_date = _aware(to_date)
        if from_date >= to_date:
            raise ValidationError(f"From date ({from_date}) must be before to date ({to_date}).")
        from_commit: str | None = None
        to_commit: str | None = None
        for commit in git.log(self.working_dir, ["HEAD"]):
            when = commit.committer_date
            if when > to_date:
                continue
            if when < from_date:
                break
            if to_commit is None:
                to_commit = commit.sha
            from_commit = commit.sha
        if from_commit is None or from_commit == to_commit:
            self.monitor.trace(f"No commit range between {from_date} and {to_date}.")
            return empty_result(roots, with_messages)
        return self.diff(from_commit, to_commit, roots, with_messages)

    def diff_from(self, previous_commit: str, roots: Sequence[DiffRoot], with_messages: bool = False) -> GitDiffResult:
        return self.diff(previous_commit, "HEAD", roots, with_messages)

    def commit_messages_between(self, from_commit: str, to_commit: str) -> list[str]:
        """Messages of ``from_commit..to_commit``, oldest first, without bot commits."""

        commits = git.log(self.working_dir, ["--reverse", f"{from_commit}..{to_commit}"])
        return [
            commit.message
            for commit in commits
            if commit.committer.name != self.bot.name
        ]

    def _resolve(self, ref: str) -> str:
        sha = git.resolve_commit(self.working_dir, ref)
        if sha is None:
            raise ValidationError(f"Unknown commit '{ref}'.")
        return sha


def _aware(value: datetime) -> datetime:
    # Naive datetimes are taken as local time.
    return value if value.tzinfo is not None else value.astimezone()


__all__ = [
    "OTHERS",
    "DiffRoot",
    "ModifiedPath",
    "DiffRootResult",
    "GitDiffResult",
    "DiffEngine",
    "empty_result",
]
