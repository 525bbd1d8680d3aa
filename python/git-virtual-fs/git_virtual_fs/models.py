"""Dataclasses and enums shared across modules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class MergeFavor(str, Enum):
    """Tie-break policy for conflicting hunks during a three-way merge."""

    NORMAL = "normal"
    OURS = "ours"
    THEIRS = "theirs"


class MergeStatus(str, Enum):
    UP_TO_DATE = "up-to-date"
    FAST_FORWARD = "fast-forward"
    NON_FAST_FORWARD = "non-fast-forward"
    CONFLICTS = "conflicts"


class CommittingResult(str, Enum):
    ERROR = "error"
    NO_CHANGES = "no-changes"
    COMMITTED = "committed"
    AMENDED = "amended"


class CommitBehavior(str, Enum):
    """How :meth:`GitPlumbing.commit` treats the previous commit."""

    CREATE_NEW = "create-new"
    AMEND_KEEP_MESSAGE = "amend-keep"
    AMEND_APPEND_MESSAGE = "amend-append"
    AMEND_PREPEND_MESSAGE = "amend-prepend"
    AMEND_OVERWRITE_MESSAGE = "amend-overwrite"


class CredentialKind(str, Enum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class Signature:
    name: str
    email: str


@dataclass(frozen=True)
class CommitInfo:
    sha: str
    parents: tuple[str, ...]
    author: Signature
    author_date: datetime
    committer: Signature
    committer_date: datetime
    message: str

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


@dataclass(frozen=True)
class SimpleStatus:
    """Snapshot of a repository state for presentation layers."""

    display_name: str
    current_branch: str | None
    is_dirty: bool
    commit_ahead: int | None
    plugin_count: int | None


__all__ = [
    "MergeFavor",
    "MergeStatus",
    "CommittingResult",
    "CommitBehavior",
    "CredentialKind",
    "Credentials",
    "Signature",
    "CommitInfo",
    "SimpleStatus",
]
