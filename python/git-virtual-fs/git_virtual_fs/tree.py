"""Projection of one repository into a ``head``/``branches``/``remotes`` namespace.

Paths below a repository display path resolve as follows::

    ""                                   -> RootFolder (head, branches, remotes)
    head[/rest]                          -> PhysicalEntry in the working directory
    branches                             -> BranchesFolder of local branches
    branches/<current>[/rest]            -> same PhysicalEntry as head[/rest]
    branches/<name>[/rest]               -> BranchFolder / TreeEntry (read-only)
    remotes                              -> RemotesFolder
    remotes/<remote>                     -> BranchesFolder of that remote
    remotes/<remote>/<name>[/rest]       -> BranchFolder / TreeEntry (read-only)

Branch names may contain ``/``: the longest known branch name made of leading
segments wins.

Nodes are plain dataclasses forming a closed union; behavior is dispatched on
their type by :func:`list_children` and :func:`read_bytes`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Collection, Mapping, Union

from . import git
from .exceptions import InvalidStateError, ValidationError
from .monitor import Monitor

HEAD = "head"
BRANCHES = "branches"
REMOTES = "remotes"


@dataclass(frozen=True)
class TreeSnapshot:
    """Immutable file tree of one commit."""

    repo_path: Path
    commit_sha: str
    committed_at: datetime
    objects: Mapping[str, git.TreeObject]
    children: Mapping[str, tuple[str, ...]]

    @classmethod
    def load(cls, repo_path: Path, commit_sha: str) -> TreeSnapshot:
        info = git.commit_info(repo_path, commit_sha)
        objects: dict[str, git.TreeObject] = {}
        children: dict[str, list[str]] = {"": []}
        for obj in git.ls_tree(repo_path, commit_sha):
            objects[obj.path] = obj
            parent, _, name = obj.path.rpartition("/")
            children.setdefault(parent, []).append(name)
            if obj.kind == "tree":
                children.setdefault(obj.path, [])
        return cls(
            repo_path=repo_path,
            commit_sha=commit_sha,
            committed_at=info.committer_date,
            objects=MappingProxyType(objects),
            children=MappingProxyType({key: tuple(sorted(value)) for key, value in children.items()}),
        )

    def find(self, sub_path: str) -> git.TreeObject | None:
        return self.objects.get(sub_path)

    def is_directory(self, sub_path: str) -> bool:
        return sub_path == "" or sub_path in self.children


@dataclass(frozen=True)
class RootFolder:
    name: str
    exists: bool = True
    is_directory: bool = True
    physical_path: None = None
    length: int = 0
    last_modified: datetime | None = None


@dataclass(frozen=True)
class PhysicalEntry:
    """A file or directory of the working directory or of the plain file system."""

    name: str
    path: Path

    @property
    def exists(self) -> bool:
        return self.path.exists()

    @property
    def is_directory(self) -> bool:
        return self.path.is_dir()

    @property
    def physical_path(self) -> Path:
        return self.path

    @property
    def length(self) -> int:
        return self.path.stat().st_size if self.path.is_file() else 0

    @property
    def last_modified(self) -> datetime | None:
        if not self.path.exists():
            return None
        return datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)


@dataclass(frozen=True)
class BranchesFolder:
    """Branches of the repository, or of one of its remotes when ``remote`` is set."""

    name: str
    branch_names: tuple[str, ...]
    remote: str | None = None
    exists: bool = True
    is_directory: bool = True
    physical_path: None = None
    length: int = 0
    last_modified: datetime | None = None


@dataclass(frozen=True)
class RemotesFolder:
    name: str
    remote_names: tuple[str, ...]
    exists: bool = True
    is_directory: bool = True
    physical_path: None = None
    length: int = 0
    last_modified: datetime | None = None


@dataclass(frozen=True)
class BranchFolder:
    """Root of the snapshot of a branch that is not checked out."""

    name: str
    snapshot: TreeSnapshot
    exists: bool = True
    is_directory: bool = True
    physical_path: None = None
    length: int = 0

    @property
    def last_modified(self) -> datetime:
        return self.snapshot.committed_at


@dataclass(frozen=True)
class TreeEntry:
    """A blob or a sub tree inside a branch snapshot."""

    name: str
    snapshot: TreeSnapshot
    git_object: git.TreeObject
    exists: bool = True
    physical_path: None = None

    @property
    def is_directory(self) -> bool:
        return self.git_object.kind == "tree"

    @property
    def length(self) -> int:
        return self.git_object.size

    @property
    def last_modified(self) -> datetime:
        return self.snapshot.committed_at


@dataclass(frozen=True)
class MissingEntry:
    name: str
    exists: bool = False
    is_directory: bool = False
    physical_path: None = None
    length: int = 0
    last_modified: datetime | None = None


VirtualNode = Union[
    RootFolder,
    PhysicalEntry,
    BranchesFolder,
    RemotesFolder,
    BranchFolder,
    TreeEntry,
    MissingEntry,
]


@dataclass
class BranchSnapshotCache:
    """Snapshots of local and remote branch tips.

    The cache is filled by the first :meth:`refresh` and reused until
    :meth:`invalidate` is called: ref changes made by other processes stay
    invisible until then. On the following refresh, snapshots whose branch tip
    did not move are kept as-is.
    """

    repo_path: Path
    _local: dict[str, TreeSnapshot] | None = field(default=None, init=False)
    _remotes: dict[str, dict[str, TreeSnapshot]] | None = field(default=None, init=False)
    _previous: dict[str, TreeSnapshot] = field(default_factory=dict, init=False)

    @property
    def is_populated(self) -> bool:
        return self._local is not None

    def invalidate(self) -> None:
        if self._local is not None:
            self._previous = {snap.commit_sha: snap for snap in self._all_snapshots()}
        self._local = None
        self._remotes = None

    def refresh(self) -> None:
        if self._local is not None:
            return
        known = self._previous

        def snapshot(sha: str) -> TreeSnapshot:
            if sha not in known:
                known[sha] = TreeSnapshot.load(self.repo_path, sha)
            return known[sha]

        local = {name: snapshot(sha) for name, sha in git.local_branches(self.repo_path).items()}
        remotes: dict[str, dict[str, TreeSnapshot]] = {}
        for remote, branches in git.remote_branches(self.repo_path).items():
            remotes[remote] = {name: snapshot(sha) for name, sha in branches.items()}
        for remote in git.remote_names(self.repo_path):
            remotes.setdefault(remote, {})
        self._local = local
        self._remotes = remotes
        self._previous = {}

    def local_branches(self) -> dict[str, TreeSnapshot]:
        self.refresh()
        return self._local

    def remote_branches(self) -> dict[str, dict[str, TreeSnapshot]]:
        self.refresh()
        return self._remotes

    def _all_snapshots(self) -> list[TreeSnapshot]:
        snapshots = list((self._local or {}).values())
        for branches in (self._remotes or {}).values():
            snapshots.extend(branches.values())
        return snapshots


def split_path(path: str) -> list[str]:
    """Split a ``/`` or ``\\`` separated path, dropping empty and ``.`` parts."""

    parts: list[str] = []
    for part in path.replace("\\", "/").split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            if not parts:
                raise ValidationError(f"Path '{path}' escapes its root.")
            parts.pop()
            continue
        parts.append(part)
    return parts


class VirtualTree:
    """Resolves repository-relative paths into :data:`VirtualNode` values."""

    def __init__(self, name: str, working_dir: Path, monitor: Monitor | None = None):
        self.name = name
        self.working_dir = working_dir
        self.monitor = monitor or Monitor()
        self.cache = BranchSnapshotCache(working_dir)

    @property
    def current_branch_name(self) -> str | None:
        return git.current_branch(self.working_dir)

    def invalidate(self) -> None:
        self.cache.invalidate()

    def get_file_info(self, sub_path: str) -> VirtualNode:
        parts = split_path(sub_path)
        if not parts:
            return RootFolder(self.name)
        head, rest = parts[0], parts[1:]
        if head == HEAD:
            return self._physical(rest)
        if head == BRANCHES:
            if not rest:
                return BranchesFolder(BRANCHES, self._local_branch_names())
            branch, inner = _match_branch(self._local_branch_names(), rest)
            if branch is None:
                return MissingEntry(rest[-1])
            return self._resolve_in_branch(self.branch_node(branch), inner)
        if head == REMOTES:
            remotes = self.cache.remote_branches()
            if not rest:
                return RemotesFolder(REMOTES, tuple(sorted(remotes)))
            branches = remotes.get(rest[0])
            if branches is None:
                return MissingEntry(rest[0])
            if len(rest) == 1:
                return BranchesFolder(rest[0], tuple(sorted(branches)), remote=rest[0])
            branch, inner = _match_branch(branches, rest[1:])
            if branch is None:
                return MissingEntry(rest[-1])
            return self._resolve_in_branch(self.branch_node(branch, remote=rest[0]), inner)
        return MissingEntry(parts[-1])

    def get_directory_contents(self, sub_path: str) -> list[VirtualNode]:
        return list_children(self, self.get_file_info(sub_path))

    def branch_node(self, branch_name: str, remote: str | None = None) -> VirtualNode:
        """Root node of a local or remote branch; the current branch maps to the working directory."""

        if remote is None:
            if branch_name == self.current_branch_name:
                return PhysicalEntry(branch_name, self.working_dir)
            snapshot = self.cache.local_branches().get(branch_name)
        else:
            snapshot = self.cache.remote_branches().get(remote, {}).get(branch_name)
        if snapshot is None:
            return MissingEntry(branch_name)
        return BranchFolder(branch_name, snapshot)

    def _local_branch_names(self) -> tuple[str, ...]:
        names = set(self.cache.local_branches())
        current = self.current_branch_name
        if current is not None:
            names.add(current)
        return tuple(sorted(names))

    def _physical(self, parts: list[str], name: str = HEAD) -> PhysicalEntry:
        if parts:
            name = parts[-1]
        return PhysicalEntry(name, self.working_dir.joinpath(*parts))

    def _resolve_in_branch(self, root: VirtualNode, parts: list[str]) -> VirtualNode:
        if not parts:
            return root
        if isinstance(root, PhysicalEntry):
            return self._physical(parts)
        if not isinstance(root, BranchFolder):
            return MissingEntry(parts[-1])
        obj = root.snapshot.find("/".join(parts))
        if obj is None:
            return MissingEntry(parts[-1])
        return TreeEntry(parts[-1], root.snapshot, obj)


def _match_branch(names: Collection[str], parts: list[str]) -> tuple[str | None, list[str]]:
    # Branch names may hold '/': the longest name made of leading segments wins.
    for count in range(len(parts), 0, -1):
        candidate = "/".join(parts[:count])
        if candidate in names:
            return candidate, parts[count:]
    return None, parts


def list_children(tree: VirtualTree | None, node: VirtualNode) -> list[VirtualNode]:
    """Enumerate the children of a directory node, empty for files and missing nodes.

    ``tree`` is only needed for the virtual folders of a repository.
    """

    if isinstance(node, RootFolder):
        return [
            tree.get_file_info(HEAD),
            tree.get_file_info(BRANCHES),
            tree.get_file_info(REMOTES),
        ]
    if isinstance(node, PhysicalEntry):
        if not node.is_directory:
            return []
        return [PhysicalEntry(child.name, child) for child in sorted(node.path.iterdir())]
    if isinstance(node, BranchesFolder):
        return [tree.branch_node(name, remote=node.remote) for name in node.branch_names]
    if isinstance(node, RemotesFolder):
        return [tree.get_file_info(f"{REMOTES}/{name}") for name in node.remote_names]
    if isinstance(node, BranchFolder):
        return _snapshot_children(node.snapshot, "")
    if isinstance(node, TreeEntry):
        if not node.is_directory:
            return []
        return _snapshot_children(node.snapshot, node.git_object.path)
    return []


def _snapshot_children(snapshot: TreeSnapshot, directory: str) -> list[VirtualNode]:
    prefix = f"{directory}/" if directory else ""
    return [
        TreeEntry(name, snapshot, snapshot.objects[prefix + name])
        for name in snapshot.children.get(directory, ())
    ]


def read_bytes(node: VirtualNode) -> bytes:
    """Read the content of a file node."""

    if isinstance(node, PhysicalEntry):
        if node.is_directory:
            raise InvalidStateError(f"'{node.path}' is a directory.")
        return node.path.read_bytes()
    if isinstance(node, TreeEntry):
        if node.git_object.kind != "blob":
            raise InvalidStateError(f"'{node.git_object.path}' is not a file in commit {node.snapshot.commit_sha[:12]}.")
        return git.read_blob(node.snapshot.repo_path, node.git_object.sha)
    if isinstance(node, MissingEntry):
        raise FileNotFoundError(node.name)
    raise InvalidStateError(f"'{node.name}' is a directory.")


def read_text(node: VirtualNode, encoding: str = "utf-8") -> str:
    return read_bytes(node).decode(encoding)


__all__ = [
    "HEAD",
    "BRANCHES",
    "REMOTES",
    "TreeSnapshot",
    "RootFolder",
    "PhysicalEntry",
    "BranchesFolder",
    "RemotesFolder",
    "BranchFolder",
    "TreeEntry",
    "MissingEntry",
    "VirtualNode",
    "BranchSnapshotCache",
    "VirtualTree",
    "split_path",
    "list_children",
    "read_bytes",
    "read_text",
]
