"""Thin wrappers around git CLI commands."""

from __future__ import annotations

import os
import subprocess
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Sequence

from .exceptions import GitCommandError
from .models import CommitInfo, Credentials, MergeFavor, MergeStatus, Signature

_USERNAME_VAR = "GVFS_GIT_USERNAME"
_PASSWORD_VAR = "GVFS_GIT_PASSWORD"
_CREDENTIAL_HELPER = (
    '!f() { test "$1" = get || return 0; '
    f'echo "username=${_USERNAME_VAR}"; echo "password=${_PASSWORD_VAR}"; '
    "}; f"
)
# %x1e separates records, %x00 separates fields; the message comes last.
_LOG_FORMAT = "%H%x00%P%x00%an%x00%ae%x00%aI%x00%cn%x00%ce%x00%cI%x00%B%x1e"


@dataclass(frozen=True)
class TreeObject:
    """One line of ``git ls-tree -r -t -l``."""

    path: str
    kind: str
    sha: str
    size: int


@dataclass(frozen=True)
class NameStatus:
    """One change reported by ``git diff --name-status``."""

    status: str
    path: str
    old_path: str | None = None


def run_git(
    args: Iterable[str],
    *,
    cwd: Path,
    env: dict[str, str] | None = None,
    raise_on_error: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute a git command and optionally raise on failure."""

    cmd = ["git", *args]
    proc = subprocess.run(
        cmd,
        cwd=str(cwd),
        env={**os.environ, **env} if env else None,
        capture_output=True,
        text=True,
        check=False,
    )
    if raise_on_error and proc.returncode != 0:
        raise GitCommandError(cmd, proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
    return proc


def credential_options(credentials: Credentials | None) -> tuple[list[str], dict[str, str]]:
    """Return the extra arguments and environment that feed ``credentials`` to git.

    The secret only travels through the child environment so it never shows up
    in the command line of the git process.
    """

    env = {"GIT_TERMINAL_PROMPT": "0"}
    if credentials is None:
        return [], env
    args = ["-c", "credential.helper=", "-c", f"credential.helper={_CREDENTIAL_HELPER}"]
    env[_USERNAME_VAR] = credentials.username
    env[_PASSWORD_VAR] = credentials.password
    return args, env


def signature_env(author: Signature, committer: Signature, when: datetime | None = None) -> dict[str, str]:
    env = {
        "GIT_AUTHOR_NAME": author.name,
        "GIT_AUTHOR_EMAIL": author.email,
        "GIT_COMMITTER_NAME": committer.name,
        "GIT_COMMITTER_EMAIL": committer.email,
    }
    if when is not None:
        stamp = when.isoformat(timespec="seconds")
        env["GIT_AUTHOR_DATE"] = stamp
        env["GIT_COMMITTER_DATE"] = stamp
    return env


def is_repository(path: Path) -> bool:
    return (path / ".git").exists()


def clone(url: str, target: Path, *, extra_args: Sequence[str] = (), env: dict[str, str] | None = None) -> None:
    run_git([*extra_args, "clone", url, str(target)], cwd=target.parent, env=env)


def current_branch(path: Path) -> str | None:
    proc = run_git(["symbolic-ref", "--short", "-q", "HEAD"], cwd=path, raise_on_error=False)
    if proc.returncode == 0:
        return proc.stdout.strip() or None
    return None


def resolve_commit(path: Path, ref: str) -> str | None:
    proc = run_git(["rev-parse", "--verify", "-q", f"{ref}^{{commit}}"], cwd=path, raise_on_error=False)
    if proc.returncode == 0:
        return proc.stdout.strip()
    return None


def has_commits(path: Path) -> bool:
    return resolve_commit(path, "HEAD") is not None


def count_commits(path: Path) -> int:
    proc = run_git(["rev-list", "--all", "--count"], cwd=path, raise_on_error=False)
    if proc.returncode != 0:
        return 0
    return int(proc.stdout.strip() or 0)


def local_branches(path: Path) -> dict[str, str]:
    """Map local branch names to their tip commit."""

    proc = run_git(["for-each-ref", "--format=%(refname)%09%(objectname)", "refs/heads"], cwd=path)
    branches: dict[str, str] = {}
    for line in proc.stdout.splitlines():
        ref, _, sha = line.partition("\t")
        branches[ref[len("refs/heads/"):]] = sha
    return branches


def remote_branches(path: Path) -> dict[str, dict[str, str]]:
    """Map remote names to their branch names and tip commits."""

    proc = run_git(
        ["for-each-ref", "--format=%(refname)%09%(objectname)%09%(symref)", "refs/remotes"],
        cwd=path,
    )
    remotes: dict[str, dict[str, str]] = {}
    for line in proc.stdout.splitlines():
        ref, sha, symref = line.split("\t")
        if symref:
            continue
        remote, _, branch = ref[len("refs/remotes/"):].partition("/")
        if branch:
            remotes.setdefault(remote, {})[branch] = sha
    return remotes


def remote_names(path: Path) -> list[str]:
    proc = run_git(["remote"], cwd=path)
    return [line.strip() for line in proc.stdout.splitlines() if line.strip()]


def remote_url(path: Path, remote: str = "origin") -> str | None:
    proc = run_git(["remote", "get-url", remote], cwd=path, raise_on_error=False)
    if proc.returncode == 0:
        return proc.stdout.strip()
    return None


def upstream(path: Path, branch: str) -> str | None:
    """Return the tracked branch (``origin/<name>``) or ``None`` when untracked."""

    proc = run_git(["for-each-ref", "--format=%(upstream:short)", f"refs/heads/{branch}"], cwd=path)
    value = proc.stdout.strip()
    return value or None


def set_upstream(path: Path, branch: str, remote: str, merge_ref: str) -> None:
    run_git(["config", f"branch.{branch}.remote", remote], cwd=path)
    run_git(["config", f"branch.{branch}.merge", merge_ref], cwd=path)


def ahead_behind(path: Path, local: str, other: str) -> tuple[int, int]:
    proc = run_git(["rev-list", "--left-right", "--count", f"{local}...{other}"], cwd=path)
    ahead, behind = proc.stdout.split()
    return int(ahead), int(behind)


def is_ancestor(path: Path, ancestor: str, descendant: str) -> bool:
    proc = run_git(["merge-base", "--is-ancestor", ancestor, descendant], cwd=path, raise_on_error=False)
    return proc.returncode == 0


def status_entries(path: Path) -> list[str]:
    proc = run_git(["status", "--porcelain", "-z", "--untracked-files=all"], cwd=path)
    return [entry for entry in proc.stdout.split("\0") if entry]


def untracked_files(path: Path) -> list[str]:
    proc = run_git(["ls-files", "--others", "--exclude-standard", "-z"], cwd=path)
    return [entry for entry in proc.stdout.split("\0") if entry]


def stage_all(path: Path) -> None:
    run_git(["add", "-A"], cwd=path)


def has_staged_changes(path: Path) -> bool:
    if not has_commits(path):
        proc = run_git(["ls-files", "--cached"], cwd=path)
        return bool(proc.stdout.strip())
    proc = run_git(["diff", "--cached", "--quiet", "HEAD"], cwd=path, raise_on_error=False)
    return proc.returncode != 0


def write_tree(path: Path) -> str:
    return run_git(["write-tree"], cwd=path).stdout.strip()


def tree_of(path: Path, commit: str) -> str:
    return run_git(["rev-parse", f"{commit}^{{tree}}"], cwd=path).stdout.strip()


def config_signature(path: Path) -> Signature | None:
    name = run_git(["config", "user.name"], cwd=path, raise_on_error=False).stdout.strip()
    email = run_git(["config", "user.email"], cwd=path, raise_on_error=False).stdout.strip()
    if not name or not email:
        return None
    return Signature(name, email)


def commit_info(path: Path, ref: str = "HEAD") -> CommitInfo | None:
    if resolve_commit(path, ref) is None:
        return None
    commits = log(path, ["-1", ref])
    return commits[0] if commits else None


def log(path: Path, revisions: Sequence[str]) -> list[CommitInfo]:
    proc = run_git(["log", f"--format={_LOG_FORMAT}", *revisions], cwd=path)
    commits: list[CommitInfo] = []
    for record in proc.stdout.split("\x1e"):
        record = record.lstrip("\n")
        if not record:
            continue
        sha, parents, an, ae, ad, cn, ce, cd, message = record.split("\0", 8)
        commits.append(
            CommitInfo(
                sha=sha,
                parents=tuple(parents.split()),
                author=Signature(an, ae),
                author_date=datetime.fromisoformat(ad),
                committer=Signature(cn, ce),
                committer_date=datetime.fromisoformat(cd),
                message=message.rstrip("\n"),
            )
        )
    return commits


def commit(
    path: Path,
    message: str,
    *,
    env: dict[str, str],
    amend: bool = False,
    allow_empty: bool = False,
) -> str:
    """Commit the index using a temporary message file and return the new sha."""

    fd, message_path = tempfile.mkstemp(suffix=".txt", prefix="git-commit-")
    try:
        with open(fd, "w", encoding="utf-8") as f:
            f.write(message)
        args = ["commit", "--quiet", "--cleanup=verbatim", "-F", message_path]
        if amend:
            args.append("--amend")
        if allow_empty:
            args.append("--allow-empty")
        run_git(args, cwd=path, env=env)
    finally:
        Path(message_path).unlink(missing_ok=True)
    return run_git(["rev-parse", "HEAD"], cwd=path).stdout.strip()


def create_branch(path: Path, name: str, start_point: str = "HEAD") -> None:
    run_git(["branch", name, start_point], cwd=path)


def force_branch(path: Path, name: str, sha: str) -> None:
    run_git(["branch", "--force", name, sha], cwd=path)


def delete_branch(path: Path, name: str) -> None:
    run_git(["branch", "-D", name], cwd=path)


def checkout(path: Path, branch: str) -> None:
    run_git(["checkout", "--quiet", branch], cwd=path)


def point_head_to(path: Path, branch: str) -> None:
    run_git(["symbolic-ref", "HEAD", f"refs/heads/{branch}"], cwd=path)


def reset_hard(path: Path, target: str = "HEAD") -> None:
    run_git(["reset", "--hard", "--quiet", target], cwd=path)


def fetch(path: Path, remote: str, *, extra_args: Sequence[str] = (), env: dict[str, str] | None = None) -> None:
    run_git([*extra_args, "fetch", "--tags", remote], cwd=path, env=env)


def push(
    path: Path,
    remote: str,
    branch: str,
    *,
    extra_args: Sequence[str] = (),
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    return run_git(
        [*extra_args, "push", "--porcelain", remote, f"refs/heads/{branch}:refs/heads/{branch}"],
        cwd=path,
        env=env,
        raise_on_error=False,
    )


def unmerged_paths(path: Path) -> list[str]:
    proc = run_git(["diff", "--name-only", "--diff-filter=U"], cwd=path)
    return [line for line in proc.stdout.splitlines() if line]


def merge(
    path: Path,
    ref: str,
    *,
    favor: MergeFavor = MergeFavor.NORMAL,
    no_ff: bool = False,
    message: str | None = None,
    env: dict[str, str] | None = None,
) -> MergeStatus:
    """Merge ``ref`` into the current branch, aborting instead of leaving conflicts."""

    if is_ancestor(path, ref, "HEAD"):
        return MergeStatus.UP_TO_DATE
    if not no_ff and is_ancestor(path, "HEAD", ref):
        run_git(["merge", "--ff-only", "--quiet", ref], cwd=path, env=env)
        return MergeStatus.FAST_FORWARD
    args = ["merge", "--no-ff", "--no-edit", "--quiet"]
    if favor is not MergeFavor.NORMAL:
        args.extend(["-X", favor.value])
    if message:
        args.extend(["-m", message])
    args.append(ref)
    proc = run_git(args, cwd=path, env=env, raise_on_error=False)
    if proc.returncode == 0:
        return MergeStatus.NON_FAST_FORWARD
    if unmerged_paths(path):
        run_git(["merge", "--abort"], cwd=path)
        return MergeStatus.CONFLICTS
    raise GitCommandError(["git", *args], proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


def ls_tree(path: Path, commit_sha: str) -> list[TreeObject]:
    proc = run_git(["ls-tree", "-r", "-t", "-l", "-z", "--full-tree", commit_sha], cwd=path)
    objects: list[TreeObject] = []
    for record in proc.stdout.split("\0"):
        if not record:
            continue
        meta, _, name = record.partition("\t")
        _mode, kind, sha, size = meta.split()
        objects.append(TreeObject(path=name, kind=kind, sha=sha, size=0 if size == "-" else int(size)))
    return objects


def read_blob(path: Path, sha: str) -> bytes:
    cmd = ["git", "cat-file", "blob", sha]
    proc = subprocess.run(cmd, cwd=str(path), capture_output=True, check=False)
    if proc.returncode != 0:
        raise GitCommandError(cmd, proc.returncode, stderr=proc.stderr.decode("utf-8", "replace"))
    return proc.stdout


def diff_name_status(path: Path, from_sha: str, to_sha: str) -> list[NameStatus]:
    proc = run_git(["diff", "--name-status", "-z", "-M", from_sha, to_sha], cwd=path)
    tokens = [token for token in proc.stdout.split("\0") if token]
    changes: list[NameStatus] = []
    i = 0
    while i < len(tokens):
        status = tokens[i]
        if status[0] in ("R", "C"):
            changes.append(NameStatus(status=status[0], path=tokens[i + 2], old_path=tokens[i + 1]))
            i += 3
        else:
            changes.append(NameStatus(status=status[0], path=tokens[i + 1]))
            i += 2
    return changes


__all__ = [
    "TreeObject",
    "NameStatus",
    "run_git",
    "credential_options",
    "signature_env",
    "is_repository",
    "clone",
    "current_branch",
    "resolve_commit",
    "has_commits",
    "count_commits",
    "local_branches",
    "remote_branches",
    "remote_names",
    "remote_url",
    "upstream",
    "set_upstream",
    "ahead_behind",
    "is_ancestor",
    "status_entries",
    "untracked_files",
    "stage_all",
    "has_staged_changes",
    "write_tree",
    "tree_of",
    "config_signature",
    "commit_info",
    "log",
    "commit",
    "create_branch",
    "force_branch",
    "delete_branch",
    "checkout",
    "point_head_to",
    "reset_hard",
    "fetch",
    "push",
    "unmerged_paths",
    "merge",
    "ls_tree",
    "read_blob",
    "diff_name_status",
]
