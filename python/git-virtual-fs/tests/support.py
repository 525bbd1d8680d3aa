"""Throw-away git repositories for the test suite."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from git_virtual_fs.config import Settings
from git_virtual_fs.credentials import EnvironmentSecretStore
from git_virtual_fs.filesystem import VirtualFileSystem
from git_virtual_fs.git import run_git
from git_virtual_fs.monitor import Monitor

USER = ["-c", "user.name=Test User", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false"]


def git(cwd: Path, *args: str) -> str:
    return run_git([*USER, *args], cwd=cwd).stdout.strip()


def write_files(root: Path, files: dict[str, str]) -> None:
    for name, content in files.items():
        target = root / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")


def commit_files(repo: Path, files: dict[str, str], message: str) -> str:
    write_files(repo, files)
    git(repo, "add", "-A")
    git(repo, "commit", "--quiet", "-m", message)
    return git(repo, "rev-parse", "HEAD")


class RepositorySandbox:
    """A temporary folder holding a bare ``remote`` and a workspace root.

    The bare repository has no ``.git`` suffix so that its file url is a valid
    repository url.
    """

    def __init__(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name).resolve()
        self.remote = self.path / "remote"
        self.workspace = self.path / "workspace"
        self.workspace.mkdir()
        run_git(["init", "--quiet", "--bare", "-b", "develop", str(self.remote)], cwd=self.path)
        self.url = self.remote.as_uri()
        self.monitor = Monitor("git_virtual_fs.tests", logging.getLogger("git_virtual_fs.tests"))

    def cleanup(self) -> None:
        self._tmp.cleanup()

    def seed(self, files: dict[str, str], message: str = "Seed.", branch: str = "develop") -> str:
        """Push one commit with ``files`` on ``branch`` of the remote."""

        seed = self.path / "seed"
        if not seed.exists():
            run_git(["clone", "--quiet", self.url, str(seed)], cwd=self.path)
        git(seed, "fetch", "--quiet", "origin")
        if git(seed, "branch", "--list", branch):
            git(seed, "checkout", "--quiet", branch)
            if git(seed, "branch", "-r", "--list", f"origin/{branch}"):
                git(seed, "merge", "--quiet", "--ff-only", f"origin/{branch}")
        elif git(seed, "branch", "-r", "--list", f"origin/{branch}"):
            git(seed, "checkout", "--quiet", "-b", branch, f"origin/{branch}")
        elif run_git(["rev-parse", "--verify", "-q", "HEAD"], cwd=seed, raise_on_error=False).returncode != 0:
            git(seed, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
        else:
            git(seed, "checkout", "--quiet", "-b", branch)
        sha = commit_files(seed, files, message)
        git(seed, "push", "--quiet", "origin", f"{branch}:{branch}")
        return sha

    def file_system(self, **kwargs) -> VirtualFileSystem:
        kwargs.setdefault("secret_store", EnvironmentSecretStore({}))
        kwargs.setdefault("settings", Settings())
        kwargs.setdefault("monitor", self.monitor)
        return VirtualFileSystem(self.workspace, **kwargs)

    def open_repository(self, folder: str = "repo", branch_name: str | None = "develop", **kwargs):
        fs = self.file_system(**kwargs)
        proto = fs.declare(folder, self.url, True)
        repository = proto.load(branch_name)
        if repository is None:
            raise AssertionError(f"Unable to load '{folder}'.")
        run_git(["config", "user.name", "Test User"], cwd=repository.working_dir)
        run_git(["config", "user.email", "test@example.com"], cwd=repository.working_dir)
        run_git(["config", "commit.gpgsign", "false"], cwd=repository.working_dir)
        return fs, repository
