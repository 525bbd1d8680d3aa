"""Declared and opened repositories of a virtual file system."""

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Callable

from . import git
from .commands import CommandRegistry, command
from .config import Settings
from .credentials import RepositoryKey
from .diff import DiffEngine, DiffRoot, GitDiffResult
from .exceptions import ValidationError
from .models import CommitBehavior, CommittingResult, CredentialKind, MergeFavor, SimpleStatus
from .monitor import Monitor
from .plugins import NoPluginManager, PluginManager
from .plumbing import OPERATION_ERRORS, GitPlumbing
from .tree import VirtualTree, split_path
from .workflow import BranchWorkflow

if TYPE_CHECKING:
    from .filesystem import VirtualFileSystem

PluginManagerFactory = Callable[["OpenRepository"], PluginManager]


def validate_folder_path(folder_path: str) -> str:
    """Return the normalized ``/`` separated form of a repository folder path."""

    if not folder_path or not folder_path.strip():
        raise ValidationError("Repository folder path cannot be empty.")
    if PurePosixPath(folder_path.replace("\\", "/")).is_absolute() or Path(folder_path).is_absolute():
        raise ValidationError(f"Repository folder path '{folder_path}' must be relative.")
    parts = split_path(folder_path)
    if not parts:
        raise ValidationError(f"Repository folder path '{folder_path}' is empty once normalized.")
    if parts[-1].lower().endswith(".git"):
        raise ValidationError(f"Repository folder path '{folder_path}' must not end with '.git'.")
    return "/".join(parts)


def ensure_working_folder(
    monitor: Monitor,
    key: RepositoryKey,
    working_dir: Path,
    *,
    settings: Settings,
    display_path: str,
    branch_name: str | None = None,
) -> bool:
    """Clone ``working_dir`` when missing, or check that it is bound to the key's url.

    A repository without any commit receives an empty initial commit. When given,
    ``branch_name`` is created if needed and checked out only on a fresh clone.
    """

    created = False
    if not git.is_repository(working_dir):
        with monitor.open_group(f"Checking out '{display_path}' from '{key.origin_url}'."):
            try:
                credentials = key.credentials_provider(key.origin_url, None, CredentialKind.READ)
                extra_args, env = git.credential_options(credentials)
                working_dir.parent.mkdir(parents=True, exist_ok=True)
                git.clone(key.origin_url, working_dir, extra_args=extra_args, env=env)
                created = True
            except OPERATION_ERRORS as exc:
                monitor.error(f"Git clone of '{key.origin_url}' failed.", exc)
                return False
    else:
        url = git.remote_url(working_dir, settings.origin)
        if url is None or not key.is_equivalent(url):
            monitor.fatal(
                f"Repository '{display_path}': remote '{settings.origin}' is '{url}' but '{key.origin_url}' is expected."
            )
            return False
    plumbing = GitPlumbing(working_dir, display_path, key, settings=settings, monitor=monitor)
    try:
        if branch_name and git.count_commits(working_dir) == 0:
            git.point_head_to(working_dir, branch_name)
        plumbing.ensure_first_commit()
        if branch_name and branch_name != plumbing.current_branch_name:
            plumbing.ensure_branch(branch_name, no_warn_on_create=created)
            if created:
                git.checkout(working_dir, branch_name)
        return True
    except OPERATION_ERRORS as exc:
        monitor.fatal(f"Unable to initialize repository '{display_path}'.", exc)
        return False


def open_working_folder(monitor: Monitor, working_dir: Path, display_path: str, *, warn_only: bool = False) -> bool:
    if git.is_repository(working_dir):
        return True
    message = f"Missing git repository '{display_path}'."
    if warn_only:
        monitor.warn(message)
    else:
        monitor.error(message)
    return False


class ProtoRepository:
    """A declared repository that may not be cloned or opened yet."""

    def __init__(self, file_system: VirtualFileSystem, key: RepositoryKey, folder_path: str, world: str | None = None):
        if key is None:
            raise ValidationError("Repository key is required.")
        self.file_system = file_system
        self.key = key
        self.folder_path = validate_folder_path(folder_path)
        self.world = world
        self.repository: OpenRepository | None = None

    @property
    def working_dir(self) -> Path:
        return self.file_system.root.joinpath(*self.folder_path.split("/"))

    def load(self, branch_name: str | None = None) -> OpenRepository | None:
        """Clone or open the working folder. Subsequent calls return the same instance."""

        if self.repository is not None:
            return self.repository
        fs = self.file_system
        if not ensure_working_folder(
            fs.monitor,
            self.key,
            self.working_dir,
            settings=fs.settings,
            display_path=self.folder_path,
            branch_name=branch_name,
        ):
            return None
        return self._attach()

    def open(self, warn_only_if_missing: bool = False) -> OpenRepository | None:
        """Open an existing working folder without cloning it."""

        if self.repository is not None:
            return self.repository
        if not open_working_folder(
            self.file_system.monitor, self.working_dir, self.folder_path, warn_only=warn_only_if_missing
        ):
            return None
        return self._attach()

    def _attach(self) -> OpenRepository:
        fs = self.file_system
        self.repository = OpenRepository(
            self,
            self.working_dir,
            self.folder_path,
            settings=fs.settings,
            monitor=fs.monitor,
            plugin_manager_factory=fs.plugin_manager_factory,
            commands=fs.commands,
        )
        return self.repository

    def __repr__(self) -> str:
        return f"ProtoRepository({self.folder_path!r}, {self.key.origin_url!r})"


class OpenRepository:
    """An opened working folder with its plumbing, virtual tree, workflow and diff engine."""

    def __init__(
        self,
        proto: ProtoRepository,
        working_dir: Path,
        display_path: str,
        *,
        settings: Settings,
        monitor: Monitor,
        plugin_manager_factory: PluginManagerFactory | None = None,
        commands: CommandRegistry | None = None,
    ):
        display_parts = tuple(display_path.split("/"))
        if working_dir.parts[-len(display_parts):] != display_parts:
            raise ValidationError(f"Working directory '{working_dir}' must end with '{display_path}'.")
        self.proto = proto
        self.key = proto.key
        self.working_dir = working_dir
        self.display_path = display_path
        self.settings = settings
        self.monitor = monitor
        self.plugins = plugin_manager_factory(self) if plugin_manager_factory else NoPluginManager()
        self.plumbing = GitPlumbing(working_dir, display_path, self.key, settings=settings, monitor=monitor)
        self.plumbing.on_new_current_branch.subscribe(self._bind_plugins)
        self.tree = VirtualTree(PurePosixPath(display_path).name, working_dir, monitor)
        self.workflow = BranchWorkflow(
            self.plumbing,
            plugins=self.plugins,
            delete_file=proto.file_system.delete,
            owner=self,
        )
        self.diff_engine = DiffEngine(working_dir, settings.bot, monitor)
        self._commands = commands
        self._disposed = False
        if commands is not None:
            commands.register(self, display_path)

    @property
    def current_branch_name(self) -> str | None:
        return self.plumbing.current_branch_name

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def _bind_plugins(self, monitor: Monitor, branch_name: str) -> bool:
        return self.plugins.ensure_plugins(monitor, branch_name)

    def get_simple_status(self, initialize_plugins: bool = False) -> SimpleStatus:
        current = self.current_branch_name
        plugin_count: int | None = None
        if current is not None:
            if self.plugins.is_initialized(current) or (
                initialize_plugins and self.plugins.ensure_plugins(self.monitor, current)
            ):
                plugin_count = self.plugins.count
        return SimpleStatus(
            display_name=self.display_path,
            current_branch=current,
            is_dirty=self.plumbing.is_dirty,
            commit_ahead=self.plumbing.commits_ahead(),
            plugin_count=plugin_count,
        )

    @command
    def fetch_branches(self, origin_only: bool = True) -> bool:
        return self.plumbing.fetch_branches(origin_only)

    @command
    def pull(self, favor: MergeFavor = MergeFavor.THEIRS) -> tuple[bool, bool]:
        return self.plumbing.pull(favor)

    @command
    def checkout(self, branch_name: str, skip_fetch: bool = False, skip_pull_merge: bool = False) -> tuple[bool, bool]:
        result = self.plumbing.checkout(branch_name, skip_fetch=skip_fetch, skip_pull_merge=skip_pull_merge)
        if result[1]:
            self.tree.invalidate()
        return result

    @command
    def commit(self, message: str | None, behavior: CommitBehavior = CommitBehavior.CREATE_NEW) -> CommittingResult:
        return self.plumbing.commit(message, behavior)

    @command
    def push(self, branch_name: str | None = None) -> bool:
        return self.plumbing.push(branch_name)

    @command
    def reset(self, git_reset_hard: bool = False) -> bool:
        return self.workflow.reset(git_reset_hard)

    @command
    def switch_develop_to_local(self, auto_commit: bool = True) -> bool:
        return self.workflow.switch_develop_to_local(auto_commit)

    @command
    def switch_local_to_develop(self) -> bool:
        return self.workflow.switch_local_to_develop()

    @command
    def switch_develop_to_master(self) -> bool:
        return self.workflow.switch_develop_to_master()

    @command
    def switch_master_to_develop(self) -> bool:
        return self.workflow.switch_master_to_develop()

    @command
    def run_process(self, file_name: str, arguments: str = "") -> bool:
        """Run an external program in the working folder and log its output."""

        with self.monitor.open_group(f"Running '{file_name} {arguments}' in '{self.display_path}'."):
            try:
                proc = subprocess.run(
                    [file_name, *shlex.split(arguments)],
                    cwd=str(self.working_dir),
                    capture_output=True,
                    text=True,
                    check=False,
                )
            except OSError as exc:
                self.monitor.error(f"Unable to start '{file_name}'.", exc)
                return False
            for line in proc.stdout.splitlines():
                self.monitor.info(line)
            for line in proc.stderr.splitlines():
                self.monitor.warn(line)
            if proc.returncode != 0:
                self.monitor.error(f"'{file_name}' exited with code {proc.returncode}.")
                return False
            return True

    def diff(self, from_commit: str, to_commit: str, roots: list[DiffRoot], with_messages: bool = False) -> GitDiffResult:
        return self.diff_engine.diff(from_commit, to_commit, roots, with_messages)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._commands is not None:
            self._commands.unregister(self)
        if self.proto.repository is self:
            self.proto.repository = None

    def __repr__(self) -> str:
        return f"OpenRepository({self.display_path!r})"


__all__ = [
    "PluginManagerFactory",
    "validate_folder_path",
    "ensure_working_folder",
    "open_working_folder",
    "ProtoRepository",
    "OpenRepository",
]
