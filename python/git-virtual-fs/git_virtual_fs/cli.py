"""Typer-based CLI for git-virtual-fs."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__, git
from .config import load_settings
from .diff import DiffRoot
from .exceptions import GitVirtualFsError, UserAbort
from .filesystem import VirtualFileSystem
from .interactive import branch_choices, confirm, select_branch
from .models import CommitBehavior, CommittingResult, MergeFavor
from .monitor import Monitor, configure_logging
from .repository import OpenRepository
from .tree import read_text

app = typer.Typer(help="Browse and drive a git working folder through its head/branches/remotes namespace")
console = Console()

_AMEND_BEHAVIORS = {
    "keep": CommitBehavior.AMEND_KEEP_MESSAGE,
    "append": CommitBehavior.AMEND_APPEND_MESSAGE,
    "prepend": CommitBehavior.AMEND_PREPEND_MESSAGE,
    "overwrite": CommitBehavior.AMEND_OVERWRITE_MESSAGE,
}


@dataclass
class AppState:
    repo_path: Path
    is_public: bool
    verbose: bool
    file_system: VirtualFileSystem | None = None

    def open(self) -> OpenRepository:
        if self.file_system is not None and self.file_system.repositories:
            return self.file_system.repositories[0]
        repo_path = self.repo_path.expanduser().resolve()
        if not git.is_repository(repo_path):
            _fail(f"'{repo_path}' is not a git working folder.")
        try:
            settings = load_settings()
            url = git.remote_url(repo_path, settings.origin)
            if url is None:
                _fail(f"Repository '{repo_path}' has no '{settings.origin}' remote.")
            self.file_system = VirtualFileSystem(repo_path.parent, settings=settings, monitor=Monitor())
            proto = self.file_system.declare(repo_path.name, url, self.is_public)
            repository = proto.open()
        except GitVirtualFsError as err:
            _fail(str(err))
        if repository is None:
            _fail(f"Unable to open '{repo_path}'.")
        return repository


def _print_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        help="Path to the git working folder.",
        exists=False,
        dir_okay=True,
        file_okay=False,
    ),
    public: bool = typer.Option(False, "--public", help="The remote can be read without credentials."),
    verbose: bool = typer.Option(False, "--verbose", help="Show trace-level logs."),
    version: bool = typer.Option(False, "--version", is_eager=True, callback=_print_version, help="Show the version and exit."),
) -> None:
    configure_logging(verbose)
    ctx.obj = AppState(repo_path=repo, is_public=public, verbose=verbose)


@app.command(help="Show the current branch, dirty flag and commits ahead of the remote")
def status(ctx: typer.Context) -> None:
    repository = _repository(ctx)
    info = repository.get_simple_status()
    table = Table(show_header=True, header_style="bold")
    table.add_column("Repository")
    table.add_column("Branch")
    table.add_column("Dirty")
    table.add_column("Ahead")
    table.add_row(
        info.display_name,
        info.current_branch or "(detached)",
        "yes" if info.is_dirty else "no",
        "-" if info.commit_ahead is None else str(info.commit_ahead),
    )
    console.print(table)


@app.command(help="List a folder of the virtual namespace (head, branches/<name>, remotes/<remote>/<name>)")
def ls(ctx: typer.Context, path: str = typer.Argument("", help="Path below the repository.")) -> None:
    repository = _repository(ctx)
    node = repository.tree.get_file_info(path)
    if not node.exists:
        _fail(f"'{path}' does not exist.")
    if not node.is_directory:
        console.print(f"{node.name}  {node.length}")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    for child in repository.tree.get_directory_contents(path):
        name = f"{child.name}/" if child.is_directory else child.name
        size = "" if child.is_directory else str(child.length)
        modified = child.last_modified.isoformat(timespec="seconds") if child.last_modified else ""
        table.add_row(name, size, modified)
    console.print(table)


@app.command(help="Print a file of the virtual namespace")
def cat(ctx: typer.Context, path: str = typer.Argument(..., help="Path below the repository.")) -> None:
    repository = _repository(ctx)
    try:
        typer.echo(read_text(repository.tree.get_file_info(path)), nl=False)
    except FileNotFoundError:
        _fail(f"'{path}' does not exist.")
    except (GitVirtualFsError, UnicodeDecodeError) as err:
        _fail(str(err))


@app.command(help="Fetch the branches of the remotes")
def fetch(
    ctx: typer.Context,
    all_remotes: bool = typer.Option(False, "--all", help="Fetch every remote, not only origin."),
) -> None:
    _check(_repository(ctx).fetch_branches(origin_only=not all_remotes), "Fetch failed.")


@app.command(help="Fetch and merge the tracked branch")
def pull(
    ctx: typer.Context,
    favor: MergeFavor = typer.Option(MergeFavor.THEIRS, "--favor", case_sensitive=False, help="File favor on conflicting hunks."),
) -> None:
    ok, _ = _repository(ctx).pull(favor)
    _check(ok, "Pull failed.")


@app.command(help="Check out a branch, creating it from the remote when needed")
def checkout(
    ctx: typer.Context,
    branch: str | None = typer.Argument(None, help="Branch name. If omitted, an interactive picker is shown."),
    skip_fetch: bool = typer.Option(False, "--skip-fetch", help="Do not fetch before checking out."),
    skip_pull: bool = typer.Option(False, "--skip-pull", help="Do not merge the tracked branch afterwards."),
) -> None:
    repository = _repository(ctx)
    if branch is None:
        branch = _prompt_branch(repository)
    ok, _ = repository.checkout(branch, skip_fetch=skip_fetch, skip_pull_merge=skip_pull)
    _check(ok, f"Unable to check out '{branch}'.")


@app.command(help="Commit every change of the working folder")
def commit(
    ctx: typer.Context,
    message: str | None = typer.Option(None, "--message", "-m", help="Commit message."),
    amend: str | None = typer.Option(
        None,
        "--amend",
        help="Amend when possible, keeping, appending, prepending or overwriting the previous message.",
    ),
) -> None:
    behavior = CommitBehavior.CREATE_NEW
    if amend is not None:
        behavior = _AMEND_BEHAVIORS.get(amend.lower())
        if behavior is None:
            _fail(f"Unknown amend mode '{amend}'. Use one of: {', '.join(_AMEND_BEHAVIORS)}.")
    try:
        result = _repository(ctx).commit(message, behavior)
    except GitVirtualFsError as err:
        _fail(str(err))
    _check(result is not CommittingResult.ERROR, "Commit failed.")
    console.print(result.value)


@app.command(help="Push a branch to origin")
def push(ctx: typer.Context, branch: str | None = typer.Argument(None, help="Branch to push, the current one by default.")) -> None:
    _check(_repository(ctx).push(branch), "Push failed.")


@app.command(help="Switch from the develop branch to the local branch")
def local(
    ctx: typer.Context,
    no_auto_commit: bool = typer.Option(False, "--no-auto-commit", help="Fail on uncommitted changes instead of committing them."),
) -> None:
    _check(_repository(ctx).switch_develop_to_local(auto_commit=not no_auto_commit), "Switch to local failed.")


@app.command(help="Switch to the develop branch, from the local or the master branch")
def develop(ctx: typer.Context) -> None:
    repository = _repository(ctx)
    if repository.current_branch_name == repository.settings.branches.master:
        ok = repository.switch_master_to_develop()
    else:
        ok = repository.switch_local_to_develop()
    _check(ok, "Switch to develop failed.")


@app.command(help="Switch from the develop branch to the master branch")
def master(ctx: typer.Context) -> None:
    _check(_repository(ctx).switch_develop_to_master(), "Switch to master failed.")


@app.command(help="Reset the working folder")
def reset(
    ctx: typer.Context,
    hard: bool = typer.Option(False, "--hard", help="Discard every change, untracked files included."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    repository = _repository(ctx)
    if hard and not yes:
        try:
            if not confirm(f"Discard every change in '{repository.display_path}'?"):
                raise UserAbort("Reset canceled.")
        except GitVirtualFsError as err:
            _fail(str(err))
    _check(repository.reset(git_reset_hard=hard), "Reset failed.")


@app.command(help="Show the changes between two commits, bucketed by root folders")
def diff(
    ctx: typer.Context,
    from_commit: str = typer.Argument(..., help="Starting commit (excluded)."),
    to_commit: str = typer.Argument("HEAD", help="Ending commit."),
    root: list[str] = typer.Option([], "--root", help="NAME=PREFIX[,PREFIX...] bucket definition. Repeatable."),
    messages: bool = typer.Option(False, "--messages", help="Include the commit messages."),
) -> None:
    repository = _repository(ctx)
    try:
        roots = [_parse_root(item) for item in root]
        result = repository.diff(from_commit, to_commit, roots, with_messages=messages)
    except GitVirtualFsError as err:
        _fail(str(err))
    console.print(str(result), markup=False, highlight=False)


def _repository(ctx: typer.Context) -> OpenRepository:
    state: AppState = ctx.obj
    return state.open()


def _prompt_branch(repository: OpenRepository) -> str:
    origin = repository.settings.origin
    local = repository.tree.cache.local_branches()
    remote = repository.tree.cache.remote_branches().get(origin, {})
    choices = branch_choices(local, remote, repository.current_branch_name)
    try:
        return select_branch(choices)
    except GitVirtualFsError as err:
        _fail(str(err))


def _parse_root(value: str) -> DiffRoot:
    name, sep, prefixes = value.partition("=")
    paths = tuple(prefix.strip() for prefix in prefixes.split(",") if prefix.strip())
    if not sep or not name.strip() or not paths:
        raise typer.BadParameter(f"Invalid root '{value}'. Expected NAME=PREFIX[,PREFIX...].")
    return DiffRoot(name.strip(), paths)


def _check(ok: bool, message: str) -> None:
    if not ok:
        _fail(message)


def _fail(message: str, code: int = 1) -> NoReturn:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code)


if __name__ == "__main__":
    app()
