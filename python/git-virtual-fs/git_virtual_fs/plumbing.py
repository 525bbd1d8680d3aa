"""Branch, fetch, merge, commit and push operations over one working folder."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from . import git
from .config import Settings
from .credentials import RepositoryKey
from .events import EventHook
from .exceptions import GitVirtualFsError, InvalidStateError, PushRejectedError, ValidationError
from .models import (
    CommitBehavior,
    CommitInfo,
    CommittingResult,
    CredentialKind,
    MergeFavor,
    MergeStatus,
    Signature,
)
from .monitor import TRACE, Monitor

MessageEditor = Callable[[str], str]
DateEditor = Callable[[datetime], Optional[datetime]]

INITIAL_COMMIT_MESSAGE = "Initial commit automatically created."

# Errors reported as operational failures instead of being propagated.
OPERATION_ERRORS = (GitVirtualFsError, OSError)


def require_text(value: str | None, name: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{name} cannot be empty.")
    return value


def message_editor(behavior: CommitBehavior, message: str | None) -> MessageEditor:
    """Build the transformer applied to the previous message when amending."""

    if behavior is CommitBehavior.AMEND_KEEP_MESSAGE:
        return lambda previous: previous
    if behavior is CommitBehavior.CREATE_NEW:
        raise ValidationError("Creating a new commit does not edit the previous message.")
    text = require_text(message, "Commit message")
    if behavior is CommitBehavior.AMEND_APPEND_MESSAGE:
        return lambda previous: f"{text}(...)\n{previous}"
    if behavior is CommitBehavior.AMEND_PREPEND_MESSAGE:
        return lambda previous: f"{previous} (...)\n{text}"
    return lambda previous: text


class GitPlumbing:
    """Generic version-control operations on one working folder.

    Instances are not safe for concurrent structural operations: callers serialize
    checkout, merge, commit and push on a given working folder.
    """

    def __init__(
        self,
        working_dir: Path,
        display_path: str,
        key: RepositoryKey,
        *,
        settings: Settings,
        monitor: Monitor,
        on_new_current_branch: EventHook | None = None,
    ):
        self.working_dir = working_dir
        self.display_path = display_path
        self.key = key
        self.settings = settings
        self.monitor = monitor
        self.on_new_current_branch = on_new_current_branch or EventHook("OnNewCurrentBranch")

    @property
    def origin(self) -> str:
        return self.settings.origin

    @property
    def current_branch_name(self) -> str | None:
        return git.current_branch(self.working_dir)

    @property
    def is_dirty(self) -> bool:
        return bool(git.status_entries(self.working_dir))

    @property
    def bot_signature(self) -> Signature:
        return Signature(self.settings.bot.name, self.settings.bot.email)

    def head_commit(self) -> CommitInfo | None:
        return git.commit_info(self.working_dir, "HEAD")

    def branch_tip(self, branch_name: str) -> str | None:
        return git.local_branches(self.working_dir).get(branch_name)

    def commits_ahead(self, branch_name: str | None = None) -> int | None:
        """Commits of ``branch_name`` not on its tracked branch, ``None`` when untracked."""

        branch_name = branch_name or self.current_branch_name
        if branch_name is None or self.branch_tip(branch_name) is None:
            return None
        tracked = git.upstream(self.working_dir, branch_name)
        if tracked is None or git.resolve_commit(self.working_dir, tracked) is None:
            return None
        ahead, _ = git.ahead_behind(self.working_dir, branch_name, tracked)
        return ahead

    @property
    def can_amend_commit(self) -> bool:
        if not git.has_commits(self.working_dir):
            return False
        ahead = self.commits_ahead()
        return (ahead if ahead is not None else 1) > 0

    def check_clean_commit(self) -> bool:
        if self.is_dirty:
            self.monitor.error(
                f"Repository '{self.display_path}' has uncommitted changes ({self.current_branch_name})."
            )
            return False
        return True

    def get_branch(self, branch_name: str, *, log_error_missing: bool = False) -> str | None:
        """Return the tip of the local branch, creating it from ``origin`` when needed."""

        tip = self.branch_tip(branch_name)
        if tip is not None:
            return tip
        remote_name = f"{self.origin}/{branch_name}"
        remote_tip = git.resolve_commit(self.working_dir, f"refs/remotes/{remote_name}")
        if remote_tip is None:
            message = (
                f"Repository '{self.display_path}': Both local '{branch_name}' "
                f"and remote '{remote_name}' not found."
            )
            if log_error_missing:
                self.monitor.error(message)
            else:
                self.monitor.warn(message)
            return None
        self.monitor.info(f"Creating local branch on remote '{remote_name}' in repository '{self.display_path}'.")
        git.create_branch(self.working_dir, branch_name, remote_tip)
        git.set_upstream(self.working_dir, branch_name, self.origin, f"refs/heads/{branch_name}")
        return remote_tip

    def ensure_branch(self, branch_name: str, *, no_warn_on_create: bool = False) -> str:
        require_text(branch_name, "Branch name")
        tip = self.get_branch(branch_name)
        if tip is None:
            message = f"Branch '{branch_name}' does not exist. Creating local branch."
            if no_warn_on_create:
                self.monitor.info(message)
            else:
                self.monitor.warn(message)
            git.create_branch(self.working_dir, branch_name)
            tip = self.branch_tip(branch_name)
        return tip

    def _auth(self, kind: CredentialKind) -> tuple[list[str], dict[str, str]]:
        credentials = self.key.credentials_provider(self.key.origin_url, None, kind)
        return git.credential_options(credentials)

    def merger_env(self) -> dict[str, str]:
        merger = git.config_signature(self.working_dir) or self.bot_signature
        return git.signature_env(merger, merger)

    def fetch_branches(self, origin_only: bool = True) -> bool:
        scope = self.origin if origin_only else "all remotes"
        with self.monitor.open_group(f"Fetching {scope} in repository '{self.display_path}'."):
            try:
                extra_args, env = self._auth(CredentialKind.READ)
                for remote in git.remote_names(self.working_dir):
                    if origin_only and remote != self.origin:
                        continue
                    if not origin_only:
                        self.monitor.info(f"Fetching remote '{remote}'.")
                    git.fetch(self.working_dir, remote, extra_args=extra_args, env=env)
                return True
            except OPERATION_ERRORS as exc:
                self.monitor.fatal("The following error need manual fix:", exc)
                return False

    def pull(self, favor: MergeFavor = MergeFavor.THEIRS) -> tuple[bool, bool]:
        """Fetch then merge the tracked branch. Returns ``(success, reload_needed)``."""

        branch = self.current_branch_name
        with self.monitor.open_group(f"Pulling '{self.display_path}' (branch '{branch}')."):
            if branch is None:
                self.monitor.error(f"Repository '{self.display_path}' is not on a branch (detached HEAD).")
                return False, False
            if not self.fetch_branches():
                return False, False
            try:
                if not self.check_clean_commit():
                    return False, False
                self.ensure_branch(branch)
                status = self._do_pull(branch, favor)
                if status is MergeStatus.CONFLICTS:
                    self.monitor.error("Merge conflicts occurred. Unable to merge changes from the remote.")
                    return False, False
                return True, status is not MergeStatus.UP_TO_DATE
            except OPERATION_ERRORS as exc:
                self.monitor.fatal("Unexpected error. Manual fix should be required.", exc)
                return False, True

    def _do_pull(self, branch: str, favor: MergeFavor) -> MergeStatus:
        tracked = git.upstream(self.working_dir, branch)
        if tracked is None or git.resolve_commit(self.working_dir, tracked) is None:
            if not git.remote_branches(self.working_dir).get(self.origin):
                self.monitor.trace(f"Remote '{self.origin}' has no branch yet: nothing to merge.")
            else:
                self.monitor.warn(
                    f"There is no tracking branch for the '{self.display_path}/{branch}' branch. "
                    "Skip pulling from the remote."
                )
            return MergeStatus.UP_TO_DATE
        return git.merge(
            self.working_dir,
            tracked,
            favor=favor,
            message=f"Merge branch '{tracked}' into {branch}",
            env=self.merger_env(),
        )

    def checkout(
        self,
        branch_name: str,
        *,
        skip_fetch: bool = False,
        skip_pull_merge: bool = False,
    ) -> tuple[bool, bool]:
        """Check out a branch. Returns ``(success, reload_needed)``."""

        require_text(branch_name, "Branch name")
        previous = self.current_branch_name
        if previous == branch_name:
            self.monitor.trace(f"Already on {branch_name}.")
            return True, False
        with self.monitor.open_group(f"Checking out branch '{branch_name}' in '{self.display_path}'."):
            if not skip_fetch and not self.fetch_branches():
                return False, False
            try:
                if self.get_branch(branch_name, log_error_missing=True) is None:
                    return False, False
                if not self.check_clean_commit():
                    return False, False
                self.monitor.info(f"Checking out {branch_name} (leaving {previous}).")
                git.checkout(self.working_dir, branch_name)
                if not self.on_new_current_branch.fire(self.monitor, branch_name):
                    self.monitor.error(f"Unable to switch to '{branch_name}'. Restoring '{previous}'.")
                    if previous is not None:
                        git.checkout(self.working_dir, previous)
                    return False, False
                if skip_pull_merge:
                    return True, True
                if self._do_pull(branch_name, MergeFavor.THEIRS) is MergeStatus.CONFLICTS:
                    self.monitor.error("Merge conflicts occurred. Unable to merge changes from the remote.")
                    return False, True
                return True, True
            except OPERATION_ERRORS as exc:
                self.monitor.fatal("Unexpected error. Manual fix should be required.", exc)
                return False, True

    def commit(self, message: str | None, behavior: CommitBehavior = CommitBehavior.CREATE_NEW) -> CommittingResult:
        if behavior is not CommitBehavior.CREATE_NEW and self.can_amend_commit:
            return self.amend_commit(message_editor(behavior, message))
        text = require_text(message, "Commit message")
        group = f"Committing changes in '{self.display_path}' (branch '{self.current_branch_name}')."
        with self.monitor.open_group(group):
            try:
                git.stage_all(self.working_dir)
                if not git.has_staged_changes(self.working_dir):
                    self.monitor.info("Working folder is up-to-date.")
                    return CommittingResult.NO_CHANGES
            except OPERATION_ERRORS as exc:
                self.monitor.error("Unable to stage changes.", exc)
                return CommittingResult.ERROR
            return self._do_commit(text, datetime.now(timezone.utc).astimezone(), amend=False)

    def amend_commit(
        self,
        edit_message: MessageEditor | None = None,
        edit_date: DateEditor | None = None,
        skip_if_nothing_to_commit: bool = True,
    ) -> CommittingResult:
        """Rewrite the current commit with the working folder changes.

        ``edit_message`` and ``edit_date`` receive the current values; returning an
        empty message or ``None`` cancels the amend. Raises :class:`InvalidStateError`
        when the current commit cannot be amended.
        """

        if not self.can_amend_commit:
            raise InvalidStateError(
                f"Cannot amend the current commit of '{self.display_path}': it is already on the remote."
            )
        head = self.head_commit()
        group = f"Amending Commit in '{self.display_path}' (branch '{self.current_branch_name}')."
        with self.monitor.open_group(group):
            message = head.message
            if edit_message is not None:
                message = edit_message(message)
            if not message or not message.strip():
                self.monitor.info("Canceled by empty message.")
                return CommittingResult.ERROR
            initial_date = head.committer_date
            date: datetime | None = initial_date
            if edit_date is not None:
                date = edit_date(initial_date)
            if date is None:
                self.monitor.info("Canceled by null date.")
                return CommittingResult.ERROR
            try:
                git.stage_all(self.working_dir)
                has_change = git.has_staged_changes(self.working_dir)
            except OPERATION_ERRORS as exc:
                self.monitor.error("Unable to stage changes.", exc)
                return CommittingResult.ERROR
            if has_change or not skip_if_nothing_to_commit:
                if edit_date is None:
                    date = self._next_commit_date(initial_date)
            else:
                message_update = message != head.message
                date_update = date != initial_date
                if message_update and date_update:
                    self.monitor.info("Updating message and date.")
                elif date_update:
                    self.monitor.info("Updating commit date.")
                elif message_update:
                    self.monitor.info("Only updating message.")
                else:
                    self.monitor.info("Working folder is up-to-date.")
                    return CommittingResult.NO_CHANGES
            return self._do_commit(message, date, amend=True, head=head)

    def _next_commit_date(self, initial_date: datetime) -> datetime:
        min_date = initial_date + timedelta(seconds=1)
        date = datetime.now(timezone.utc).astimezone()
        if date < min_date:
            self.monitor.trace("Adjusted commit date to the next second.")
            date = min_date
        return date

    def _do_commit(
        self,
        message: str,
        date: datetime,
        *,
        amend: bool,
        head: CommitInfo | None = None,
    ) -> CommittingResult:
        with self.monitor.open_group("Committing changes...", level=TRACE):
            try:
                committer = self.bot_signature
                # On amend git keeps the author of the amended commit.
                author = git.config_signature(self.working_dir) or committer
                env = git.signature_env(author, committer, date)
                if amend and head is not None and self._amend_is_empty(head):
                    return self._collapse_empty_amend(message, env, head)
                git.commit(self.working_dir, message, env=env, amend=amend)
                self.monitor.trace("Committed changes.")
                return CommittingResult.AMENDED if amend else CommittingResult.COMMITTED
            except OPERATION_ERRORS as exc:
                self.monitor.error("Commit failed.", exc)
                return CommittingResult.ERROR

    def _amend_is_empty(self, head: CommitInfo) -> bool:
        if not head.parents:
            return False
        return git.write_tree(self.working_dir) == git.tree_of(self.working_dir, head.parents[0])

    def _collapse_empty_amend(self, message: str, env: dict[str, str], head: CommitInfo) -> CommittingResult:
        if head.is_merge:
            raise InvalidStateError(
                f"Amending merge commit {head.sha[:12]} would leave it without changes. "
                "Amending merge commits this way is not supported."
            )
        self.monitor.trace("No actual changes. Resetting branch to parent commit.")
        parent = head.parents[0]
        git.reset_hard(self.working_dir, parent)
        sha = git.commit(self.working_dir, message, env=env, amend=True, allow_empty=True)
        return CommittingResult.NO_CHANGES if sha == parent else CommittingResult.AMENDED

    def push(self, branch_name: str | None = None) -> bool:
        branch_name = branch_name or self.current_branch_name
        require_text(branch_name, "Branch name")
        with self.monitor.open_group(f"Pushing '{self.display_path}' (branch '{branch_name}') to {self.origin}."):
            try:
                extra_args, env = self._auth(CredentialKind.WRITE)
                if self.branch_tip(branch_name) is None:
                    self.monitor.error(f"Unable to find branch '{branch_name}'.")
                    return False
                created = False
                if git.upstream(self.working_dir, branch_name) is None:
                    self.monitor.warn(
                        f"Branch '{branch_name}' does not exist on the remote. "
                        f"Creating the remote branch on '{self.origin}'."
                    )
                    git.set_upstream(self.working_dir, branch_name, self.origin, f"refs/heads/{branch_name}")
                    created = True
                ahead = self.commits_ahead(branch_name)
                if not created and (ahead if ahead is not None else 1) == 0:
                    self.monitor.info("Remote branch is on the same commit. Push skipped.")
                    return True
                proc = git.push(self.working_dir, self.origin, branch_name, extra_args=extra_args, env=env)
                rejected = [line for line in proc.stdout.splitlines() if line.startswith("!")]
                if rejected or proc.returncode != 0:
                    details = "\n".join(rejected) or proc.stderr.strip()
                    raise PushRejectedError(f"Error while pushing '{branch_name}': {details}")
                return True
            except OPERATION_ERRORS as exc:
                self.monitor.error("Push failed. This requires a manual fix.", exc)
                return False

    def reset_branch_state(self, branch_name: str, commit_sha: str | None) -> bool:
        """Restore ``branch_name`` to ``commit_sha``, or delete it when no sha is given."""

        require_text(branch_name, "Branch name")
        delete = not commit_sha or not commit_sha.strip()
        title = (
            f"Restoring {self.display_path} '{branch_name}' state (removing it)."
            if delete
            else f"Restoring {self.display_path} '{branch_name}' state."
        )
        with self.monitor.open_group(title):
            try:
                current = self.current_branch_name
                tip = self.branch_tip(branch_name)
                if delete:
                    if branch_name == current:
                        self.monitor.error(f"Cannot delete the branch {branch_name} since it is the current one.")
                        return False
                    if tip is None:
                        self.monitor.info(f"Branch '{branch_name}' does not exist.")
                        return True
                    git.delete_branch(self.working_dir, branch_name)
                    self.monitor.info(f"Branch '{branch_name}' has been removed.")
                    return True
                if tip is None:
                    self.monitor.warn(f"Branch '{branch_name}' not found.")
                    return True
                if tip == commit_sha:
                    self.monitor.info(f"Branch '{branch_name}' is already on restored state.")
                    return True
                if branch_name == current:
                    git.reset_hard(self.working_dir, commit_sha)
                else:
                    git.force_branch(self.working_dir, branch_name, commit_sha)
                self.monitor.info(f"Branch '{branch_name}' has been restored to {commit_sha}.")
                return True
            except OPERATION_ERRORS as exc:
                self.monitor.error(f"Unable to restore branch '{branch_name}'.", exc)
                return False

    def ensure_first_commit(self) -> bool:
        """Create an empty initial commit in a repository without any commit.

        Returns ``True`` when the commit has been created.
        """

        if git.count_commits(self.working_dir) > 0:
            return False
        self.monitor.info(f"Repository '{self.display_path}' has no commit. Creating an initial commit.")
        bot = self.bot_signature
        env = git.signature_env(bot, bot, datetime.now(timezone.utc).astimezone())
        git.commit(self.working_dir, INITIAL_COMMIT_MESSAGE, env=env, allow_empty=True)
        return True


__all__ = [
    "GitPlumbing",
    "MessageEditor",
    "DateEditor",
    "INITIAL_COMMIT_MESSAGE",
    "OPERATION_ERRORS",
    "message_editor",
    "require_text",
]
