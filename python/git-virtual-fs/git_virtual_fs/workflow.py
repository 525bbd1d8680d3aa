"""Promotion workflow between the local, develop and master branches."""

from __future__ import annotations

import logging
from typing import Callable

from . import git
from .config import WorldBranches
from .events import EventHook
from .models import CommittingResult, MergeFavor, MergeStatus
from .monitor import Monitor
from .plugins import PluginManager
from .plumbing import OPERATION_ERRORS, GitPlumbing
from .tree import HEAD


class BranchWorkflow:
    """Moves a working folder between its ``local``, ``develop`` and ``master`` branches.

    The current position is read from the repository on each call. Switching to
    and from the local branch raises :attr:`on_local_branch_entered` and
    :attr:`on_local_branch_leaving`; subscribers returning ``False`` abort the
    switch. :attr:`on_reset` is raised by every reset attempt.
    """

    def __init__(
        self,
        plumbing: GitPlumbing,
        *,
        plugins: PluginManager,
        delete_file: Callable[[str], bool],
        owner: object | None = None,
    ):
        self.plumbing = plumbing
        self.plugins = plugins
        self.owner = owner if owner is not None else self
        self._delete_file = delete_file
        self.on_reset = EventHook("OnReset")
        self.on_local_branch_entered = EventHook("OnLocalBranchEntered")
        self.on_local_branch_leaving = EventHook("OnLocalBranchLeaving")

    @property
    def branches(self) -> WorldBranches:
        return self.plumbing.settings.branches

    @property
    def monitor(self) -> Monitor:
        return self.plumbing.monitor

    def switch_develop_to_local(self, auto_commit: bool = True) -> bool:
        p, m = self.plumbing, self.monitor
        local, develop = self.branches.local, self.branches.develop
        with m.open_group(f"Switching '{p.display_path}' to branch '{local}'."):
            try:
                if p.branch_tip(develop) is None:
                    m.error(f"Unable to find branch '{develop}'.")
                    return False
                current = p.current_branch_name
                if current != local:
                    if current != develop:
                        m.error(f"Expected current branch to be '{develop}' or '{local}'.")
                        return False
                    if auto_commit:
                        if p.commit(f"Switching to {local} branch.") is CommittingResult.ERROR:
                            return False
                    elif not p.check_clean_commit():
                        return False
                    favor = MergeFavor.NORMAL
                    if p.branch_tip(local) is None:
                        m.info(f"Creating the {local} branch.")
                        git.create_branch(p.working_dir, local)
                    else:
                        m.info(f"Coming from {develop}: favors '{develop}' file changes during merge.")
                        favor = MergeFavor.THEIRS
                    git.checkout(p.working_dir, local)
                    if not p.on_new_current_branch.fire(m, local):
                        return False
                else:
                    m.info(f"Already on {local}: favors '{local}' file changes during merge.")
                    favor = MergeFavor.OURS
                    self._ensure_current_branch_plugins()
                status = self._merge(develop, local, favor)
                if status is MergeStatus.CONFLICTS:
                    return False
                if not self._raise_local_branch_event(entering=True):
                    return False
                if p.can_amend_commit and p.amend_commit() is CommittingResult.ERROR:
                    return False
                if status is not MergeStatus.UP_TO_DATE:
                    m.info(f"Success (with merge from '{develop}').")
                return True
            except OPERATION_ERRORS as exc:
                m.error(f"Unable to switch to '{local}'.", exc)
                return False

    def switch_local_to_develop(self) -> bool:
        p, m = self.plumbing, self.monitor
        local, develop = self.branches.local, self.branches.develop
        with m.open_group(f"Switching '{p.display_path}' to branch '{develop}'."):
            try:
                if p.branch_tip(develop) is None:
                    m.error(f"Unable to find '{develop}' branch.")
                    return False
                if p.branch_tip(local) is None:
                    m.error(f"Unable to find '{local}' branch.")
                    return False
                current = p.current_branch_name
                if current not in (local, develop):
                    m.error(f"Must be on '{local}' or '{develop}' branch.")
                    return False
                if current == local:
                    if not self._raise_local_branch_event(entering=False):
                        return False
                    if p.can_amend_commit and p.amend_commit() is CommittingResult.ERROR:
                        return False
                    git.checkout(p.working_dir, develop)
                    if not p.on_new_current_branch.fire(m, develop):
                        return False
                    m.info(f"Coming from {local}: favors '{local}' file changes during merge.")
                    favor = MergeFavor.THEIRS
                else:
                    if not p.check_clean_commit():
                        return False
                    self._ensure_current_branch_plugins()
                    m.info(f"Already on {develop}: favors '{develop}' file changes during merge.")
                    favor = MergeFavor.OURS
                status = self._merge(local, develop, favor)
                if status is MergeStatus.CONFLICTS:
                    return False
                if status is not MergeStatus.UP_TO_DATE:
                    m.info(f"Success (with merge from '{local}').")
                return True
            except OPERATION_ERRORS as exc:
                m.error(f"Unable to switch to '{develop}'.", exc)
                return False

    def switch_develop_to_master(self) -> bool:
        p, m = self.plumbing, self.monitor
        develop, master = self.branches.develop, self.branches.master
        with m.open_group(f"Switching '{p.display_path}' to branch '{master}'."):
            try:
                if p.branch_tip(develop) is None:
                    m.error(f"Unable to find branch '{develop}'.")
                    return False
                current = p.current_branch_name
                if current != master:
                    if current != develop:
                        m.error(f"Expected current branch to be '{develop}' or '{master}'.")
                        return False
                    if not p.check_clean_commit():
                        return False
                    if p.branch_tip(master) is None:
                        m.info(f"Creating the {master} branch.")
                        git.create_branch(p.working_dir, master, develop)
                    git.checkout(p.working_dir, master)
                    if not p.on_new_current_branch.fire(m, master):
                        return False
                else:
                    m.trace(f"Already on {master}.")
                status = self._merge(develop, master, MergeFavor.NORMAL)
                if status is MergeStatus.CONFLICTS:
                    return False
                if status is not MergeStatus.UP_TO_DATE:
                    m.info(f"Success (with merge from '{develop}').")
                return True
            except OPERATION_ERRORS as exc:
                m.error(f"Unable to switch to '{master}'.", exc)
                return False

    def switch_master_to_develop(self) -> bool:
        p, m = self.plumbing, self.monitor
        develop, master = self.branches.develop, self.branches.master
        with m.open_group(f"Switching '{p.display_path}' to branch '{develop}'."):
            try:
                if p.branch_tip(develop) is None:
                    m.error(f"Unable to find '{develop}' branch.")
                    return False
                current = p.current_branch_name
                if current not in (master, develop):
                    m.error(f"Must be on '{master}' or '{develop}' branch.")
                    return False
                if current == master:
                    if not p.check_clean_commit():
                        return False
                    git.checkout(p.working_dir, develop)
                    if not p.on_new_current_branch.fire(m, develop):
                        return False
                return True
            except OPERATION_ERRORS as exc:
                m.error(f"Unable to switch to '{develop}'.", exc)
                return False

    def reset(self, git_reset_hard: bool = False) -> bool:
        if git_reset_hard:
            return self.reset_hard()
        p, m = self.plumbing, self.monitor
        with m.open_group(f"Soft reset '{p.display_path}' (branch '{p.current_branch_name}')."):
            self.on_reset.fire(m, self.owner)
            return True

    def reset_hard(self) -> bool:
        """Discard every change of the working folder, untracked files included."""

        p, m = self.plumbing, self.monitor
        current = p.current_branch_name
        with m.open_group(f"Reset --hard changes in '{p.display_path}' (branch '{current}')."):
            try:
                git.reset_hard(p.working_dir)
                untracked = git.untracked_files(p.working_dir)
                success = True
                if untracked:
                    with m.open_group(f"Attempting to delete {len(untracked)} untracked files.", level=logging.WARNING):
                        for file_path in untracked:
                            if not self._delete_file(f"{p.display_path}/{HEAD}/{file_path}"):
                                success = False
                return success
            except OPERATION_ERRORS as exc:
                m.error("Reset failed.", exc)
                return False
            finally:
                self.on_reset.fire(m, self.owner)

    def _merge(self, source: str, target: str, favor: MergeFavor) -> MergeStatus:
        p = self.plumbing
        status = git.merge(
            p.working_dir,
            source,
            favor=favor,
            no_ff=True,
            message=f"Merge branch '{source}' into {target}",
            env=p.merger_env(),
        )
        if status is MergeStatus.CONFLICTS:
            self.monitor.error(f"Merge failed from '{source}' into '{target}': conflicts must be manually resolved.")
        return status

    def _ensure_current_branch_plugins(self) -> None:
        current = self.plumbing.current_branch_name
        if current is not None:
            self.plugins.ensure_plugins(self.monitor, current)

    def _raise_local_branch_event(self, entering: bool) -> bool:
        if not self.plugins.ensure_plugins(self.monitor, self.branches.local):
            return False
        hook = self.on_local_branch_entered if entering else self.on_local_branch_leaving
        return hook.fire(self.monitor, self.owner)


__all__ = ["BranchWorkflow"]
