"""Tests for branch, commit, pull and push operations."""

from __future__ import annotations

import unittest

from git_virtual_fs import git
from git_virtual_fs.exceptions import InvalidStateError, ValidationError
from git_virtual_fs.models import CommitBehavior, CommittingResult, MergeFavor
from git_virtual_fs.plumbing import INITIAL_COMMIT_MESSAGE, message_editor

from support import RepositorySandbox, commit_files, write_files


class InitialCommitTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = RepositorySandbox()
        self.addCleanup(self.sandbox.cleanup)

    def test_empty_remote_gets_a_single_initial_commit(self) -> None:
        _, repository = self.sandbox.open_repository()

        self.assertEqual(git.count_commits(repository.working_dir), 1)
        self.assertEqual(repository.current_branch_name, "develop")
        head = repository.plumbing.head_commit()
        self.assertEqual(head.message, INITIAL_COMMIT_MESSAGE)
        self.assertEqual(head.committer.name, "CKli")

        _, reopened = self.sandbox.open_repository()

        self.assertEqual(git.count_commits(reopened.working_dir), 1)
        self.assertEqual(reopened.plumbing.head_commit().sha, head.sha)
        self.assertFalse(reopened.plumbing.ensure_first_commit())

    def test_pull_on_a_remote_without_commits_succeeds(self) -> None:
        _, repository = self.sandbox.open_repository()

        self.assertEqual(repository.pull(), (True, False))
        self.assertEqual(git.count_commits(repository.working_dir), 1)
        self.assertEqual(repository.current_branch_name, "develop")


class CommitTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = RepositorySandbox()
        self.addCleanup(self.sandbox.cleanup)
        self.seed_sha = self.sandbox.seed({"README.md": "hello\n"})
        _, self.repository = self.sandbox.open_repository()
        self.plumbing = self.repository.plumbing

    def test_commit_on_clean_tree_returns_no_changes(self) -> None:
        result = self.plumbing.commit("Nothing to do.")

        self.assertIs(result, CommittingResult.NO_CHANGES)
        self.assertEqual(self.plumbing.head_commit().sha, self.seed_sha)

    def test_commit_creates_a_bot_commit(self) -> None:
        write_files(self.repository.working_dir, {"src/app.txt": "v1\n"})

        result = self.plumbing.commit("Add app.")

        self.assertIs(result, CommittingResult.COMMITTED)
        head = self.plumbing.head_commit()
        self.assertEqual(head.parents, (self.seed_sha,))
        self.assertEqual(head.message, "Add app.")
        self.assertEqual(head.committer.name, "CKli")
        self.assertEqual(head.author.name, "Test User")
        self.assertFalse(self.plumbing.is_dirty)
        self.assertEqual(self.plumbing.commits_ahead(), 1)

    def test_commit_requires_a_message(self) -> None:
        with self.assertRaises(ValidationError):
            self.plumbing.commit("  ")

    def test_amend_is_illegal_on_a_pushed_commit(self) -> None:
        write_files(self.repository.working_dir, {"new.txt": "x\n"})

        self.assertFalse(self.plumbing.can_amend_commit)
        with self.assertRaises(InvalidStateError):
            self.plumbing.amend_commit()
        self.assertEqual(self.plumbing.head_commit().sha, self.seed_sha)
        self.assertEqual(git.count_commits(self.repository.working_dir), 1)

    def test_amend_behavior_falls_back_to_a_new_commit_when_illegal(self) -> None:
        write_files(self.repository.working_dir, {"new.txt": "x\n"})

        result = self.plumbing.commit("Fresh commit.", CommitBehavior.AMEND_KEEP_MESSAGE)

        self.assertIs(result, CommittingResult.COMMITTED)
        self.assertEqual(self.plumbing.head_commit().parents, (self.seed_sha,))

    def test_amend_rewrites_the_unpushed_commit(self) -> None:
        write_files(self.repository.working_dir, {"a.txt": "1\n"})
        self.plumbing.commit("Add a.")
        first = self.plumbing.head_commit()
        write_files(self.repository.working_dir, {"b.txt": "2\n"})

        result = self.plumbing.commit("More.", CommitBehavior.AMEND_APPEND_MESSAGE)

        self.assertIs(result, CommittingResult.AMENDED)
        head = self.plumbing.head_commit()
        self.assertNotEqual(head.sha, first.sha)
        self.assertEqual(head.parents, (self.seed_sha,))
        self.assertEqual(head.message, "More.(...)\nAdd a.")
        self.assertGreater(head.committer_date, first.committer_date)
        self.assertEqual(self.plumbing.commits_ahead(), 1)

    def test_amend_without_changes_returns_no_changes(self) -> None:
        write_files(self.repository.working_dir, {"a.txt": "1\n"})
        self.plumbing.commit("Add a.")
        before = self.plumbing.head_commit().sha

        result = self.plumbing.amend_commit()

        self.assertIs(result, CommittingResult.NO_CHANGES)
        self.assertEqual(self.plumbing.head_commit().sha, before)

    def test_amend_message_only(self) -> None:
        write_files(self.repository.working_dir, {"a.txt": "1\n"})
        self.plumbing.commit("Add a.")

        result = self.plumbing.commit("Add a file.", CommitBehavior.AMEND_OVERWRITE_MESSAGE)

        self.assertIs(result, CommittingResult.AMENDED)
        self.assertEqual(self.plumbing.head_commit().message, "Add a file.")

    def test_amend_canceled_by_empty_message_or_null_date(self) -> None:
        write_files(self.repository.working_dir, {"a.txt": "1\n"})
        self.plumbing.commit("Add a.")
        before = self.plumbing.head_commit().sha

        self.assertIs(self.plumbing.amend_commit(edit_message=lambda _: ""), CommittingResult.ERROR)
        self.assertIs(self.plumbing.amend_commit(edit_date=lambda _: None), CommittingResult.ERROR)
        self.assertEqual(self.plumbing.head_commit().sha, before)

    def test_amend_that_reverts_every_change_collapses_onto_the_parent(self) -> None:
        write_files(self.repository.working_dir, {"a.txt": "1\n"})
        self.plumbing.commit("Add a.")
        (self.repository.working_dir / "a.txt").unlink()

        result = self.plumbing.amend_commit()

        self.assertIn(result, (CommittingResult.AMENDED, CommittingResult.NO_CHANGES))
        self.assertFalse((self.repository.working_dir / "a.txt").exists())
        self.assertEqual(
            git.tree_of(self.repository.working_dir, "HEAD"),
            git.tree_of(self.repository.working_dir, self.seed_sha),
        )

    def test_message_editors(self) -> None:
        self.assertEqual(message_editor(CommitBehavior.AMEND_KEEP_MESSAGE, None)("old"), "old")
        self.assertEqual(message_editor(CommitBehavior.AMEND_PREPEND_MESSAGE, "new")("old"), "old (...)\nnew")
        self.assertEqual(message_editor(CommitBehavior.AMEND_OVERWRITE_MESSAGE, "new")("old"), "new")
        with self.assertRaises(ValidationError):
            message_editor(CommitBehavior.AMEND_APPEND_MESSAGE, "")

    def test_amend_collapsing_a_merge_commit_is_an_error(self) -> None:
        working_dir = self.repository.working_dir
        git.create_branch(working_dir, "topic")
        git.checkout(working_dir, "topic")
        commit_files(working_dir, {"topic.txt": "t\n"}, "Topic.")
        git.checkout(working_dir, "develop")
        git.merge(working_dir, "topic", no_ff=True, message="Merge topic.")
        merge = self.plumbing.head_commit()
        self.assertTrue(merge.is_merge)
        (working_dir / "topic.txt").unlink()

        result = self.plumbing.amend_commit()

        self.assertIs(result, CommittingResult.ERROR)
        self.assertEqual(self.plumbing.head_commit().sha, merge.sha)


class RemoteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = RepositorySandbox()
        self.addCleanup(self.sandbox.cleanup)
        self.seed_sha = self.sandbox.seed({"README.md": "hello\n"})
        self.sandbox.seed({"feature.txt": "f\n"}, "Feature.", branch="feature")
        _, self.repository = self.sandbox.open_repository()
        self.plumbing = self.repository.plumbing

    def test_checkout_of_current_branch_is_a_no_op(self) -> None:
        self.assertEqual(self.plumbing.checkout("develop"), (True, False))

    def test_checkout_creates_a_tracking_branch_from_origin(self) -> None:
        ok, reload_needed = self.plumbing.checkout("feature")

        self.assertTrue(ok)
        self.assertTrue(reload_needed)
        self.assertEqual(self.repository.current_branch_name, "feature")
        self.assertEqual(git.upstream(self.repository.working_dir, "feature"), "origin/feature")
        self.assertTrue((self.repository.working_dir / "feature.txt").exists())

    def test_checkout_of_a_missing_branch_fails(self) -> None:
        self.assertEqual(self.plumbing.checkout("nope", skip_fetch=True), (False, False))
        self.assertEqual(self.repository.current_branch_name, "develop")

    def test_checkout_is_rolled_back_when_the_new_branch_hook_fails(self) -> None:
        self.plumbing.on_new_current_branch.subscribe(lambda monitor, branch: branch != "feature")

        ok, _ = self.plumbing.checkout("feature")

        self.assertFalse(ok)
        self.assertEqual(self.repository.current_branch_name, "develop")

    def test_checkout_refuses_a_dirty_working_folder(self) -> None:
        write_files(self.repository.working_dir, {"README.md": "changed\n"})

        ok, _ = self.plumbing.checkout("feature", skip_fetch=True)

        self.assertFalse(ok)
        self.assertEqual(self.repository.current_branch_name, "develop")

    def test_pull_merges_remote_commits(self) -> None:
        remote_sha = self.sandbox.seed({"README.md": "hello again\n"}, "Update readme.")

        ok, reload_needed = self.plumbing.pull()

        self.assertTrue(ok)
        self.assertTrue(reload_needed)
        self.assertEqual(self.plumbing.head_commit().sha, remote_sha)

        self.assertEqual(self.plumbing.pull(MergeFavor.THEIRS), (True, False))

    def test_pull_reports_conflicts_without_resolving(self) -> None:
        self.sandbox.seed({"README.md": "remote\n"}, "Remote change.")
        commit_files(self.repository.working_dir, {"README.md": "local\n"}, "Local change.")
        local_sha = self.plumbing.head_commit().sha

        ok, _ = self.plumbing.pull(MergeFavor.NORMAL)

        self.assertFalse(ok)
        self.assertEqual(self.plumbing.head_commit().sha, local_sha)
        self.assertFalse(self.plumbing.is_dirty)

    def test_push_sends_new_commits_and_skips_when_up_to_date(self) -> None:
        self.assertTrue(self.plumbing.push())

        write_files(self.repository.working_dir, {"pushed.txt": "p\n"})
        self.plumbing.commit("To push.")
        self.assertTrue(self.plumbing.push())

        head = self.plumbing.head_commit().sha
        remote_tip = git.run_git(["rev-parse", "refs/heads/develop"], cwd=self.sandbox.remote).stdout.strip()
        self.assertEqual(remote_tip, head)

    def test_push_creates_the_remote_branch(self) -> None:
        git.create_branch(self.repository.working_dir, "topic")

        self.assertTrue(self.plumbing.push("topic"))

        self.assertEqual(git.upstream(self.repository.working_dir, "topic"), "origin/topic")
        proc = git.run_git(["rev-parse", "--verify", "-q", "refs/heads/topic"], cwd=self.sandbox.remote)
        self.assertEqual(proc.stdout.strip(), self.seed_sha)

    def test_rejected_push_fails(self) -> None:
        self.sandbox.seed({"README.md": "remote\n"}, "Remote change.")
        write_files(self.repository.working_dir, {"local.txt": "l\n"})
        self.plumbing.commit("Local change.")

        self.assertFalse(self.plumbing.push())

    def test_ensure_branch_creates_missing_branches(self) -> None:
        tip = self.plumbing.ensure_branch("brand-new")

        self.assertEqual(tip, self.seed_sha)
        self.assertIsNone(git.upstream(self.repository.working_dir, "brand-new"))

    def test_reset_branch_state(self) -> None:
        write_files(self.repository.working_dir, {"a.txt": "1\n"})
        self.plumbing.commit("Add a.")
        git.create_branch(self.repository.working_dir, "old")

        self.assertTrue(self.plumbing.reset_branch_state("develop", self.seed_sha))
        self.assertEqual(self.plumbing.head_commit().sha, self.seed_sha)
        self.assertTrue(self.plumbing.reset_branch_state("old", ""))
        self.assertIsNone(self.plumbing.branch_tip("old"))
        self.assertFalse(self.plumbing.reset_branch_state("develop", None))


if __name__ == "__main__":
    unittest.main()
