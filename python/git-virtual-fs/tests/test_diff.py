"""Tests for commit-range and date-range diffs."""

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from git_virtual_fs.config import BotIdentity
from git_virtual_fs.diff import OTHERS, DiffEngine, DiffRoot, DiffRootResult, ModifiedPath
from git_virtual_fs.exceptions import ValidationError

from support import RepositorySandbox, git, write_files

SRC = DiffRoot("src", ("src/",))


class DiffScenarioTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = RepositorySandbox()
        self.addCleanup(self.sandbox.cleanup)
        self.c1 = self.sandbox.seed({"src/a.txt": "a1\n", "src/old.txt": "old\n", "README.md": "r1\n"}, "C1.")
        seed = self.sandbox.path / "seed"
        git(seed, "tag", "v1")
        git(seed, "push", "--quiet", "origin", "v1")
        (seed / "src/old.txt").unlink()
        self.c2 = self.sandbox.seed({"src/a.txt": "a2\n", "README.md": "r2\n"}, "C2.")
        self.c3 = self.sandbox.seed({"src/b.txt": "b\n", "docs/guide.md": "g\n"}, "C3.")
        self.fs, self.repository = self.sandbox.open_repository()

    def test_c1_to_c3_buckets_changes_and_collects_messages(self) -> None:
        result = self.repository.diff("v1", self.c3, [SRC], with_messages=True)

        src = result.root("src")
        self.assertEqual(src.added, ["src/b.txt"])
        self.assertEqual(src.deleted, ["src/old.txt"])
        self.assertEqual(src.modified, [ModifiedPath("src/a.txt")])
        self.assertEqual(result.others.name, OTHERS)
        self.assertEqual(result.others.added, ["docs/guide.md"])
        self.assertEqual(result.others.modified, [ModifiedPath("README.md")])
        self.assertEqual(result.messages, ["C2.", "C3."])
        self.assertFalse(result.is_empty)

    def test_same_commit_returns_empty_buckets(self) -> None:
        roots = [SRC, DiffRoot("docs", ("docs/",))]

        result = self.repository.diff(self.c2, self.c2, roots, with_messages=True)

        self.assertIsNotNone(result)
        self.assertEqual([root.name for root in result.roots], ["src", "docs", OTHERS])
        self.assertTrue(result.is_empty)
        self.assertEqual(result.messages, [])

    def test_bot_commits_are_excluded_from_messages(self) -> None:
        write_files(self.repository.working_dir, {"src/bot.txt": "bot\n"})
        self.repository.commit("Automated change.")

        result = self.repository.diff_engine.diff_from(self.c2, [SRC], with_messages=True)

        self.assertEqual(result.messages, ["C3."])
        self.assertIn("src/bot.txt", result.root("src").added)

    def test_unknown_commit_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.repository.diff("no-such-ref", self.c3, [SRC])

    def test_date_range_covers_the_commits_in_the_window(self) -> None:
        engine = self.repository.diff_engine
        start = datetime.now(timezone.utc) - timedelta(days=1)
        end = datetime.now(timezone.utc) + timedelta(days=1)

        result = engine.diff_dates(start, end, [SRC], with_messages=True)

        self.assertIsNotNone(result)
        self.assertEqual(result.root("src").name, "src")

    def test_empty_date_window_returns_the_empty_result(self) -> None:
        start = datetime(2000, 1, 1, tzinfo=timezone.utc)

        result = self.repository.diff_engine.diff_dates(start, start + timedelta(days=1), [SRC])

        self.assertTrue(result.is_empty)
        self.assertIsNone(result.messages)

    def test_moves_across_roots_count_as_removed_and_added(self) -> None:
        working_dir = self.repository.working_dir
        git(working_dir, "mv", "src/b.txt", "docs/b.txt")
        git(working_dir, "mv", "src/a.txt", "src/renamed.txt")
        git(working_dir, "commit", "--quiet", "-m", "Move files.")
        docs = DiffRoot("docs", ("docs",))

        result = self.repository.diff(self.c3, "HEAD", [SRC, docs])

        self.assertEqual(result.root("src").deleted, ["src/b.txt"])
        self.assertEqual(result.root("src").added, [])
        self.assertEqual(result.root("src").modified, [ModifiedPath("src/renamed.txt", "src/a.txt")])
        self.assertEqual(result.root("docs").added, ["docs/b.txt"])
        self.assertEqual(result.root("docs").modified, [])


class DateValidationTests(unittest.TestCase):
    def test_dates_are_checked_before_any_repository_access(self) -> None:
        engine = DiffEngine(Path("/nonexistent/repository"), BotIdentity())
        when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        with self.assertRaises(ValidationError):
            engine.diff_dates(when, when, [SRC])
        with self.assertRaises(ValidationError):
            engine.diff_dates(when, when - timedelta(hours=1), [SRC])


class DiffRootTests(unittest.TestCase):
    def test_prefixes_match_whole_path_segments(self) -> None:
        for prefix in ("src", "src/"):
            with self.subTest(prefix=prefix):
                root = DiffRoot("src", (prefix,))
                self.assertTrue(root.matches("src/a.txt"))
                self.assertTrue(root.matches("src/deep/b.txt"))
                self.assertTrue(root.matches("src"))
                self.assertFalse(root.matches("srcx/a.txt"))
                self.assertFalse(root.matches("lib/src/a.txt"))


class RenderingTests(unittest.TestCase):
    def test_root_result_text(self) -> None:
        self.assertEqual(str(DiffRootResult("src")), "=> src (no change).")
        result = DiffRootResult(
            "src",
            added=["src/new.txt"],
            modified=[ModifiedPath("src/b.txt", "src/a.txt")],
            deleted=["src/gone.txt"],
        )
        self.assertEqual(
            str(result).splitlines(),
            [
                "=> src - 3 changes: 1 added, 1 modified, 1 removed:",
                "    + src/new.txt",
                "    ~ src/a.txt -> src/b.txt",
                "    - src/gone.txt",
            ],
        )


if __name__ == "__main__":
    unittest.main()
