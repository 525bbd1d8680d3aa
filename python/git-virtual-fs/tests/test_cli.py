"""Tests for the command line helpers and commands."""

from __future__ import annotations

import unittest

import typer
from typer.testing import CliRunner

from git_virtual_fs import __version__
from git_virtual_fs.cli import _parse_root, app
from git_virtual_fs.interactive import branch_choices

from support import RepositorySandbox


class ParseRootTests(unittest.TestCase):
    def test_parses_name_and_prefixes(self) -> None:
        root = _parse_root("src=src/, lib/")

        self.assertEqual(root.name, "src")
        self.assertEqual(root.paths, ("src/", "lib/"))

    def test_rejects_malformed_roots(self) -> None:
        for value in ("src", "=src/", "src="):
            with self.subTest(value=value):
                with self.assertRaises(typer.BadParameter):
                    _parse_root(value)


class BranchChoicesTests(unittest.TestCase):
    def test_local_branches_first_then_remote_only(self) -> None:
        choices = branch_choices(["local", "develop"], ["develop", "feature"], current="develop")

        self.assertEqual([choice.value for choice in choices], ["develop", "local", "feature"])
        self.assertEqual(choices[0].name, "develop (current)")
        self.assertEqual(choices[2].name, "feature (remote)")


class CommandTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = RepositorySandbox()
        self.addCleanup(self.sandbox.cleanup)
        self.sandbox.seed({"README.md": "hello\n", "src/app.txt": "v1\n"})
        _, self.repository = self.sandbox.open_repository()
        self.runner = CliRunner()

    def invoke(self, *args: str):
        return self.runner.invoke(app, ["--repo", str(self.repository.working_dir), "--public", *args])

    def test_status(self) -> None:
        result = self.invoke("status")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("develop", result.output)

    def test_cat_reads_branch_snapshots(self) -> None:
        result = self.invoke("cat", "remotes/origin/develop/src/app.txt")

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(result.output, "v1\n")

    def test_cat_missing_file_fails(self) -> None:
        result = self.invoke("cat", "head/missing.txt")

        self.assertEqual(result.exit_code, 1)

    def test_checkout_current_branch(self) -> None:
        result = self.invoke("checkout", "develop")

        self.assertEqual(result.exit_code, 0, result.output)

    def test_commit_with_unknown_amend_mode_fails(self) -> None:
        result = self.invoke("commit", "-m", "x", "--amend", "sideways")

        self.assertEqual(result.exit_code, 1)

    def test_version(self) -> None:
        result = self.runner.invoke(app, ["--version"])

        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.output.strip(), __version__)

    def test_not_a_repository(self) -> None:
        result = self.runner.invoke(app, ["--repo", str(self.sandbox.workspace), "status"])

        self.assertEqual(result.exit_code, 1)


if __name__ == "__main__":
    unittest.main()
