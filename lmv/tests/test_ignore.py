import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from lmv.errors import ExternalToolUnavailable
from lmv.services.ignore import (
    GitIgnoreChecker,
    NullIgnoreChecker,
    apply_ignore_filter,
    filter_hidden,
    is_hidden_path,
)


class HiddenPathTests(unittest.TestCase):
    def test_any_dot_segment_is_hidden(self) -> None:
        self.assertTrue(is_hidden_path(".notes/a.md"))
        self.assertTrue(is_hidden_path("docs/.draft.md"))
        self.assertTrue(is_hidden_path("docs\\.cache\\x.md"))
        self.assertFalse(is_hidden_path("docs/a.md"))

    def test_relative_markers_are_not_hidden(self) -> None:
        self.assertFalse(is_hidden_path("./docs/a.md"))
        self.assertFalse(is_hidden_path("../docs/a.md"))

    def test_filter_hidden(self) -> None:
        paths = ["a.md", ".b.md", "c/.d/e.md"]
        self.assertEqual(filter_hidden(paths, include_hidden=False), ["a.md"])
        self.assertEqual(filter_hidden(paths, include_hidden=True), paths)


class GitIgnoreCheckerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(os.path.realpath(self._tmp.name))
        (self.root / "docs").mkdir()
        self.kept = self.root / "docs" / "a.md"
        self.dropped = self.root / "docs" / "b.md"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_batches_candidates_and_maps_results_back(self) -> None:
        checker = GitIgnoreChecker()
        run = AsyncMock(side_effect=[
            (0, f"{self.root}\n".encode()),
            (0, b"docs/b.md\0"),
        ])
        with patch("lmv.services.ignore.shutil.which", return_value="/usr/bin/git"), \
                patch.object(checker, "_run", run):
            ignored = await checker.ignored([self.kept, self.dropped], self.root)

        self.assertEqual(ignored, {self.dropped})
        self.assertEqual(run.await_count, 2)
        check_call = run.await_args_list[1]
        self.assertEqual(check_call.args[0], ["git", "check-ignore", "-z", "--stdin"])
        self.assertEqual(check_call.kwargs["stdin"], b"docs/a.md\0docs/b.md")

    async def test_exit_status_one_means_nothing_ignored(self) -> None:
        checker = GitIgnoreChecker()
        run = AsyncMock(side_effect=[(0, f"{self.root}\n".encode()), (1, b"")])
        with patch("lmv.services.ignore.shutil.which", return_value="/usr/bin/git"), \
                patch.object(checker, "_run", run):
            self.assertEqual(await checker.ignored([self.kept], self.root), set())

    async def test_missing_git_fails_open(self) -> None:
        checker = GitIgnoreChecker()
        with patch("lmv.services.ignore.shutil.which", return_value=None):
            self.assertEqual(await checker.ignored([self.kept], self.root), set())

    async def test_outside_repository_fails_open(self) -> None:
        checker = GitIgnoreChecker()
        run = AsyncMock(return_value=(128, b""))
        with patch("lmv.services.ignore.shutil.which", return_value="/usr/bin/git"), \
                patch.object(checker, "_run", run):
            self.assertEqual(await checker.ignored([self.kept], self.root), set())
        self.assertEqual(run.await_count, 1)

    async def test_check_ignore_failure_fails_open(self) -> None:
        checker = GitIgnoreChecker()
        run = AsyncMock(side_effect=[(0, f"{self.root}\n".encode()), ExternalToolUnavailable("boom")])
        with patch("lmv.services.ignore.shutil.which", return_value="/usr/bin/git"), \
                patch.object(checker, "_run", run):
            self.assertEqual(await checker.ignored([self.kept], self.root), set())

    async def test_apply_ignore_filter_keeps_order(self) -> None:
        class _Checker:
            async def ignored(self, paths, cwd):
                return {paths[1]}

        paths = [self.root / "c.md", self.dropped, self.kept]
        self.assertEqual(await apply_ignore_filter(paths, self.root, _Checker()), [self.root / "c.md", self.kept])
        self.assertEqual(await apply_ignore_filter(paths, self.root, NullIgnoreChecker()), paths)


if __name__ == "__main__":
    unittest.main()
