import asyncio
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from watchfiles import Change

from lmv.services.discovery import DiscoveryOptions
from lmv.services.file_registry import FileRegistry
from lmv.services.file_watcher import (
    EVENT_CANDIDATE,
    EVENT_HIDDEN,
    EVENT_IGNORED,
    EVENT_TRACKED,
    EVENT_UNKNOWN,
    FileWatcher,
    WatchRoot,
    compute_watch_roots,
    glob_base,
)
from lmv.services.ignore import NullIgnoreChecker
from lmv.services.notifier import EventBroadcaster


class GlobBaseTests(unittest.TestCase):
    def test_static_prefix_and_recursion(self) -> None:
        self.assertEqual(glob_base("docs/*.md"), ("docs", False))
        self.assertEqual(glob_base("docs/**/*.md"), ("docs", True))
        self.assertEqual(glob_base("docs/*/x.md"), ("docs", True))
        self.assertEqual(glob_base("*.md"), (".", False))
        self.assertEqual(glob_base("/abs/notes/*.md"), ("/abs/notes", False))


class ComputeWatchRootsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        (self.root / "docs" / "sub").mkdir(parents=True)
        (self.root / "docs" / "a.md").write_text("a", encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_roots_per_input_kind(self) -> None:
        options = DiscoveryOptions(cwd=self.root)
        roots = compute_watch_roots(["docs/a.md", "docs/sub"], options)
        self.assertEqual(roots, [
            WatchRoot(path=self.root / "docs", recursive=False),
            WatchRoot(path=self.root / "docs" / "sub", recursive=False),
        ])

    def test_duplicate_roots_merge_recursion(self) -> None:
        options = DiscoveryOptions(cwd=self.root)
        roots = compute_watch_roots(["docs/a.md", "docs/**/*.md"], options)
        self.assertEqual(roots, [WatchRoot(path=self.root / "docs", recursive=True)])

    def test_roots_under_a_recursive_root_are_folded_in(self) -> None:
        (self.root / "docs" / "sub" / "x.md").write_text("x", encoding="utf-8")
        options = DiscoveryOptions(cwd=self.root, recursive=True)
        roots = compute_watch_roots(["docs", "docs/sub/x.md", "docs/sub"], options)
        self.assertEqual(roots, [WatchRoot(path=self.root / "docs", recursive=True)])

    def test_siblings_of_a_recursive_root_are_kept(self) -> None:
        (self.root / "notes").mkdir()
        options = DiscoveryOptions(cwd=self.root)
        roots = compute_watch_roots(["docs/**/*.md", "notes"], options)
        self.assertEqual(roots, [
            WatchRoot(path=self.root / "docs", recursive=True),
            WatchRoot(path=self.root / "notes", recursive=False),
        ])

    def test_directory_follows_recursive_option(self) -> None:
        options = DiscoveryOptions(cwd=self.root, recursive=True)
        self.assertEqual(compute_watch_roots(["docs"], options), [WatchRoot(path=self.root / "docs", recursive=True)])

    def test_missing_bases_are_skipped(self) -> None:
        options = DiscoveryOptions(cwd=self.root)
        self.assertEqual(compute_watch_roots(["nowhere/*.md"], options), [])


class HandleChangeTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.docs = self.root / "docs"
        self.docs.mkdir()
        self.tracked = self.docs / "a.md"
        self.tracked.write_text("a", encoding="utf-8")
        self.broadcaster = EventBroadcaster(queue_size=10, keepalive_seconds=1)
        self.events = self.broadcaster.subscribe()
        registry = FileRegistry(
            ["docs"],
            DiscoveryOptions(cwd=self.root),
            [self.tracked],
            self.broadcaster,
            ignore_checker=NullIgnoreChecker(),
        )
        self.registry = registry
        self.watcher = FileWatcher(registry)
        self.watch_root = WatchRoot(path=self.docs, recursive=False)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _drain(self) -> list:
        drained = []
        while not self.events.queue.empty():
            drained.append(self.events.queue.get_nowait())
        return drained

    def test_tracked_file_change_emits_one_file_changed(self) -> None:
        kind = self.watcher.handle_change(self.watch_root, str(self.tracked), Change.modified)
        self.assertEqual(kind, EVENT_TRACKED)
        events = self._drain()
        self.assertEqual([(e.type, e.path) for e in events], [("file-changed", "docs/a.md")])
        self.assertFalse(self.registry.pending_refresh)

    def test_new_markdown_file_flips_pending_once(self) -> None:
        first = self.watcher.handle_change(self.watch_root, str(self.docs / "new.md"), Change.added)
        second = self.watcher.handle_change(self.watch_root, str(self.docs / "other.md"), Change.added)
        self.assertEqual((first, second), (EVENT_CANDIDATE, EVENT_CANDIDATE))
        self.assertTrue(self.registry.pending_refresh)
        events = self._drain()
        self.assertEqual([(e.type, e.pendingRefresh) for e in events], [("filesystem-changed", True)])

    def test_hidden_and_non_markdown_changes_are_ignored(self) -> None:
        self.assertEqual(self.watcher.handle_change(self.watch_root, str(self.docs / ".draft.md")), EVENT_HIDDEN)
        self.assertEqual(self.watcher.handle_change(self.watch_root, str(self.docs / "notes.txt")), EVENT_IGNORED)
        self.assertEqual(
            self.watcher.handle_change(self.watch_root, str(self.docs / "gone.md"), Change.deleted),
            EVENT_IGNORED,
        )
        self.assertEqual(self._drain(), [])
        self.assertFalse(self.registry.pending_refresh)

    def test_unknown_path_marks_pending(self) -> None:
        self.assertEqual(self.watcher.handle_change(self.watch_root, None), EVENT_UNKNOWN)
        self.assertTrue(self.registry.pending_refresh)
        self.assertEqual(self.watcher.handle_change(self.watch_root, str(self.docs)), EVENT_UNKNOWN)
        self.assertEqual(len(self._drain()), 1)


class FileWatcherLifecycleTests(unittest.IsolatedAsyncioTestCase):
    async def test_start_without_roots_does_not_run(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            registry = FileRegistry(
                [],
                DiscoveryOptions(cwd=Path(tmpdir)),
                [],
                EventBroadcaster(),
                ignore_checker=NullIgnoreChecker(),
            )
            watcher = FileWatcher(registry)
            await watcher.start([])
            self.assertFalse(watcher.is_running)
            await watcher.stop()


class LiveWatcherTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(os.path.realpath(self._tmp.name))
        self.docs = self.root / "docs"
        (self.docs / "sub").mkdir(parents=True)
        self.tracked = self.docs / "a.md"
        self.tracked.write_text("a", encoding="utf-8")
        self.nested = self.docs / "sub" / "x.md"
        self.nested.write_text("x", encoding="utf-8")
        self.broadcaster = EventBroadcaster(queue_size=50, keepalive_seconds=1)
        self.events = self.broadcaster.subscribe()
        self.watcher = None

    async def asyncTearDown(self) -> None:
        if self.watcher is not None:
            await self.watcher.stop()
        self._tmp.cleanup()

    async def _start(self, inputs, recursive=False) -> FileWatcher:
        options = DiscoveryOptions(cwd=self.root, recursive=recursive)
        registry = FileRegistry(
            inputs,
            options,
            [self.tracked, self.nested],
            self.broadcaster,
            ignore_checker=NullIgnoreChecker(),
        )
        self.watcher = FileWatcher(registry)
        await self.watcher.start(compute_watch_roots(inputs, options))
        # Give the watch tasks time to register with the OS.
        await asyncio.sleep(0.5)
        return self.watcher

    async def _collect(self, timeout: float = 5.0, settle: float = 0.75) -> list:
        loop = asyncio.get_running_loop()
        collected = []
        deadline = loop.time() + timeout
        while not collected and loop.time() < deadline:
            try:
                collected.append(await asyncio.wait_for(self.events.queue.get(), 0.1))
            except asyncio.TimeoutError:
                pass
        settle_until = loop.time() + settle
        while loop.time() < settle_until:
            try:
                collected.append(await asyncio.wait_for(self.events.queue.get(), 0.1))
            except asyncio.TimeoutError:
                pass
        return collected

    async def test_tracked_file_change_is_published_once(self) -> None:
        watcher = await self._start(["docs"])
        self.assertTrue(watcher.is_running)
        self.tracked.write_text("changed", encoding="utf-8")
        events = await self._collect()
        self.assertEqual([(e.type, e.path) for e in events], [("file-changed", "docs/a.md")])

    async def test_new_markdown_file_sets_pending_once(self) -> None:
        await self._start(["docs"])
        (self.docs / "new.md").write_text("new", encoding="utf-8")
        events = await self._collect()
        self.assertEqual([(e.type, e.pendingRefresh) for e in events], [("filesystem-changed", True)])

    async def test_nested_inputs_publish_a_single_event(self) -> None:
        await self._start(["docs", "docs/sub/x.md"], recursive=True)
        self.nested.write_text("changed", encoding="utf-8")
        events = await self._collect()
        self.assertEqual([(e.type, e.path) for e in events], [("file-changed", "docs/sub/x.md")])

    async def test_stop_ends_the_watch_tasks(self) -> None:
        watcher = await self._start(["docs"])
        tasks = list(watcher._tasks)
        await watcher.stop()
        self.assertFalse(watcher.is_running)
        self.assertTrue(all(task.done() for task in tasks))

    async def test_failed_watch_clears_running_flag(self) -> None:
        def failing_awatch(*args, **kwargs):
            async def changes():
                raise RuntimeError("watch root removed")
                yield set()

            return changes()

        registry = FileRegistry(
            ["docs"],
            DiscoveryOptions(cwd=self.root),
            [self.tracked],
            self.broadcaster,
            ignore_checker=NullIgnoreChecker(),
        )
        self.watcher = FileWatcher(registry)
        with patch("lmv.services.file_watcher.awatch", failing_awatch):
            await self.watcher.start([WatchRoot(path=self.docs, recursive=False)])
            self.assertTrue(self.watcher.is_running)
            await asyncio.gather(*self.watcher._tasks)
        self.assertFalse(self.watcher.is_running)


if __name__ == "__main__":
    unittest.main()
