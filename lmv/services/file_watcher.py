"""File watcher service using watchfiles.

Watches the directories implied by the command-line inputs and turns raw
change events into notifications: a change to a tracked file becomes a
``file-changed`` event, a markdown file the registry does not know yet
flips the pending-refresh flag, anything else is ignored. Watch roots are
computed once at startup.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from watchfiles import Change, awatch

from lmv import config
from lmv.models import NotificationEvent
from lmv.observability import record_watch_event
from lmv.services.discovery import (
    DiscoveryOptions,
    absolute_path,
    expand_braces,
    is_glob_pattern,
    is_markdown_path,
)
from lmv.services.file_registry import FileRegistry
from lmv.services.ignore import is_hidden_path, to_posix

logger = logging.getLogger("lmv.watcher")

EVENT_UNKNOWN = "unknown"
EVENT_HIDDEN = "hidden"
EVENT_TRACKED = "tracked"
EVENT_CANDIDATE = "candidate"
EVENT_IGNORED = "ignored"


@dataclass(frozen=True)
class WatchRoot:
    path: Path
    recursive: bool


def glob_base(pattern: str) -> tuple[str, bool]:
    """Split a glob into its static directory prefix and a recursion flag.

    The pattern needs a recursive watch when the dynamic part spans more
    than one path segment or uses ``**``.
    """
    segments = to_posix(pattern).split("/")
    static: list[str] = []
    for segment in segments:
        if is_glob_pattern(segment):
            break
        static.append(segment)
    dynamic = segments[len(static):]

    if not dynamic:
        # No glob characters left (e.g. after brace expansion): a plain file.
        base = "/".join(static[:-1])
        return (base or ("/" if pattern.startswith("/") else ".")), False

    base = "/".join(static)
    if not base:
        base = "/" if static else "."
    recursive = len(dynamic) > 1 or any("**" in segment for segment in dynamic)
    return base, recursive


def compute_watch_roots(inputs: Sequence[str], options: DiscoveryOptions) -> list[WatchRoot]:
    """Minimal set of directories to watch; duplicate roots OR their recursion."""
    roots: dict[Path, bool] = {}

    def add(path: Path, recursive: bool) -> None:
        if not path.is_dir():
            logger.debug(f"Not watching {path}: not a directory")
            return
        roots[path] = roots.get(path, False) or recursive

    for token in inputs:
        if is_glob_pattern(token):
            for variant in expand_braces(token):
                base, recursive = glob_base(variant)
                add(absolute_path(options.cwd, base), recursive)
            continue

        path = absolute_path(options.cwd, token)
        if path.is_dir():
            add(path, options.recursive)
        else:
            add(path.parent, False)

    # A recursive root already covers everything beneath it.
    recursive_roots = [path for path, recursive in roots.items() if recursive]
    minimal: list[WatchRoot] = []
    for path, recursive in roots.items():
        if any(other != path and path.is_relative_to(other) for other in recursive_roots):
            logger.debug(f"Not watching {path}: covered by a recursive root")
            continue
        minimal.append(WatchRoot(path=path, recursive=recursive))
    return minimal


class FileWatcher:
    """Background watcher that classifies changes and notifies subscribers.

    Uses `watchfiles` (Rust-accelerated) for efficient watching.
    """

    def __init__(self, registry: FileRegistry):
        self.registry = registry
        self.roots: list[WatchRoot] = []
        self._tasks: list[asyncio.Task] = []
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False
        self._active_loops = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, roots: Sequence[WatchRoot]) -> None:
        """Start watching ``roots`` in background tasks."""
        if self._running:
            logger.warning("File watcher already running")
            return

        self.roots = list(roots)
        if not self.roots:
            logger.warning("No watch roots exist, watcher has nothing to monitor")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        for recursive in (True, False):
            group = [root for root in self.roots if root.recursive is recursive]
            if group:
                self._active_loops += 1
                self._tasks.append(asyncio.create_task(self._watch_loop(group, recursive)))
        logger.info(f"File watcher started for {len(self.roots)} root(s)")

    async def stop(self) -> None:
        """Stop the file watcher."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        self._active_loops = 0
        logger.info("File watcher stopped")

    async def _watch_loop(self, roots: list[WatchRoot], recursive: bool) -> None:
        """Watch one group of roots sharing a recursion flag."""
        logger.info(f"Watching {len(roots)} director{'ies' if len(roots) != 1 else 'y'} (recursive={recursive}): {[str(r.path) for r in roots]}")
        try:
            async for changes in awatch(
                *(root.path for root in roots),
                recursive=recursive,
                stop_event=self._stop_event,
                debounce=config.WATCH_DEBOUNCE_MS,
                force_polling=config.WATCH_FORCE_POLLING or None,
            ):
                if not self._running:
                    break
                for change, path_str in sorted(changes, key=lambda item: item[1]):
                    root = self._root_for(path_str, roots)
                    if root is None:
                        continue
                    try:
                        self.handle_change(root, path_str, change)
                    except Exception as e:
                        logger.error(f"Error handling change to {path_str}: {e}")
        except asyncio.CancelledError:
            logger.info("File watcher task cancelled")
        except Exception as e:
            logger.error(f"File watcher error: {e}")
        finally:
            self._active_loops -= 1
            if self._active_loops <= 0:
                self._running = False

    @staticmethod
    def _root_for(path_str: str, roots: Sequence[WatchRoot]) -> Optional[WatchRoot]:
        best: Optional[WatchRoot] = None
        for root in roots:
            root_text = str(root.path)
            if path_str == root_text or path_str.startswith(root_text.rstrip(os.sep) + os.sep):
                if best is None or len(root_text) > len(str(best.path)):
                    best = root
        return best

    def handle_change(self, root: WatchRoot, changed: Optional[str], change: Optional[Change] = None) -> str:
        """Classify one raw change under ``root`` and emit the matching notification."""
        if changed is None or Path(os.path.normpath(changed)) == root.path:
            self.registry.mark_pending_refresh()
            record_watch_event(EVENT_UNKNOWN)
            return EVENT_UNKNOWN

        path = Path(os.path.normpath(changed))
        if not self.registry.options.include_hidden and is_hidden_path(os.path.relpath(path, root.path)):
            record_watch_event(EVENT_HIDDEN)
            return EVENT_HIDDEN

        rel_path = self.registry.relative_path(path)
        if rel_path in self.registry:
            logger.debug(f"Tracked file changed: {rel_path}")
            self.registry.broadcaster.publish(NotificationEvent(type="file-changed", path=rel_path))
            record_watch_event(EVENT_TRACKED)
            return EVENT_TRACKED

        # A deletion of an unknown file cannot introduce anything new.
        if is_markdown_path(path) and change != Change.deleted:
            self.registry.mark_pending_refresh()
            record_watch_event(EVENT_CANDIDATE)
            return EVENT_CANDIDATE

        record_watch_event(EVENT_IGNORED)
        return EVENT_IGNORED
