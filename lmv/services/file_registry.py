"""Allowed file set: the server's single source of truth for which files exist.

The registry maps posix relative paths to absolute paths. It only grows:
a rescan merges newly discovered files in, and files that vanish from disk
stay listed with a per-file error instead of disappearing. All mutation
goes through ``rescan`` under one lock so concurrent rescans cannot
interleave their merges.
"""
from __future__ import annotations

import asyncio
import errno
import logging
import os
import stat
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from lmv.errors import AccessError, FileNotAllowedError
from lmv.models import ApiFile, NotificationEvent
from lmv.services.discovery import (
    DiscoveryOptions,
    absolute_path,
    discover_markdown_files,
    is_glob_pattern,
    relative_posix,
)
from lmv.services.ignore import IgnoreChecker
from lmv.services.notifier import EventBroadcaster

logger = logging.getLogger("lmv.files")


def normalize_request_path(raw: str | None) -> str:
    value = str(raw or "").replace("\\", "/").strip()
    while value.startswith("./"):
        value = value[2:]
    return value


def _describe_error(exc: OSError) -> str:
    if exc.errno == errno.ENOENT:
        return "File not found"
    if exc.errno in (errno.EACCES, errno.EPERM):
        return "Permission denied"
    return exc.strerror or str(exc)


def describe_file(rel_path: str, path: Path) -> ApiFile:
    """Stat ``path`` for the listing; failures become the entry's error."""
    name = rel_path.rsplit("/", 1)[-1]
    try:
        link_info = os.lstat(path)
    except OSError as exc:
        return ApiFile(path=rel_path, name=name, error=_describe_error(exc))

    is_symlink = stat.S_ISLNK(link_info.st_mode)
    try:
        info = os.stat(path) if is_symlink else link_info
    except OSError as exc:
        return ApiFile(path=rel_path, name=name, isSymlink=is_symlink, error=_describe_error(exc))

    error = None
    if stat.S_ISDIR(info.st_mode):
        error = "Not a file"
    elif not os.access(path, os.R_OK):
        error = "Permission denied"
    return ApiFile(
        path=rel_path,
        name=name,
        mtimeMs=info.st_mtime_ns / 1_000_000,
        isSymlink=is_symlink,
        error=error,
    )


class FileRegistry:
    """Owns the allowed file set and the pending-refresh flag."""

    def __init__(
        self,
        inputs: Sequence[str],
        options: DiscoveryOptions,
        files: Iterable[Path],
        broadcaster: EventBroadcaster,
        ignore_checker: Optional[IgnoreChecker] = None,
    ):
        self.inputs = tuple(inputs)
        self.options = options
        self.broadcaster = broadcaster
        self.ignore_checker = ignore_checker
        self._files: dict[str, Path] = {}
        self._pending_refresh = False
        self._change_generation = 0
        self._rescan_lock = asyncio.Lock()
        self._merge(files)
        self.single_file = self._is_single_file_mode()

    @property
    def cwd(self) -> Path:
        return self.options.cwd

    @property
    def files(self) -> Mapping[str, Path]:
        return MappingProxyType(self._files)

    @property
    def pending_refresh(self) -> bool:
        return self._pending_refresh

    def __contains__(self, rel_path: object) -> bool:
        return rel_path in self._files

    def __len__(self) -> int:
        return len(self._files)

    def _is_single_file_mode(self) -> bool:
        if len(self.inputs) != 1 or len(self._files) != 1:
            return False
        token = self.inputs[0]
        return not is_glob_pattern(token) and not absolute_path(self.cwd, token).is_dir()

    def _merge(self, paths: Iterable[Path]) -> list[str]:
        added: list[str] = []
        for path in paths:
            rel_path = relative_posix(path, self.cwd)
            if rel_path in self._files:
                continue
            self._files[rel_path] = path
            added.append(rel_path)
        return added

    def relative_path(self, path: Path) -> str:
        return relative_posix(path, self.cwd)

    def resolve(self, rel_path: Optional[str]) -> tuple[str, Path]:
        """Map a requested relative path to its absolute path.

        An empty request resolves to the sole file in single-file mode.

        Raises:
            ValueError: no path was given outside single-file mode.
            FileNotAllowedError: the path is not in the allowed file set.
        """
        requested = normalize_request_path(rel_path)
        if not requested:
            if self.single_file:
                return next(iter(self._files.items()))
            raise ValueError("No file specified")
        path = self._files.get(requested)
        if path is None:
            raise FileNotAllowedError(requested)
        return requested, path

    def mark_pending_refresh(self) -> bool:
        """Set the pending-refresh flag; notify only when it flips."""
        self._change_generation += 1
        if self._pending_refresh:
            return False
        self._pending_refresh = True
        logger.info("Untracked markdown change detected, refresh pending")
        self.broadcaster.publish(NotificationEvent(type="filesystem-changed", pendingRefresh=True))
        return True

    async def rescan(self) -> list[str]:
        """Re-run discovery tolerantly and merge new files.

        Pending-refresh is cleared only when no candidate change arrived
        while discovery was running.
        """
        async with self._rescan_lock:
            generation = self._change_generation
            found = await discover_markdown_files(
                self.inputs,
                self.options,
                strict=False,
                ignore_checker=self.ignore_checker,
            )
            added = self._merge(found)
            cleared = generation == self._change_generation
            if cleared:
                self._pending_refresh = False

        if added:
            logger.info(f"Rescan added {len(added)} file(s): {added}")
        else:
            logger.info("Rescan found no new files")
        if not cleared:
            logger.info("Changes arrived during rescan, refresh still pending")
            return added
        self.broadcaster.publish(NotificationEvent(type="filesystem-changed", pendingRefresh=False))
        return added

    async def list_files(self) -> list[ApiFile]:
        snapshot = list(self._files.items())
        return await asyncio.to_thread(lambda: [describe_file(rel, path) for rel, path in snapshot])

    async def read_text(self, rel_path: Optional[str]) -> tuple[str, Path, str]:
        """Read an allowed file.

        Raises:
            FileNotFoundError: the file no longer exists on disk.
            AccessError: the file exists but cannot be read.
        """
        requested, path = self.resolve(rel_path)

        def _read() -> str:
            with open(path, "r", encoding="utf-8", newline="") as handle:
                return handle.read()

        try:
            content = await asyncio.to_thread(_read)
        except FileNotFoundError:
            raise
        except (OSError, UnicodeDecodeError) as exc:
            raise AccessError(requested, str(exc)) from exc
        return requested, path, content

    async def write_text(self, rel_path: Optional[str], content: str) -> float:
        """Replace an allowed file's content; return its new mtime in ms."""
        requested, path = self.resolve(rel_path)

        def _write() -> float:
            with open(path, "w", encoding="utf-8", newline="") as handle:
                handle.write(content)
            return os.stat(path).st_mtime_ns / 1_000_000

        try:
            return await asyncio.to_thread(_write)
        except OSError as exc:
            raise AccessError(requested, str(exc)) from exc
