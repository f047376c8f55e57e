"""Hidden-path policy and version-control ignore rules.

The git-backed checker shells out to ``git check-ignore`` once per
discovery pass with every candidate batched on stdin. When git is missing,
the working directory is not inside a repository, or any probe fails, the
checker reports nothing as ignored so discovery keeps working.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, Protocol, Sequence

from lmv.errors import ExternalToolUnavailable

logger = logging.getLogger("lmv.ignore")


def to_posix(path_like: str) -> str:
    return str(path_like).replace("\\", "/")


def is_hidden_path(path_like: str | Path) -> bool:
    """Return whether any segment (other than ``.``/``..``) starts with a dot."""
    parts = [part for part in to_posix(str(path_like)).split("/") if part]
    return any(part.startswith(".") and part not in {".", ".."} for part in parts)


def filter_hidden(paths: Iterable[str], include_hidden: bool) -> list[str]:
    if include_hidden:
        return list(paths)
    return [path for path in paths if not is_hidden_path(path)]


class IgnoreChecker(Protocol):
    async def ignored(self, paths: Sequence[Path], cwd: Path) -> set[Path]:
        """Return the subset of ``paths`` excluded by ignore rules."""
        ...


class NullIgnoreChecker:
    """Checker used when ignore rules are disabled; nothing is ignored."""

    async def ignored(self, paths: Sequence[Path], cwd: Path) -> set[Path]:
        return set()


class GitIgnoreChecker:
    """Ask git which candidates its ignore rules exclude."""

    def __init__(self, git_executable: str = "git"):
        self.git_executable = git_executable

    async def ignored(self, paths: Sequence[Path], cwd: Path) -> set[Path]:
        if not paths:
            return set()
        try:
            return await self._check_ignored(paths, cwd)
        except ExternalToolUnavailable as exc:
            logger.debug("Ignore rules not applied: %s", exc)
            return set()

    async def _run(self, args: list[str], cwd: Path, stdin: bytes | None = None) -> tuple[int, bytes]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(cwd),
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise ExternalToolUnavailable(f"could not start {args[0]}: {exc}") from exc
        stdout, _ = await proc.communicate(stdin)
        return proc.returncode if proc.returncode is not None else -1, stdout

    async def _repo_root(self, cwd: Path) -> Path:
        if shutil.which(self.git_executable) is None:
            raise ExternalToolUnavailable(f"{self.git_executable} not found on PATH")
        code, stdout = await self._run([self.git_executable, "rev-parse", "--show-toplevel"], cwd)
        if code != 0:
            raise ExternalToolUnavailable(f"{cwd} is not inside a git work tree")
        top_level = stdout.decode("utf-8", errors="surrogateescape").strip()
        if not top_level:
            raise ExternalToolUnavailable("git reported an empty work tree root")
        return Path(top_level)

    async def _check_ignored(self, paths: Sequence[Path], cwd: Path) -> set[Path]:
        repo_root = await self._repo_root(cwd)

        rel_to_abs: dict[str, Path] = {}
        for path in paths:
            # git reports a symlink-free toplevel; resolve the parent only so
            # symlinked files keep their own name.
            anchored = Path(os.path.realpath(path.parent)) / path.name
            rel = to_posix(os.path.relpath(anchored, repo_root))
            if rel == ".." or rel.startswith("../"):
                continue
            rel_to_abs[rel] = path

        if not rel_to_abs:
            return set()

        payload = "\0".join(rel_to_abs).encode("utf-8", errors="surrogateescape")
        code, stdout = await self._run(
            [self.git_executable, "check-ignore", "-z", "--stdin"],
            repo_root,
            stdin=payload,
        )
        # 0: some paths ignored, 1: none ignored, anything else is a failure.
        if code not in (0, 1):
            raise ExternalToolUnavailable(f"git check-ignore exited with status {code}")

        ignored_rel = [token for token in stdout.decode("utf-8", errors="surrogateescape").split("\0") if token]
        ignored = {rel_to_abs[rel] for rel in ignored_rel if rel in rel_to_abs}
        if ignored:
            logger.debug(f"git ignore rules excluded {len(ignored)} of {len(rel_to_abs)} candidates")
        return ignored


async def apply_ignore_filter(
    paths: Sequence[Path],
    cwd: Path,
    checker: IgnoreChecker,
) -> list[Path]:
    """Drop paths excluded by ``checker``, keeping order.

    Hidden-path policy is applied where candidates are produced (glob
    matches and directory scans), so explicitly named hidden files survive.
    """
    ignored = await checker.ignored(list(paths), cwd)
    if not ignored:
        return list(paths)
    return [path for path in paths if path not in ignored]
