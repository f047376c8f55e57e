"""Markdown file discovery.

Inputs are literal file paths, directory paths or glob patterns. Each one
is classified syntactically, expanded into absolute candidate paths and
accumulated in first-seen order; ignore rules run once over the whole
accumulated set at the end of the pass.
"""
from __future__ import annotations

import asyncio
import glob
import logging
import os
import re
import stat
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from lmv.errors import NotFoundError
from lmv.observability import record_discovery, start_span
from lmv.services.ignore import (
    GitIgnoreChecker,
    IgnoreChecker,
    apply_ignore_filter,
    filter_hidden,
    is_hidden_path,
    to_posix,
)

logger = logging.getLogger("lmv.discovery")

GLOB_CHARS_RE = re.compile(r"[*?\[\]{}()!]")
MARKDOWN_SUFFIXES = (".md", ".markdown")


@dataclass(frozen=True)
class DiscoveryOptions:
    cwd: Path
    recursive: bool = False
    include_hidden: bool = False


def is_glob_pattern(token: str) -> bool:
    return bool(GLOB_CHARS_RE.search(token))


def is_markdown_path(path_like: str | Path) -> bool:
    return str(path_like).lower().endswith(MARKDOWN_SUFFIXES)


def absolute_path(cwd: Path, token: str) -> Path:
    """Join ``token`` onto ``cwd`` and normalise it without following symlinks."""
    return Path(os.path.normpath(os.path.join(cwd, os.path.expanduser(token))))


def relative_posix(path: Path, cwd: Path) -> str:
    return to_posix(os.path.relpath(path, cwd))


def _split_alternatives(body: str) -> list[str]:
    options: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in body:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        elif ch == "," and depth == 0:
            options.append("".join(current))
            current = []
            continue
        current.append(ch)
    options.append("".join(current))
    return options


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives; groups without a comma stay literal."""
    depth = 0
    start = -1
    for index, ch in enumerate(pattern):
        if ch == "{":
            if depth == 0:
                start = index
            depth += 1
        elif ch == "}" and depth:
            depth -= 1
            if depth:
                continue
            alternatives = _split_alternatives(pattern[start + 1 : index])
            if len(alternatives) < 2:
                continue
            prefix, suffix = pattern[:start], pattern[index + 1 :]
            expanded: list[str] = []
            for alternative in alternatives:
                for item in expand_braces(f"{prefix}{alternative}{suffix}"):
                    if item not in expanded:
                        expanded.append(item)
            return expanded
    return [pattern]


def _match_glob(pattern: str, options: DiscoveryOptions) -> list[Path]:
    raw_matches: list[str] = []
    for variant in expand_braces(pattern):
        if os.path.isabs(os.path.expanduser(variant)):
            found = glob.glob(os.path.expanduser(variant), recursive=True, include_hidden=True)
        else:
            found = glob.glob(variant, root_dir=options.cwd, recursive=True, include_hidden=True)
        raw_matches.extend(sorted(found))

    matches: list[Path] = []
    for match in filter_hidden(raw_matches, options.include_hidden):
        if not is_markdown_path(match):
            continue
        path = absolute_path(options.cwd, match)
        if path.is_dir():
            continue
        matches.append(path)
    return matches


def _scan_directory(
    directory: Path,
    options: DiscoveryOptions,
    out: list[Path],
    visited: set[tuple[int, int]],
) -> None:
    try:
        info = directory.stat()
    except OSError as exc:
        logger.warning(f"Skipping unreadable directory {directory}: {exc}")
        return
    key = (info.st_dev, info.st_ino)
    if key in visited:
        return
    visited.add(key)

    try:
        with os.scandir(directory) as iterator:
            entries = sorted(iterator, key=lambda entry: entry.name)
    except OSError as exc:
        logger.warning(f"Skipping unreadable directory {directory}: {exc}")
        return

    for entry in entries:
        if not options.include_hidden and entry.name.startswith("."):
            continue
        path = directory / entry.name
        # Symlinked directories are never followed; they are judged by name like files.
        if entry.is_dir(follow_symlinks=False):
            if options.recursive:
                _scan_directory(path, options, out, visited)
            continue
        if entry.is_file(follow_symlinks=False) or entry.is_symlink():
            if is_markdown_path(entry.name):
                out.append(path)


def match_input(token: str, options: DiscoveryOptions, strict: bool = True) -> list[Path]:
    """Expand a single input token into absolute candidate paths.

    Raises:
        NotFoundError: ``token`` is a literal path that does not exist and
            ``strict`` is set.
    """
    if is_glob_pattern(token):
        return _match_glob(token, options)

    path = absolute_path(options.cwd, token)
    try:
        info = os.lstat(path)
    except OSError:
        if strict:
            raise NotFoundError(path)
        logger.debug(f"Input {path} no longer exists, skipping")
        return []

    if stat.S_ISDIR(info.st_mode):
        if not options.include_hidden and is_hidden_path(token):
            return []
        found: list[Path] = []
        _scan_directory(path, options, found, set())
        return found

    if stat.S_ISREG(info.st_mode) or stat.S_ISLNK(info.st_mode):
        return [path] if is_markdown_path(path) else []
    return []


async def discover_markdown_files(
    inputs: Sequence[str],
    options: DiscoveryOptions,
    *,
    strict: bool = True,
    ignore_checker: Optional[IgnoreChecker] = None,
) -> list[Path]:
    """Resolve ``inputs`` into a de-duplicated, first-seen ordered path list.

    ``strict`` controls whether a missing literal input aborts the pass
    (startup) or is skipped (background rescans).
    """
    checker = ignore_checker if ignore_checker is not None else GitIgnoreChecker()
    started = time.perf_counter()
    discovered: dict[Path, None] = {}

    with start_span("lmv.discover", {"inputs": len(inputs), "strict": strict}):
        for token in inputs:
            matches = await asyncio.to_thread(match_input, token, options, strict)
            for path in matches:
                discovered.setdefault(path, None)

        result = await apply_ignore_filter(list(discovered), options.cwd, checker)

    duration_ms = (time.perf_counter() - started) * 1000
    record_discovery("strict" if strict else "rescan", duration_ms)
    logger.info(
        "Discovered %d markdown file(s) from %d input(s) in %.1fms",
        len(result),
        len(inputs),
        duration_ms,
    )
    return result
