"""Folder/file tree built from the flat list of discovered files.

The tree is a derived view: it is rebuilt from scratch whenever the file
list, sort order, filter or expansion state changes. Every algorithm here
dispatches on ``node.kind``.
"""
from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import Iterable, Sequence

from lmv.models import DEFAULT_SORT_ORDER, SORT_ORDERS, ApiFile, FileNode, FolderNode, SortOrder, TreeNode


def normalize_sort_order(value: str | None) -> SortOrder:
    token = (value or "").strip().lower()
    if token in SORT_ORDERS:
        return token  # type: ignore[return-value]
    return DEFAULT_SORT_ORDER


def _normalize_path(path: str) -> str:
    return path.replace("\\", "/")


def _path_segments(path: str) -> list[str]:
    return [segment for segment in _normalize_path(path).split("/") if segment]


def _name_key(name: str) -> str:
    # Base-letter comparison: accents and case do not affect ordering.
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def _sort_children(nodes: Sequence[TreeNode], sort_order: SortOrder) -> list[TreeNode]:
    if sort_order in ("name-asc", "name-desc"):
        key = lambda node: _name_key(node.name)  # noqa: E731
    else:
        key = lambda node: node.mtimeMs  # noqa: E731
    reverse = sort_order in ("name-desc", "modified-desc")

    folders = sorted((node for node in nodes if node.kind == "folder"), key=key, reverse=reverse)
    files = sorted((node for node in nodes if node.kind == "file"), key=key, reverse=reverse)
    return [*folders, *files]


def _recompute_folder_mtime(folder: FolderNode) -> float:
    latest = 0.0
    for child in folder.children:
        if child.kind == "folder":
            _recompute_folder_mtime(child)
        if child.mtimeMs > latest:
            latest = child.mtimeMs
    folder.mtimeMs = latest
    return latest


def _sort_recursive(folder: FolderNode, sort_order: SortOrder) -> None:
    folder.children = _sort_children(folder.children, sort_order)
    for child in folder.children:
        if child.kind == "folder":
            _sort_recursive(child, sort_order)


def build_file_tree(files: Iterable[ApiFile], sort_order: SortOrder = DEFAULT_SORT_ORDER) -> list[TreeNode]:
    """Return the top-level children of the implicit root folder."""
    root = FolderNode(path="", name="")
    folder_index: dict[str, FolderNode] = {"": root}

    for file in files:
        segments = _path_segments(file.path)
        if not segments:
            continue

        parent = root
        current_path = ""
        for segment in segments[:-1]:
            current_path = f"{current_path}/{segment}" if current_path else segment
            folder = folder_index.get(current_path)
            if folder is None:
                folder = FolderNode(path=current_path, name=segment)
                folder_index[current_path] = folder
                parent.children.append(folder)
            parent = folder

        parent.children.append(
            FileNode(
                path=_normalize_path(file.path),
                name=segments[-1],
                mtimeMs=float(file.mtimeMs or 0),
                isSymlink=bool(file.isSymlink),
                error=file.error,
            )
        )

    _recompute_folder_mtime(root)
    _sort_recursive(root, normalize_sort_order(sort_order))
    return root.children


def filter_tree(nodes: list[TreeNode], filter_text: str) -> tuple[list[TreeNode], set[str]]:
    """Prune ``nodes`` to files whose relative path contains ``filter_text``.

    Returns the pruned forest and the set of folder paths that must be shown
    expanded so every match is visible. Blank filter text returns ``nodes``
    itself and an empty set.
    """
    needle = (filter_text or "").strip().lower()
    if not needle:
        return nodes, set()

    auto_expand: set[str] = set()

    def filter_node(node: TreeNode) -> TreeNode | None:
        if node.kind == "file":
            return node if needle in _normalize_path(node.path).lower() else None

        children = [kept for kept in (filter_node(child) for child in node.children) if kept is not None]
        if not children:
            return None
        auto_expand.add(node.path)
        return node.model_copy(update={"children": children})

    pruned = [kept for kept in (filter_node(node) for node in nodes) if kept is not None]
    return pruned, auto_expand


@dataclass(frozen=True)
class VisibleNode:
    node: TreeNode
    depth: int


def flatten_visible_nodes(
    nodes: Sequence[TreeNode],
    expanded_folders: set[str] | frozenset[str],
    auto_expand: set[str] | frozenset[str],
) -> list[VisibleNode]:
    """Depth-first, pre-order list of the rows currently visible.

    A folder's children are listed when the folder is expanded manually or
    by an active filter.
    """
    out: list[VisibleNode] = []

    def walk(node: TreeNode, depth: int) -> None:
        out.append(VisibleNode(node=node, depth=depth))
        if node.kind != "folder":
            return
        if node.path not in expanded_folders and node.path not in auto_expand:
            return
        for child in node.children:
            walk(child, depth + 1)

    for node in nodes:
        walk(node, 0)
    return out
