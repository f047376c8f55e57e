"""Sidebar view state: sort, filter, expansion and keyboard cursor."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from lmv.models import DEFAULT_SORT_ORDER, ApiFile, SortOrder, TreeNode, TreeResponse, TreeRow
from lmv.services.file_tree import (
    VisibleNode,
    build_file_tree,
    filter_tree,
    flatten_visible_nodes,
    normalize_sort_order,
)

KEY_DOWN = "down"
KEY_UP = "up"
KEY_ENTER = "enter"
_KEY_ALIASES = {
    "arrowdown": KEY_DOWN,
    "down": KEY_DOWN,
    "arrowup": KEY_UP,
    "up": KEY_UP,
    "enter": KEY_ENTER,
    "return": KEY_ENTER,
}


@dataclass
class ViewState:
    sort_order: SortOrder = DEFAULT_SORT_ORDER
    filter_text: str = ""
    expanded_folders: set[str] = field(default_factory=set)
    selected_path: Optional[str] = None
    cursor_path: Optional[str] = None


@dataclass(frozen=True)
class TreeView:
    nodes: list[TreeNode]
    auto_expand: set[str]
    visible: list[VisibleNode]


def compute_view(files: Iterable[ApiFile], state: ViewState) -> TreeView:
    """Build, filter and flatten the tree, then pull the cursor back into view."""
    tree = build_file_tree(files, normalize_sort_order(state.sort_order))
    nodes, auto_expand = filter_tree(tree, state.filter_text)
    visible = flatten_visible_nodes(nodes, state.expanded_folders, auto_expand)
    state.cursor_path = reconcile_cursor(visible, state.cursor_path)
    return TreeView(nodes=nodes, auto_expand=auto_expand, visible=visible)


def reconcile_cursor(visible: Sequence[VisibleNode], cursor_path: Optional[str]) -> Optional[str]:
    if not visible:
        return None
    if cursor_path is not None and any(row.node.path == cursor_path for row in visible):
        return cursor_path
    return visible[0].node.path


def toggle_folder(state: ViewState, path: str) -> None:
    if path in state.expanded_folders:
        state.expanded_folders.discard(path)
    else:
        state.expanded_folders.add(path)


def handle_key(state: ViewState, visible: Sequence[VisibleNode], key: str) -> Optional[str]:
    """Apply a navigation key to ``state``.

    Down/up move the cursor one row (clamped to the list). Enter toggles the
    folder under the cursor or selects the file under it; the selected file
    path is returned so the caller can open it.
    """
    action = _KEY_ALIASES.get((key or "").strip().lower())
    if action is None or not visible:
        return None

    index = next((i for i, row in enumerate(visible) if row.node.path == state.cursor_path), -1)

    if action == KEY_DOWN:
        state.cursor_path = visible[min(index + 1, len(visible) - 1)].node.path
        return None
    if action == KEY_UP:
        state.cursor_path = visible[max(index - 1, 0)].node.path
        return None

    current = visible[max(index, 0)].node
    if current.kind == "folder":
        toggle_folder(state, current.path)
        return None
    state.selected_path = current.path
    return current.path


def to_response(view: TreeView, state: ViewState) -> TreeResponse:
    rows: list[TreeRow] = []
    for row in view.visible:
        node = row.node
        if node.kind == "folder":
            rows.append(
                TreeRow(
                    path=node.path,
                    name=node.name,
                    kind="folder",
                    depth=row.depth,
                    mtimeMs=node.mtimeMs,
                    expanded=node.path in state.expanded_folders or node.path in view.auto_expand,
                )
            )
        else:
            rows.append(
                TreeRow(
                    path=node.path,
                    name=node.name,
                    kind="file",
                    depth=row.depth,
                    mtimeMs=node.mtimeMs,
                    isSymlink=node.isSymlink,
                    error=node.error,
                )
            )
    return TreeResponse(
        sortOrder=normalize_sort_order(state.sort_order),
        filter=state.filter_text,
        autoExpand=sorted(view.auto_expand),
        cursorPath=state.cursor_path,
        rows=rows,
    )
