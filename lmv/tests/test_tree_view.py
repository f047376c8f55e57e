import unittest

from lmv.models import ApiFile
from lmv.services.tree_view import ViewState, compute_view, handle_key, reconcile_cursor, to_response


FILES = [
    ApiFile(path="docs/guide.md", name="guide.md", mtimeMs=100),
    ApiFile(path="docs/intro.md", name="intro.md", mtimeMs=200),
    ApiFile(path="readme.md", name="readme.md", mtimeMs=300),
]


class TreeViewTests(unittest.TestCase):
    def test_cursor_defaults_to_first_visible_row(self) -> None:
        state = ViewState()
        view = compute_view(FILES, state)
        self.assertEqual([row.node.path for row in view.visible], ["docs", "readme.md"])
        self.assertEqual(state.cursor_path, "docs")

    def test_cursor_outside_visible_rows_is_reset(self) -> None:
        state = ViewState(cursor_path="docs/intro.md")
        compute_view(FILES, state)
        self.assertEqual(state.cursor_path, "docs")

    def test_cursor_is_cleared_when_nothing_is_visible(self) -> None:
        state = ViewState(filter_text="nomatch", cursor_path="readme.md")
        view = compute_view(FILES, state)
        self.assertEqual(view.visible, [])
        self.assertIsNone(state.cursor_path)
        self.assertIsNone(reconcile_cursor([], "readme.md"))

    def test_arrow_keys_move_and_clamp(self) -> None:
        state = ViewState()
        view = compute_view(FILES, state)
        handle_key(state, view.visible, "ArrowDown")
        self.assertEqual(state.cursor_path, "readme.md")
        handle_key(state, view.visible, "ArrowDown")
        self.assertEqual(state.cursor_path, "readme.md")
        handle_key(state, view.visible, "ArrowUp")
        handle_key(state, view.visible, "ArrowUp")
        self.assertEqual(state.cursor_path, "docs")

    def test_enter_toggles_folder_then_selects_file(self) -> None:
        state = ViewState()
        view = compute_view(FILES, state)
        self.assertIsNone(handle_key(state, view.visible, "Enter"))
        self.assertEqual(state.expanded_folders, {"docs"})

        view = compute_view(FILES, state)
        self.assertEqual([row.node.path for row in view.visible], ["docs", "docs/guide.md", "docs/intro.md", "readme.md"])
        handle_key(state, view.visible, "down")
        self.assertEqual(handle_key(state, view.visible, "enter"), "docs/guide.md")
        self.assertEqual(state.selected_path, "docs/guide.md")

        state.cursor_path = "docs"
        handle_key(state, view.visible, "Enter")
        self.assertEqual(state.expanded_folders, set())

    def test_unknown_keys_are_ignored(self) -> None:
        state = ViewState()
        view = compute_view(FILES, state)
        self.assertIsNone(handle_key(state, view.visible, "Tab"))
        self.assertEqual(state.cursor_path, "docs")

    def test_response_marks_auto_expanded_folders(self) -> None:
        state = ViewState(filter_text="intro", sort_order="name-desc")
        view = compute_view(FILES, state)
        response = to_response(view, state)
        self.assertEqual(response.autoExpand, ["docs"])
        self.assertEqual(response.sortOrder, "name-desc")
        self.assertEqual([(row.path, row.depth, row.expanded) for row in response.rows], [
            ("docs", 0, True),
            ("docs/intro.md", 1, False),
        ])
        self.assertEqual(response.cursorPath, "docs")


if __name__ == "__main__":
    unittest.main()
