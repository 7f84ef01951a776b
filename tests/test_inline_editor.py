import curses
import unittest
from typing import Any

from kanri.core.models import KEY_CTRL_S, KEY_CTRL_U, KEY_ESC, KEY_TAB, FieldSchema, KeyEvent, Row
from kanri.interfaces.tui.data import EditSession, FieldState
from kanri.interfaces.tui.inline_editor import EDITOR_LAYER, InlineEditorOverlay, convert_field
from kanri.interfaces.tui.surface import GridSurface

ENTER = KeyEvent(10)


def _type(editor: InlineEditorOverlay, text: str) -> None:
    for ch in text:
        editor.handle_key(KeyEvent.of(ch))


class TestConvertField(unittest.TestCase):
    def _convert(self, schema: FieldSchema, buffer: str) -> Any:
        return convert_field(FieldState(schema=schema, buffer=buffer))

    def test_required(self) -> None:
        res = self._convert(FieldSchema("text", "Text", required=True), "  ")
        assert res.is_err()
        assert "required" in res.unwrap_err()

    def test_optional_empty_is_none(self) -> None:
        assert self._convert(FieldSchema("due", "Due", type="date"), "").unwrap() is None
        assert self._convert(FieldSchema("done", "Done", type="bool"), "").unwrap() is False

    def test_int(self) -> None:
        assert self._convert(FieldSchema("p", "P", type="int"), " 3 ").unwrap() == 3
        assert self._convert(FieldSchema("p", "P", type="int"), "x").is_err()

    def test_date_is_iso_string(self) -> None:
        assert self._convert(FieldSchema("d", "D", type="date"), "2024-02-03").unwrap() == "2024-02-03"
        assert self._convert(FieldSchema("d", "D", type="date"), "tomorrow").is_err()

    def test_bool(self) -> None:
        assert self._convert(FieldSchema("b", "B", type="bool"), "Yes").unwrap() is True
        assert self._convert(FieldSchema("b", "B", type="bool"), "off").unwrap() is False
        assert self._convert(FieldSchema("b", "B", type="bool"), "maybe").is_err()

    def test_choice(self) -> None:
        schema = FieldSchema("c", "C", type="choice", choices=("a", "b"))
        assert self._convert(schema, "b").unwrap() == "b"
        assert self._convert(schema, "z").is_err()

    def test_max_length(self) -> None:
        assert self._convert(FieldSchema("t", "T", max_length=3), "abcd").is_err()


class TestInlineEditorOverlay(unittest.TestCase):
    def setUp(self) -> None:
        self.submitted: list[tuple[EditSession, dict[str, Any]]] = []
        self.editor = InlineEditorOverlay(on_submit=lambda s, v: self.submitted.append((s, v)))
        self.fields = [
            FieldSchema("text", "Text", required=True),
            FieldSchema("priority", "Priority", type="int"),
            FieldSchema("done", "Done", type="bool", value=False),
        ]

    def _open_add(self) -> None:
        assert self.editor.open("add", None, self.fields, (2, 5)).is_ok()

    def test_open_rules(self) -> None:
        assert self.editor.open("add", None, [], (0, 0)).is_err()
        assert self.editor.open("edit", None, self.fields, (0, 0)).is_err()
        assert self.editor.open("add", None, self.fields, None).unwrap_err() == "Row not visible"
        self._open_add()
        assert self.editor.open("add", None, self.fields, (0, 0)).unwrap_err() == "Editor already open"

    def test_type_and_confirm(self) -> None:
        self._open_add()
        _type(self.editor, "hello")
        self.editor.handle_key(KeyEvent(KEY_TAB))
        _type(self.editor, "2")
        assert self.editor.handle_key(ENTER) == "confirmed"
        assert not self.editor.is_open
        assert len(self.submitted) == 1
        assert self.submitted[0][1] == {"text": "hello", "priority": 2, "done": False}

    def test_ctrl_s_confirms(self) -> None:
        self._open_add()
        _type(self.editor, "x")
        assert self.editor.handle_key(KeyEvent(KEY_CTRL_S, ctrl=True)) == "confirmed"

    def test_invalid_keeps_session_open(self) -> None:
        self._open_add()
        self.editor.handle_key(KeyEvent(KEY_TAB))
        _type(self.editor, "abc")
        assert self.editor.handle_key(ENTER) == "invalid"
        ses = self.editor.session
        assert ses is not None
        # first failing field (the required text) gets the focus
        assert ses.current_index == 0
        assert ses.error
        assert self.submitted == []

    def test_any_key_clears_error(self) -> None:
        self._open_add()
        self.editor.handle_key(ENTER)
        assert self.editor.session.error  # type: ignore[union-attr]
        _type(self.editor, "a")
        assert self.editor.session.error is None  # type: ignore[union-attr]

    def test_validator_rejects(self) -> None:
        editor = InlineEditorOverlay(
            on_submit=lambda s, v: self.submitted.append((s, v)),
            validator=lambda _s, v: "no way" if v["text"] == "bad" else None,
        )
        editor.open("add", None, self.fields, (0, 0))
        _type(editor, "bad")
        assert editor.handle_key(ENTER) == "invalid"
        assert editor.session.error == "no way"  # type: ignore[union-attr]
        assert self.submitted == []

    def test_escape_cancels(self) -> None:
        self._open_add()
        _type(self.editor, "abc")
        assert self.editor.handle_key(KeyEvent(KEY_ESC)) == "cancelled"
        assert not self.editor.is_open
        assert self.submitted == []

    def test_editing_keys(self) -> None:
        self._open_add()
        _type(self.editor, "abc")
        self.editor.handle_key(KeyEvent(curses.KEY_LEFT))
        self.editor.handle_key(KeyEvent(curses.KEY_BACKSPACE))
        fs = self.editor.session.current_field()  # type: ignore[union-attr]
        assert fs.buffer == "ac"
        assert fs.cursor == 1
        self.editor.handle_key(KeyEvent(curses.KEY_HOME))
        self.editor.handle_key(KeyEvent(curses.KEY_DC))
        assert fs.buffer == "c"
        self.editor.handle_key(KeyEvent(KEY_CTRL_U, ctrl=True))
        assert fs.buffer == ""

    def test_navigation_keys_stay_in_editor(self) -> None:
        self._open_add()
        for key in (curses.KEY_DOWN, curses.KEY_DOWN, curses.KEY_DOWN):
            assert self.editor.handle_key(KeyEvent(key)) == "handled"
        assert self.editor.session.current_index == 0  # type: ignore[union-attr]
        self.editor.handle_key(KeyEvent(curses.KEY_BTAB, shift=True))
        assert self.editor.session.current_index == 2  # type: ignore[union-attr]
        assert self.editor.handle_key(KeyEvent(curses.KEY_NPAGE)) == "handled"
        assert self.editor.is_open

    def test_space_toggles_bool(self) -> None:
        self._open_add()
        self.editor.handle_key(KeyEvent(curses.KEY_UP))
        fs = self.editor.session.current_field()  # type: ignore[union-attr]
        assert fs.name == "done"
        assert fs.buffer == "no"
        self.editor.handle_key(KeyEvent.of(" "))
        assert fs.buffer == "yes"

    def test_edit_prefills(self) -> None:
        row = Row({"id": "r1", "text": "old", "priority": 1})
        fields = [FieldSchema("text", "Text", value=row.get("text")), FieldSchema("priority", "P", type="int", value=1)]
        self.editor.open("edit", row, fields, (0, 0))
        assert self.editor.session.target_id == "r1"  # type: ignore[union-attr]
        assert [f.buffer for f in self.editor.session.fields] == ["old", "1"]  # type: ignore[union-attr]

    def test_render_on_top_layer(self) -> None:
        surface = GridSurface(60, 12)
        self.editor.open("add", None, self.fields, (2, 10))
        self.editor.render(surface, left=0, width=60, top_limit=2, bottom_limit=12)
        # box (title + 3 fields + hint) shifted up to fit above bottom_limit
        assert "[Add]" in surface.text_at(7)
        assert "Text" in surface.text_at(8)
        assert surface.cell(2, 8).z == EDITOR_LAYER
        assert surface.cursor is not None
        assert surface.cursor[1] == 8
        # list drawn afterwards cannot overwrite the overlay
        surface.write_at(0, 8, "x" * 60)
        assert "Text" in surface.text_at(8)

    def test_render_error_line(self) -> None:
        surface = GridSurface(60, 12)
        self._open_add()
        self.editor.handle_key(ENTER)
        self.editor.render(surface, left=0, width=60, top_limit=0, bottom_limit=12)
        assert any("required" in surface.text_at(y) for y in range(12))


if __name__ == "__main__":
    unittest.main()
