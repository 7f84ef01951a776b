import argparse
import curses
import unittest

from kanri.core.models import KEY_TAB, CustomAction, KeyEvent
from kanri.interfaces.tui.app import App, build_app
from kanri.interfaces.tui.controller import ListScreenController
from kanri.interfaces.tui.screens import ChecklistScreen, NoteScreen, TaskScreen
from kanri.interfaces.tui.surface import GridSurface
from kanri.storage import MemoryRowSource


class TestApp(unittest.TestCase):
    def setUp(self) -> None:
        self.tasks = MemoryRowSource("task", [{"id": "t1", "text": "write"}])
        self.checks = MemoryRowSource("checklist", [{"id": "c1", "text": "pack"}])
        self.notes = MemoryRowSource("note", [])
        self.surface = GridSurface(80, 24)
        self.app = App(
            [
                ListScreenController(TaskScreen(self.tasks)),
                ListScreenController(ChecklistScreen(self.checks)),
                ListScreenController(NoteScreen(self.notes)),
            ],
            self.surface,
        )

    def test_only_current_is_active(self) -> None:
        assert [c.active for c in self.app.controllers] == [True, False, False]
        assert all(c.attached for c in self.app.controllers)

    def test_tab_switching(self) -> None:
        self.app.handle_key(KeyEvent(KEY_TAB))
        assert self.app.current.screen.name == "checklists"
        self.app.handle_key(KeyEvent(curses.KEY_BTAB, shift=True))
        assert self.app.current.screen.name == "tasks"
        self.app.handle_key(KeyEvent(curses.KEY_BTAB, shift=True))
        assert self.app.current.screen.name == "notes"
        assert [c.active for c in self.app.controllers] == [False, False, True]

    def test_digit_switching(self) -> None:
        self.app.handle_key(KeyEvent.of("2"))
        assert self.app.index == 1
        # out of range digits go to the list
        self.app.handle_key(KeyEvent.of("9"))
        assert self.app.index == 1

    def test_switch_by_name(self) -> None:
        assert self.app.switch_by_name("notes")
        assert self.app.index == 2
        assert not self.app.switch_by_name("nope")

    def test_quit(self) -> None:
        assert not self.app.handle_key(KeyEvent.of("q"))
        assert not self.app.running

    def test_editor_keeps_keyboard(self) -> None:
        self.app.handle_key(KeyEvent.of("a"))
        assert self.app.current.editor.is_open
        self.app.handle_key(KeyEvent.of("q"))
        self.app.handle_key(KeyEvent(KEY_TAB))
        assert self.app.running
        assert self.app.index == 0
        ses = self.app.current.editor.session
        assert ses is not None
        assert ses.fields[0].buffer == "q"
        self.app.switch_to(1)
        assert self.app.index == 0
        assert self.app.current.status.is_error

    def test_background_change_reloads_on_activation(self) -> None:
        checklist = self.app.controllers[1]
        before = checklist.load_count
        self.checks.add({"text": "tent"})
        assert checklist.load_count == before
        self.app.switch_to(1)
        assert checklist.load_count == before + 1
        assert len(checklist.engine.displayed_rows) == 2

    def test_draw(self) -> None:
        self.app.draw()
        bar = self.surface.text_at(0)
        assert bar.startswith(" 1:Tasks ")
        assert " 2:Checklists " in bar
        assert "Tasks" in self.surface.text_at(1)
        assert any("write" in self.surface.text_at(y) for y in range(24))

    def test_draw_too_small(self) -> None:
        self.surface.resize(15, 5)
        self.app.draw()
        assert self.surface.text_at(0).startswith("Terminal")

    def test_close_detaches(self) -> None:
        self.app.close()
        assert not any(c.attached for c in self.app.controllers)
        before = self.app.controllers[0].load_count
        self.tasks.add({"text": "later"})
        assert self.app.controllers[0].load_count == before

    def test_needs_a_screen(self) -> None:
        with self.assertRaises(ValueError):
            App([], self.surface)


class DigitActionScreen(NoteScreen):
    """Note screen that binds the digit 1 and q to its own actions."""

    def __init__(self, source: MemoryRowSource) -> None:
        super().__init__(source)
        self.calls: list[str] = []

    def get_custom_actions(self) -> list[CustomAction]:
        return [
            CustomAction("1", "first", lambda _c: self.calls.append("1")),
            CustomAction("q", "queue", lambda _c: self.calls.append("q")),
        ]


class TestScreenKeysFirst(unittest.TestCase):
    def setUp(self) -> None:
        self.screen = DigitActionScreen(MemoryRowSource("note", []))
        self.app = App(
            [
                ListScreenController(TaskScreen(MemoryRowSource("task", []))),
                ListScreenController(self.screen),
            ],
            GridSurface(80, 24),
            initial=1,
        )

    def test_custom_action_wins_over_digit(self) -> None:
        assert self.app.handle_key(KeyEvent.of("1"))
        assert self.screen.calls == ["1"]
        assert self.app.index == 1

    def test_custom_action_wins_over_quit(self) -> None:
        assert self.app.handle_key(KeyEvent.of("q"))
        assert self.app.running
        assert self.screen.calls == ["q"]

    def test_unbound_keys_reach_the_shell(self) -> None:
        self.app.handle_key(KeyEvent.of("2"))
        assert self.app.index == 1
        self.app.handle_key(KeyEvent(KEY_TAB))
        assert self.app.index == 0
        assert not self.app.handle_key(KeyEvent.of("q"))


class TestBuildApp(unittest.TestCase):
    def test_args_are_applied(self) -> None:
        surface = GridSurface(80, 24)
        args = argparse.Namespace(screen="notes", theme="mono", view=None, filter="x")
        app = build_app(surface, args)
        assert [c.screen.name for c in app.controllers] == ["tasks", "checklists", "commands", "notes", "excel"]
        assert app.current.screen.name == "notes"
        assert surface.theme.name == "mono"
        assert all(c.engine.state.text == "x" for c in app.controllers)
        app.close()

    def test_view_only_where_supported(self) -> None:
        app = build_app(GridSurface(80, 24), argparse.Namespace(screen=None, theme=None, view="active", filter=None))
        views = {c.screen.name: c.engine.state.view_mode for c in app.controllers}
        assert views["checklists"] == "active"
        assert views["notes"] == "all"
        app.close()


if __name__ == "__main__":
    unittest.main()
