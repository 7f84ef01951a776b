import curses
import random
import unittest
from datetime import date

from kanri.core.models import ColumnDefinition, KeyEvent, Row
from kanri.interfaces.tui.list_view import ListViewEngine, compute_column_widths
from kanri.interfaces.tui.surface import GridSurface

TODAY = date(2024, 1, 3)


def _engine(rows: list[dict], **kwargs: object) -> ListViewEngine:
    columns = [
        ColumnDefinition("text", "Text", fraction=0.7),
        ColumnDefinition("due", "Due", width=10),
    ]
    engine = ListViewEngine(columns, clock=lambda: TODAY, **kwargs)  # type: ignore[arg-type]
    engine.set_rows([Row(r) for r in rows])
    return engine


def _ids(engine: ListViewEngine) -> list[object]:
    return [d.id for d in engine.displayed_rows]


class TestSortToggleScenario(unittest.TestCase):
    def test_sort_by_due_then_flip(self) -> None:
        engine = _engine(
            [
                {"id": 1, "due": "2024-01-05"},
                {"id": 2, "due": None},
                {"id": 3, "due": "2024-01-01"},
            ],
        )
        engine.sort_by("due")
        assert _ids(engine) == [3, 1, 2]
        engine.sort_by("due")
        assert engine.state.sort_descending
        assert _ids(engine) == [1, 3, 2]

    def test_other_column_resets_direction(self) -> None:
        engine = _engine([{"id": 1, "text": "b"}, {"id": 2, "text": "a"}])
        engine.sort_by("due")
        engine.sort_by("due")
        engine.sort_by("text")
        assert not engine.state.sort_descending
        assert _ids(engine) == [2, 1]


class TestCollapseScenario(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = _engine([{"id": 1}, {"id": 2, "parent_id": 1}, {"id": 3, "parent_id": 1}])

    def test_collapse_expand(self) -> None:
        assert _ids(self.engine) == [1, 2, 3]
        assert self.engine.toggle_collapse(1)
        assert _ids(self.engine) == [1]
        assert self.engine.displayed_rows[0].collapsed
        assert self.engine.toggle_collapse(1)
        assert _ids(self.engine) == [1, 2, 3]

    def test_leaf_cannot_collapse(self) -> None:
        assert not self.engine.toggle_collapse(2)
        assert _ids(self.engine) == [1, 2, 3]

    def test_depth(self) -> None:
        assert [d.depth for d in self.engine.displayed_rows] == [0, 1, 1]

    def test_collapse_all_and_expand_all(self) -> None:
        self.engine.collapse_all()
        assert _ids(self.engine) == [1]
        self.engine.expand_all()
        assert _ids(self.engine) == [1, 2, 3]

    def test_nested_collapse_hides_grandchildren(self) -> None:
        engine = _engine([{"id": 1}, {"id": 2, "parent_id": 1}, {"id": 3, "parent_id": 2}, {"id": 4}])
        engine.toggle_collapse(1)
        assert _ids(engine) == [1, 4]


class TestOrphanScenario(unittest.TestCase):
    def test_orphan_appended(self) -> None:
        engine = _engine([{"id": 5, "parent_id": "missing"}, {"id": 6}])
        assert _ids(engine) == [6, 5]
        assert engine.displayed_rows[1].orphan

    def test_parent_filtered_out_makes_orphan(self) -> None:
        engine = _engine([{"id": 1, "completed": True}, {"id": 2, "parent_id": 1}])
        engine.toggle_show_completed()
        assert _ids(engine) == [2]

    def test_cycle_members_are_displayed(self) -> None:
        engine = _engine([{"id": "a", "parent_id": "b"}, {"id": "b", "parent_id": "a"}])
        assert sorted(_ids(engine)) == ["a", "b"]


class TestHierarchyInvariant(unittest.TestCase):
    def test_random_forests(self) -> None:
        rng = random.Random(7)
        for _ in range(30):
            n = rng.randint(1, 25)
            rows = []
            for i in range(n):
                parent = rng.choice([None, None, *range(i), "ghost"])
                rows.append({"id": i, "parent_id": parent, "due": rng.choice([None, "2024-01-02", "2024-01-09"])})
            engine = _engine(rows)
            engine.sort_by(rng.choice(["due", "text", None]))
            collapsed = {r["id"] for r in rows if rng.random() < 0.2}
            engine.state.collapsed = set(collapsed)
            engine.invalidate()

            shown = _ids(engine)
            pos = {rid: i for i, rid in enumerate(shown)}
            assert len(shown) == len(set(shown))
            ids = {r["id"] for r in rows}
            for r in rows:
                pid = r["parent_id"]
                if pid is None or pid not in ids:
                    # roots and orphans are never dropped
                    assert r["id"] in pos
                    continue
                if r["id"] in pos and pid in pos:
                    assert pos[pid] < pos[r["id"]]
                if pid in collapsed:
                    assert r["id"] not in pos


class TestCache(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = _engine(
            [
                {"id": 1, "text": "Alpha", "due": "2024-01-01"},
                {"id": 2, "text": "beta", "due": "2024-01-03", "completed": True},
                {"id": 3, "text": "gamma", "parent_id": 1},
                {"id": 4, "text": "delta", "due": "2024-01-05"},
            ],
        )

    def _fresh(self) -> list[object]:
        return [d.id for d in self.engine.build_display(self.engine.raw_rows)]

    def test_reads_equal_fresh_pipeline(self) -> None:
        steps = [
            lambda: self.engine.sort_by("due"),
            lambda: self.engine.set_view_mode("overdue"),
            lambda: self.engine.set_view_mode("all"),
            lambda: self.engine.toggle_show_completed(),
            lambda: self.engine.toggle_collapse(1),
            lambda: self.engine.set_text_filter("ALP"),
            lambda: self.engine.set_text_filter(""),
            lambda: self.engine.flip_sort_direction(),
            lambda: self.engine.set_rows([*self.engine.raw_rows, Row({"id": 9, "text": "new"})]),
        ]
        for step in steps:
            step()
            assert _ids(self.engine) == self._fresh()
            assert self.engine.is_cache_valid()

    def test_repeated_reads_do_not_rebuild(self) -> None:
        _ = self.engine.displayed_rows
        count = self.engine.rebuild_count
        _ = self.engine.displayed_rows
        _ = self.engine.displayed_rows
        assert self.engine.rebuild_count == count

    def test_date_change_invalidates(self) -> None:
        day = [date(2024, 1, 3)]
        engine = ListViewEngine([], clock=lambda: day[0])
        engine.set_rows([Row({"id": 1, "due": "2024-01-04"})])
        engine.set_view_mode("overdue")
        assert _ids(engine) == []
        day[0] = date(2024, 1, 5)
        assert not engine.is_cache_valid()
        assert _ids(engine) == [1]

    def test_idempotent(self) -> None:
        self.engine.sort_by("text")
        self.engine.set_text_filter("a")
        first = self.engine.build_display(self.engine.raw_rows)
        second = self.engine.build_display(self.engine.raw_rows)
        assert [d.id for d in first] == [d.id for d in second]
        assert [r.to_dict() for r in self.engine.raw_rows][0]["text"] == "Alpha"

    def test_text_filter_case_insensitive(self) -> None:
        self.engine.set_text_filter("GAM")
        assert _ids(self.engine) == [3]

    def test_unknown_view_mode(self) -> None:
        assert self.engine.set_view_mode("bogus") == "all"
        assert len(self.engine.displayed_rows) == 4


class TestCursor(unittest.TestCase):
    def test_bounds_after_navigation(self) -> None:
        engine = _engine([{"id": i} for i in range(5)])
        engine.layout(0, 0, 40, 4)
        for ev in ["j", "j", "j", "j", "j", "j", "G", "k", "g", "k"]:
            engine.handle_key(KeyEvent.of(ev))
            assert 0 <= engine.cursor < 5
        engine.handle_key(KeyEvent(curses.KEY_NPAGE))
        assert engine.cursor == engine.viewport_height
        engine.handle_key(KeyEvent(curses.KEY_END))
        assert engine.cursor == 4
        assert engine.scroll_offset <= engine.cursor < engine.scroll_offset + engine.viewport_height

    def test_empty_then_populated(self) -> None:
        engine = _engine([])
        engine.move_down(3)
        assert engine.cursor == 0
        engine.set_rows([Row({"id": 1}), Row({"id": 2})])
        assert engine.cursor == 0

    def test_cursor_follows_row_on_reload(self) -> None:
        engine = _engine([{"id": 1}, {"id": 2}, {"id": 3}])
        engine.select_id(3)
        engine.set_rows([Row({"id": 0}), *engine.raw_rows])
        assert engine.current_row().id == 3  # type: ignore[union-attr]

    def test_shrinking_list_clamps(self) -> None:
        engine = _engine([{"id": 1}, {"id": 2}, {"id": 3}])
        engine.end()
        engine.set_rows([Row({"id": 1})])
        assert engine.cursor == 0

    def test_multi_select(self) -> None:
        engine = _engine([{"id": 1}, {"id": 2}, {"id": 3}])
        engine.handle_key(KeyEvent.of("m"))
        engine.handle_key(KeyEvent.of("m"))
        assert [r.id for r in engine.selected_rows()] == [1, 2]
        engine.handle_key(KeyEvent.of("M"))
        assert engine.selected_rows() == []

    def test_reload_clears_selection(self) -> None:
        engine = _engine([{"id": 1}, {"id": 2}])
        engine.toggle_select()
        engine.set_rows(engine.raw_rows)
        assert engine.selected_ids == set()

    def test_unhandled_key(self) -> None:
        engine = _engine([{"id": 1}])
        assert not engine.handle_key(KeyEvent.of("z"))


class TestColumnWidths(unittest.TestCase):
    def test_fraction_and_fixed(self) -> None:
        cols = [
            ColumnDefinition("a", "A", fraction=0.5),
            ColumnDefinition("b", "B", width=10),
            ColumnDefinition("c", "C", fraction=0.5),
        ]
        # 52 - 2 separators - 10 fixed = 40 flex
        assert compute_column_widths(cols, 52) == [20, 10, 20]

    def test_minimum_width(self) -> None:
        cols = [ColumnDefinition("a", "A", fraction=0.01), ColumnDefinition("b", "B", width=1)]
        assert compute_column_widths(cols, 20) == [3, 3]

    def test_empty(self) -> None:
        assert compute_column_widths([], 80) == []


class TestRender(unittest.TestCase):
    def test_rows_and_header(self) -> None:
        engine = _engine([{"id": 1, "text": "parent"}, {"id": 2, "text": "child", "parent_id": 1}])
        surface = GridSurface(40, 6)
        engine.layout(0, 0, 40, 6)
        engine.render(surface)
        assert "Text" in surface.text_at(0)
        assert "- parent" in surface.text_at(1)
        assert "    child" in surface.text_at(2)
        # cursor row is highlighted
        assert surface.cell(2, 1).bg == surface.color("selected")[1]

    def test_suppressed_highlight(self) -> None:
        engine = _engine([{"id": 1, "text": "x"}])
        surface = GridSurface(40, 4)
        engine.layout(0, 0, 40, 4)
        engine.render(surface, suppress_highlight_id=1)
        assert surface.cell(2, 1).bg == surface.color("row")[1]

    def test_sort_indicator(self) -> None:
        engine = _engine([{"id": 1}])
        engine.sort_by("due")
        surface = GridSurface(40, 4)
        engine.layout(0, 0, 40, 4)
        engine.render(surface)
        assert "Due ^" in surface.text_at(0)

    def test_empty_placeholder(self) -> None:
        engine = _engine([])
        surface = GridSurface(40, 4)
        engine.layout(0, 0, 40, 4)
        engine.render(surface)
        assert "(no rows)" in surface.text_at(1)

    def test_format_error_placeholder(self) -> None:
        def broken(_row: Row) -> str:
            raise ValueError("bad")

        engine = ListViewEngine([ColumnDefinition("text", "Text", width=12, format=broken)])
        engine.set_rows([Row({"id": 1})])
        surface = GridSurface(30, 4)
        engine.layout(0, 0, 30, 4)
        engine.render(surface)
        assert "(error)" in surface.text_at(1)

    def test_color_error_placeholder(self) -> None:
        def broken(_row: Row) -> str:
            raise ValueError("bad")

        engine = ListViewEngine(
            [ColumnDefinition("text", "Text", width=12, color=broken), ColumnDefinition("note", "Note", width=8)],
        )
        engine.set_rows([Row({"id": 1, "text": "hello", "note": "fine"})])
        surface = GridSurface(30, 4)
        engine.layout(0, 0, 30, 4)
        engine.render(surface)
        line = surface.text_at(1)
        assert "(error)" in line
        assert "hello" not in line
        # only the failing cell is replaced
        assert "fine" in line

    def test_screen_y_of(self) -> None:
        engine = _engine([{"id": i} for i in range(10)])
        engine.layout(0, 5, 40, 4)
        assert engine.screen_y_of(0).unwrap() == 6
        assert engine.screen_y_of(7).is_err()
        assert engine.screen_y_of("nope").is_err()


if __name__ == "__main__":
    unittest.main()
