import curses
import math
from collections.abc import Callable, Iterable
from datetime import date
from typing import Any

from pyresults import Err, Ok, Result

from kanri.core.models import ColumnDefinition, KeyEvent, Row, RowId
from kanri.core.sort import sort_rows
from kanri.core.view_modes import VIEW_MODES, resolve_view_mode
from kanri.interfaces.tui.data import DisplayedRow, FilterState
from kanri.interfaces.tui.helper import _string_width, fit_to_width
from kanri.interfaces.tui.style import COLUMN_SEPARATOR, LIST_CHROME_HEIGHT, MIN_COLUMN_WIDTH
from kanri.interfaces.tui.surface import RenderSurface
from kanri.util.logger import setup_logger
from kanri.util.time import today

logger = setup_logger("kanri", is_stream=False, is_file=True)

ERROR_PLACEHOLDER = "(error)"
GUTTER_WIDTH = 2  # multi-select mark + space
INDENT = "  "


def compute_column_widths(columns: list[ColumnDefinition], available: int) -> list[int]:
    """Integer cell width per column.

    Fixed-width columns keep their width. Fraction columns get
    `floor(flex * fraction)` where `flex` is what remains of `available`
    after separators and fixed columns. No column drops below
    MIN_COLUMN_WIDTH.
    """
    if not columns:
        return []
    separators = len(COLUMN_SEPARATOR) * (len(columns) - 1)
    usable = max(0, available - separators)
    fixed = sum(c.width for c in columns if c.width is not None)
    flex = max(0, usable - fixed)
    widths: list[int] = []
    for c in columns:
        if c.width is not None:
            w = c.width
        elif c.fraction is not None:
            w = math.floor(flex * c.fraction)
        else:
            w = _string_width(c.label) + 1
        widths.append(max(MIN_COLUMN_WIDTH, w))
    return widths


def default_format(value: Any) -> str:
    match value:
        case None:
            return ""
        case bool():
            return "x" if value else ""
        case list() | tuple():
            return ", ".join(str(v) for v in value)
        case _:
            return str(value)


class ListViewEngine:
    """Raw rows -> filtered -> sorted -> flattened rows, plus navigation.

    The displayed sequence is memoized under a key built from every piece of
    filter/sort/collapse state, the raw row version and the current date.
    A read whose key differs from the stored one rebuilds synchronously, so
    the cache can be dropped at any time without changing results.
    """

    def __init__(
        self,
        columns: list[ColumnDefinition],
        *,
        view_modes: Iterable[str] | None = None,
        sort_column: str | None = None,
        sort_descending: bool = False,
        clock: Callable[[], date] = today,
    ) -> None:
        self.columns = list(columns)
        self.view_modes: tuple[str, ...] = tuple(view_modes or VIEW_MODES.keys())
        self.state = FilterState(sort_column=sort_column, sort_descending=sort_descending)
        self._clock = clock

        self._rows: list[Row] = []
        self._rows_version = 0
        self._cache: list[DisplayedRow] | None = None
        self._cache_key: str | None = None
        self.rebuild_count = 0

        # selection
        self.cursor = 0
        self.scroll_offset = 0
        self.selected_ids: set[RowId] = set()

        # geometry (set by layout())
        self.x = 0
        self.y = 0
        self.width = 0
        self.height = 0
        self.viewport_height = 1
        self._widths: list[int] = []
        self._widths_for: int | None = None

    # ---- rows / cache ----------------------------------------------------

    @property
    def raw_rows(self) -> list[Row]:
        return list(self._rows)

    def set_rows(self, rows: list[Row], keep_id: RowId | None = None) -> None:
        """Replace the raw rows (full reload); clears the multi-select set."""
        if keep_id is None:
            keep_id = self.cursor_id()
        self._rows = list(rows)
        self._rows_version += 1
        self.selected_ids.clear()
        self.invalidate()
        self._restore_cursor(keep_id)

    def invalidate(self) -> None:
        # the stale sequence is kept only to find the row under the cursor
        self._cache_key = None

    def cache_key(self) -> str:
        return f"{self.state.cache_key()}|rows={self._rows_version}|today={self._clock().isoformat()}"

    def is_cache_valid(self) -> bool:
        return self._cache is not None and self._cache_key == self.cache_key()

    @property
    def displayed_rows(self) -> list[DisplayedRow]:
        key = self.cache_key()
        if self._cache is None or self._cache_key != key:
            self._cache = self.build_display(self._rows)
            self._cache_key = key
            self.rebuild_count += 1
        return self._cache

    def build_display(self, rows: list[Row]) -> list[DisplayedRow]:
        """Run the whole pipeline on `rows` without touching the cache."""
        filtered = self._filter(rows)
        ordered = sort_rows(filtered, self.state.sort_column, descending=self.state.sort_descending)
        return self._flatten(ordered)

    def _filter(self, rows: list[Row]) -> list[Row]:
        _name, predicate = resolve_view_mode(self.state.view_mode)
        now = self._clock()
        out = [r for r in rows if predicate(r, now)]
        if not self.state.show_completed:
            out = [r for r in out if not r.completed]
        needle = self.state.text.strip().casefold()
        if needle:
            out = [r for r in out if any(needle in default_format(v).casefold() for v in r.fields.values())]
        return out

    def _flatten(self, rows: list[Row]) -> list[DisplayedRow]:
        ids = {r.id for r in rows}
        children: dict[RowId, list[Row]] = {}
        roots: list[Row] = []
        orphans: list[Row] = []
        for r in rows:
            pid = r.parent_id
            if pid is None:
                roots.append(r)
            elif pid in ids and pid != r.id:
                children.setdefault(pid, []).append(r)
            else:
                orphans.append(r)

        out: list[DisplayedRow] = []
        visited: set[RowId] = set()

        def hide_descendants(row_id: RowId) -> None:
            stack = list(children.get(row_id, []))
            while stack:
                child = stack.pop()
                if child.id in visited:
                    continue
                visited.add(child.id)
                stack.extend(children.get(child.id, []))

        def emit(top: Row, *, orphan: bool) -> None:
            stack: list[tuple[Row, int]] = [(top, 0)]
            while stack:
                row, depth = stack.pop()
                if row.id in visited:
                    continue
                visited.add(row.id)
                kids = children.get(row.id, [])
                collapsed = bool(kids) and row.id in self.state.collapsed
                out.append(
                    DisplayedRow(
                        row=row,
                        depth=depth,
                        has_children=bool(kids),
                        collapsed=collapsed,
                        orphan=orphan and row is top,
                    ),
                )
                if collapsed:
                    hide_descendants(row.id)
                    continue
                stack.extend((kid, depth + 1) for kid in reversed(kids))

        for r in roots:
            emit(r, orphan=False)
        for r in orphans:
            emit(r, orphan=True)
        # rows caught in a parent_id cycle have no reachable root
        for r in rows:
            if r.id not in visited:
                emit(r, orphan=True)
        return out

    # ---- filter / sort / collapse state ----------------------------------

    def _state_changed(self) -> None:
        keep_id = self.cursor_id()
        self.invalidate()
        self._restore_cursor(keep_id)

    def set_view_mode(self, name: str) -> str:
        effective, _predicate = resolve_view_mode(name)
        self.state.view_mode = effective
        self._state_changed()
        return effective

    def cycle_view_mode(self) -> str:
        try:
            idx = self.view_modes.index(self.state.view_mode)
        except ValueError:
            idx = -1
        return self.set_view_mode(self.view_modes[(idx + 1) % len(self.view_modes)])

    def toggle_show_completed(self) -> bool:
        self.state.show_completed = not self.state.show_completed
        self._state_changed()
        return self.state.show_completed

    def set_text_filter(self, text: str) -> None:
        self.state.text = text
        self._state_changed()

    def sort_by(self, column: str | None) -> None:
        """Sort by `column`; selecting the active column again flips direction."""
        if column is not None and column == self.state.sort_column:
            self.state.sort_descending = not self.state.sort_descending
        else:
            self.state.sort_column = column
            self.state.sort_descending = False
        self._state_changed()

    def cycle_sort_column(self) -> str | None:
        names: list[str | None] = [None, *[c.name for c in self.columns if c.sortable]]
        try:
            idx = names.index(self.state.sort_column)
        except ValueError:
            idx = 0
        self.state.sort_column = names[(idx + 1) % len(names)]
        self.state.sort_descending = False
        self._state_changed()
        return self.state.sort_column

    def flip_sort_direction(self) -> None:
        if self.state.sort_column is not None:
            self.sort_by(self.state.sort_column)

    def toggle_collapse(self, row_id: RowId) -> bool:
        """Flip collapse state of a parent row; returns False for leaf rows."""
        target = next((d for d in self.displayed_rows if d.id == row_id), None)
        if target is None or not target.has_children:
            return False
        if row_id in self.state.collapsed:
            self.state.collapsed.discard(row_id)
        else:
            self.state.collapsed.add(row_id)
        self._state_changed()
        return True

    def collapse_all(self) -> None:
        parents = {r.parent_id for r in self._rows if r.parent_id is not None}
        self.state.collapsed = {r.id for r in self._rows if r.id in parents}
        self._state_changed()

    def expand_all(self) -> None:
        self.state.collapsed = set()
        self._state_changed()

    # ---- columns ----------------------------------------------------------

    def set_columns(self, columns: list[ColumnDefinition]) -> None:
        self.columns = list(columns)
        self._widths_for = None

    def column_widths(self, available: int) -> list[int]:
        if available != self._widths_for or len(self._widths) != len(self.columns):
            self._widths = compute_column_widths(self.columns, available)
            self._widths_for = available
        return self._widths

    # ---- geometry / navigation -------------------------------------------

    def layout(self, x: int, y: int, width: int, height: int) -> None:
        """Place the list; `height` includes the column header row."""
        self.x, self.y, self.width, self.height = x, y, width, height
        self.viewport_height = max(1, height - LIST_CHROME_HEIGHT)
        self._clamp()

    def cursor_id(self) -> RowId | None:
        """Id under the cursor in the last built sequence (never rebuilds)."""
        if not self._cache:
            return None
        return self._cache[max(0, min(self.cursor, len(self._cache) - 1))].id

    def current_row(self) -> Row | None:
        rows = self.displayed_rows
        if not rows:
            return None
        self.cursor = max(0, min(self.cursor, len(rows) - 1))
        return rows[self.cursor].row

    def index_of(self, row_id: RowId) -> int | None:
        for idx, d in enumerate(self.displayed_rows):
            if d.id == row_id:
                return idx
        return None

    def _restore_cursor(self, keep_id: RowId | None) -> None:
        if keep_id is not None and (idx := self.index_of(keep_id)) is not None:
            self.cursor = idx
        self._clamp()

    def _clamp(self) -> None:
        n = len(self.displayed_rows)
        if n == 0:
            self.cursor = 0
            self.scroll_offset = 0
            return
        self.cursor = max(0, min(self.cursor, n - 1))
        h = self.viewport_height
        if self.cursor < self.scroll_offset:
            self.scroll_offset = self.cursor
        elif self.cursor >= self.scroll_offset + h:
            self.scroll_offset = self.cursor - h + 1
        self.scroll_offset = max(0, min(self.scroll_offset, max(0, n - h)))

    def move_up(self, n: int = 1) -> None:
        self.cursor -= n
        self._clamp()

    def move_down(self, n: int = 1) -> None:
        self.cursor += n
        self._clamp()

    def page_up(self) -> None:
        self.move_up(self.viewport_height)

    def page_down(self) -> None:
        self.move_down(self.viewport_height)

    def home(self) -> None:
        self.cursor = 0
        self._clamp()

    def end(self) -> None:
        self.cursor = len(self.displayed_rows) - 1
        self._clamp()

    def select_id(self, row_id: RowId) -> bool:
        idx = self.index_of(row_id)
        if idx is None:
            return False
        self.cursor = idx
        self._clamp()
        return True

    # ---- multi-select -----------------------------------------------------

    def toggle_select(self) -> None:
        row = self.current_row()
        if row is None:
            return
        if row.id in self.selected_ids:
            self.selected_ids.discard(row.id)
        else:
            self.selected_ids.add(row.id)

    def clear_selection(self) -> None:
        self.selected_ids.clear()

    def selected_rows(self) -> list[Row]:
        return [d.row for d in self.displayed_rows if d.id in self.selected_ids]

    # ---- screen positions -------------------------------------------------

    def screen_y_of(self, row_id: RowId) -> Result[int, str]:
        idx = self.index_of(row_id)
        if idx is None:
            return Err[int, str](f"Row not displayed: {row_id}")
        if not (self.scroll_offset <= idx < self.scroll_offset + self.viewport_height):
            return Err[int, str]("not visible")
        return Ok[int, str](self.y + LIST_CHROME_HEIGHT + idx - self.scroll_offset)

    def new_row_screen_y(self) -> int:
        """Screen row of the virtual row after the last displayed row."""
        rel = len(self.displayed_rows) - self.scroll_offset
        rel = max(0, min(rel, self.viewport_height - 1))
        return self.y + LIST_CHROME_HEIGHT + rel

    # ---- keys ---------------------------------------------------------------

    def handle_key(self, event: KeyEvent) -> bool:  # noqa: C901
        """Navigation, selection, sort and filter keys; False if not handled."""
        key = event.key
        if key == curses.KEY_UP or event.is_char("k"):
            self.move_up()
        elif key == curses.KEY_DOWN or event.is_char("j"):
            self.move_down()
        elif key == curses.KEY_PPAGE:
            self.page_up()
        elif key == curses.KEY_NPAGE:
            self.page_down()
        elif key == curses.KEY_HOME or event.is_char("g"):
            self.home()
        elif key == curses.KEY_END or event.is_char("G"):
            self.end()
        elif event.is_char("m"):
            self.toggle_select()
            self.move_down()
        elif event.is_char("M"):
            self.clear_selection()
        elif event.is_char("s"):
            self.cycle_sort_column()
        elif event.is_char("o"):
            self.flip_sort_direction()
        elif event.is_char("v"):
            self.cycle_view_mode()
        elif event.is_char("c"):
            self.toggle_show_completed()
        elif event.is_char("+"):
            self.expand_all()
        elif event.is_char("-"):
            self.collapse_all()
        else:
            return False
        return True

    # ---- rendering ----------------------------------------------------------

    def format_cell(self, col: ColumnDefinition, d: DisplayedRow) -> str:
        """Cell text without tree markers; a failing `format` yields a placeholder."""
        try:
            return col.format(d.row) if col.format is not None else default_format(d.row.get(col.name))
        except Exception:
            _msg = f"Format failed: column={col.name} row={d.id}"
            logger.exception(_msg)
            return ERROR_PLACEHOLDER

    def _cell_text(self, col: ColumnDefinition, d: DisplayedRow, *, first: bool) -> str:
        text = self.format_cell(col, d)
        if first:
            if d.has_children:
                marker = "+ " if d.collapsed else "- "
            else:
                marker = "  "
            text = INDENT * d.depth + marker + text
        return text

    def _cell_role(self, col: ColumnDefinition, row: Row) -> Result[str | None, str]:
        """Theme role of one cell; Err when the `color` callback raised."""
        if col.color is None:
            return Ok[str | None, str](None)
        try:
            return Ok[str | None, str](col.color(row))
        except Exception:
            _msg = f"Color failed: column={col.name} row={row.id}"
            logger.exception(_msg)
            return Err[str | None, str](_msg)

    def _skips_highlight(self, col: ColumnDefinition, row: Row) -> bool:
        if col.skip_row_highlight is None:
            return False
        try:
            return bool(col.skip_row_highlight(row))
        except Exception:
            _msg = f"Highlight check failed: column={col.name} row={row.id}"
            logger.exception(_msg)
            return False

    def _draw_header(self, surface: RenderSurface, widths: list[int]) -> None:
        fg, bg = surface.color("header")
        surface.write_at(self.x, self.y, " " * self.width, fg, bg)
        cx = self.x + GUTTER_WIDTH
        for col, w in zip(self.columns, widths, strict=True):
            label = col.label
            if col.name == self.state.sort_column:
                label += " v" if self.state.sort_descending else " ^"
            cx += surface.write_at(cx, self.y, fit_to_width(label, w, col.align), fg, bg)
            cx += surface.write_at(cx, self.y, COLUMN_SEPARATOR, fg, bg)

    def render(self, surface: RenderSurface, *, suppress_highlight_id: RowId | None = None) -> None:
        """Draw header and visible rows into the area given to layout().

        The cursor row is highlighted unless it is `suppress_highlight_id`
        (the row under an open inline editor) or a column opts out for it.
        """
        if self.width <= 0 or self.height <= 0:
            return
        widths = self.column_widths(self.width - GUTTER_WIDTH)
        self._draw_header(surface, widths)

        rows = self.displayed_rows
        self._clamp()
        top = self.y + LIST_CHROME_HEIGHT
        if not rows:
            fg, bg = surface.color("muted")
            surface.write_at(self.x, top, fit_to_width("  (no rows)", self.width), fg, bg)
            for i in range(1, self.viewport_height):
                surface.write_at(self.x, top + i, " " * self.width, *surface.color("row"))
            return

        for i in range(self.viewport_height):
            idx = self.scroll_offset + i
            line_y = top + i
            if idx >= len(rows):
                surface.write_at(self.x, line_y, " " * self.width, *surface.color("row"))
                continue
            d = rows[idx]
            highlighted = idx == self.cursor and d.id != suppress_highlight_id
            marked = d.id in self.selected_ids

            row_fg, row_bg = surface.color("selected" if highlighted else "row")
            mark_role = "marked" if marked else ("selected" if highlighted else "row")
            cx = self.x
            cx += surface.write_at(cx, line_y, "* " if marked else "  ", *surface.color(mark_role))
            for n, (col, w) in enumerate(zip(self.columns, widths, strict=True)):
                text = self._cell_text(col, d, first=n == 0)
                match self._cell_role(col, d.row):
                    case Ok(role):
                        pass
                    case _:
                        text, role = ERROR_PLACEHOLDER, "error"
                text = fit_to_width(text, w, col.align)
                if highlighted and not self._skips_highlight(col, d.row):
                    role = "selected"
                elif role is None:
                    role = "marked" if marked else "row"
                cx += surface.write_at(cx, line_y, text, *surface.color(role))
                cx += surface.write_at(cx, line_y, COLUMN_SEPARATOR, row_fg, row_bg)
            rest = self.x + self.width - cx
            if rest > 0:
                surface.write_at(cx, line_y, " " * rest, row_fg, row_bg)
