import curses
from collections.abc import Callable
from datetime import date
from typing import Any

from pyresults import Err, Ok, Result

from kanri.core.models import (
    ENTER_KEYS,
    ColumnDefinition,
    CustomAction,
    FieldSchema,
    KeyEvent,
    Row,
    RowId,
)
from kanri.core.validate import would_create_cycle
from kanri.core.view_modes import VIEW_MODES
from kanri.interfaces.tui.data import EditSession, Mode, StatusMessage
from kanri.interfaces.tui.helper import fit_to_width
from kanri.interfaces.tui.inline_editor import InlineEditorOverlay
from kanri.interfaces.tui.list_view import GUTTER_WIDTH, ListViewEngine, default_format
from kanri.interfaces.tui.style import FOOTER_HEIGHT, HEADER_HEIGHT, HeaderLines, Theme
from kanri.interfaces.tui.surface import RenderSurface
from kanri.storage.base import RowSource
from kanri.util.ids import resolve_row_id, short_id
from kanri.util.logger import setup_logger
from kanri.util.time import today

logger = setup_logger("kanri", is_stream=False, is_file=True)


class ListScreen:
    """Extension points of one entity screen.

    The controller treats these as opaque configuration: columns, the edit
    form, the CRUD hooks (which talk to the row source) and extra shortcuts.
    Mutation hooks return `Ok(status text / row)` or `Err(reason)`.
    """

    name = "list"
    title = "List"
    view_modes: tuple[str, ...] = tuple(VIEW_MODES.keys())
    default_sort: str | None = None
    supports_completion = False

    def __init__(self, source: RowSource) -> None:
        self.source = source

    def get_columns(self, width: int) -> list[ColumnDefinition]:
        raise NotImplementedError

    def get_edit_fields(self, row: Row | None) -> list[FieldSchema]:
        raise NotImplementedError

    def on_item_created(self, values: dict[str, Any]) -> Result[Row, str]:
        return self.source.add(values)

    def on_item_updated(self, row: Row, changes: dict[str, Any]) -> Result[Row, str]:
        return self.source.update(row.id, changes)

    def on_item_deleted(self, row: Row) -> Result[None, str]:
        return self.source.delete(row.id)

    def get_custom_actions(self) -> list[CustomAction]:
        return []

    def validate(self, values: dict[str, Any], row: Row | None) -> str | None:  # noqa: ARG002
        """Screen-specific form check; return an error message to keep the editor open."""
        return None

    def describe(self, row: Row) -> str:
        return short_id(row.id)


def changed_fields(row: Row, values: dict[str, Any]) -> dict[str, Any]:
    """Keys of `values` whose displayed value differs from `row`."""
    return {k: v for k, v in values.items() if default_format(row.get(k)) != default_format(v)}


class ListScreenController:
    """Row source + list view engine + inline editor for one screen.

    Lifecycle: load -> render -> handle key -> mutate -> reload. Key
    dispatch order: inline editor (when open), custom shortcuts, standard
    screen actions, list navigation, then unhandled (returns False).
    """

    def __init__(
        self,
        screen: ListScreen,
        source: RowSource | None = None,
        *,
        theme: Theme | None = None,
        clock: Callable[[], date] = today,
    ) -> None:
        self.screen = screen
        self.source = source or screen.source
        self.theme = theme or Theme()
        self.engine = ListViewEngine(
            screen.get_columns(80),
            view_modes=screen.view_modes,
            sort_column=screen.default_sort,
            clock=clock,
        )
        self.editor = InlineEditorOverlay(on_submit=self._submit, validator=self._validate_form)
        self.status = StatusMessage()
        self.active = False
        self.attached = False
        self.needs_render = True
        self.load_count = 0
        self._loading = False
        self._mutating = False
        self._stale = False
        self._columns_width: int | None = None
        self._add_defaults: dict[str, Any] = {}

    @property
    def state(self) -> Mode:
        return "editing" if self.editor.is_open else "idle"

    # ---- lifecycle --------------------------------------------------------

    def attach(self) -> None:
        """Subscribe to the row source and load."""
        if not self.attached:
            self.source.subscribe(self)
            self.attached = True
        self.load_data()

    def detach(self) -> None:
        """Unsubscribe (screen teardown)."""
        if self.attached:
            self.source.unsubscribe(self)
            self.attached = False
        self.editor.close()
        self.active = False

    def activate(self) -> None:
        self.active = True
        if self._stale:
            self.load_data()
        self.needs_render = True

    def deactivate(self) -> None:
        self.active = False

    def on_rows_changed(self, rows: list[Row]) -> None:  # noqa: ARG002
        """Row source change notification."""
        if self._loading or self._mutating:
            # the running load / the reload after our own mutation covers it
            self._stale = self._stale or self._mutating
            return
        if not self.active:
            # a background screen must not draw; reload when it comes back
            self._stale = True
            return
        self.load_data()

    def load_data(self, keep_id: RowId | None = None) -> bool:
        """Invalidate, pull rows, run the pipeline; a nested call is a no-op."""
        if self._loading:
            logger.debug("load_data skipped: already loading")
            return False
        self._loading = True
        try:
            self.engine.invalidate()
            match self.source.get_all():
                case Ok(rows):
                    pass
                case Err(e):
                    rows = []
                    self.set_status(f"Error (load): {e}", is_error=True)
                case _:
                    rows = []
                    self.set_status("Error (load): Unexpected error", is_error=True)
            # できるだけ同じ行IDを再選択する
            self.engine.set_rows(rows, keep_id)
            # run the pipeline now so the next render never sees a half state
            _ = self.engine.displayed_rows
            self._stale = False
            self.load_count += 1
            self.needs_render = True
        finally:
            self._loading = False
        return True

    # ---- status -----------------------------------------------------------

    def set_status(self, text: str, *, is_error: bool = False) -> None:
        self.status = StatusMessage(text, is_error)
        if is_error:
            logger.warning(text)
        self.needs_render = True

    def current_row(self) -> Row | None:
        return self.engine.current_row()

    # ---- keys -------------------------------------------------------------

    def handle_key(self, event: KeyEvent) -> bool:
        self.needs_render = True
        if self.editor.is_open:
            match self.editor.handle_key(event):
                case "cancelled":
                    self._add_defaults = {}
                    self.set_status("Canceled")
                case "invalid":
                    ses = self.editor.session
                    self.set_status(f"Invalid: {ses.error if ses else ''}", is_error=True)
            return True

        for action in self.screen.get_custom_actions():
            if event.is_char(action.key):
                try:
                    action.callback(self)
                except Exception as e:
                    _msg = f"Error ({action.label}): {e}"
                    logger.exception(_msg)
                    self.set_status(_msg, is_error=True)
                return True

        if self._handle_standard_key(event):
            return True
        if self.engine.handle_key(event):
            return True
        self.needs_render = False
        return False

    def _handle_standard_key(self, event: KeyEvent) -> bool:
        if event.is_char("a"):
            self.begin_add()
        elif event.is_char("A"):
            self.begin_add(parent=self.current_row())
        elif event.is_char("e") or event.key in ENTER_KEYS:
            self.begin_edit()
        elif event.is_char("d") or event.key == curses.KEY_DC:
            self.delete_rows()
        elif event.is_char(" "):
            self.toggle_row()
        elif event.is_char("/"):
            self.begin_filter()
        else:
            return False
        return True

    # ---- actions ------------------------------------------------------------

    def begin_add(self, parent: Row | None = None) -> bool:
        fields = self.screen.get_edit_fields(None)
        self._add_defaults = {}
        if parent is not None:
            names = [f.name for f in fields]
            if "parent_id" in names:
                fields[names.index("parent_id")].value = parent.id
            else:
                self._add_defaults["parent_id"] = parent.id
        position = (self.engine.x + GUTTER_WIDTH, self.engine.new_row_screen_y())
        match self.editor.open("add", None, fields, position):
            case Ok(_):
                self.set_status("Add: Enter to save, Esc to cancel")
                return True
            case Err(e):
                self.set_status(f"Cannot add: {e}", is_error=True)
        return False

    def begin_edit(self) -> bool:
        row = self.current_row()
        if row is None:
            self.set_status("No row selected", is_error=True)
            return False
        match self.engine.screen_y_of(row.id):
            case Ok(y):
                position: tuple[int, int] | None = (self.engine.x + GUTTER_WIDTH, y)
            case _:
                position = None
        match self.editor.open("edit", row, self.screen.get_edit_fields(row), position):
            case Ok(_):
                self.set_status(f"Edit {self.screen.describe(row)}: Enter to save, Esc to cancel")
                return True
            case Err(e):
                self.set_status(f"Cannot edit: {e}", is_error=True)
        return False

    def begin_filter(self) -> bool:
        """Prompt for the free-text filter; an empty value clears it."""
        fields = [FieldSchema("filter", "Filter", max_length=200, value=self.engine.state.text or None)]
        position = (self.engine.x + GUTTER_WIDTH, self.engine.y)
        match self.editor.open("filter", None, fields, position):
            case Ok(_):
                self.set_status("Filter: Enter to apply, Esc to cancel")
                return True
            case Err(e):
                self.set_status(f"Cannot filter: {e}", is_error=True)
        return False

    def delete_rows(self) -> int:
        """Delete all marked rows, or the current row when nothing is marked."""
        targets = self.engine.selected_rows()
        if not targets and (row := self.current_row()) is not None:
            targets = [row]
        if not targets:
            self.set_status("No row selected", is_error=True)
            return 0
        deleted = 0
        errors: list[str] = []
        for row in targets:
            match self.mutate(lambda r=row: self.screen.on_item_deleted(r)):
                case Ok(_):
                    deleted += 1
                case Err(e):
                    errors.append(str(e))
        if errors:
            self.set_status(f"Error (delete): {'; '.join(errors)}", is_error=True)
        else:
            self.set_status(f"Deleted: {deleted} row(s)")
        self.load_data()
        return deleted

    def toggle_row(self) -> None:
        """Collapse/expand a parent row; on a leaf row toggle its completion."""
        row = self.current_row()
        if row is None:
            return
        if self.engine.toggle_collapse(row.id):
            state = "collapsed" if row.id in self.engine.state.collapsed else "expanded"
            self.set_status(f"{self.screen.describe(row)}: {state}")
            return
        if not self.screen.supports_completion:
            return
        self.apply_update(row, {"completed": not row.completed}, label="Done" if not row.completed else "Reopened")

    def apply_update(self, row: Row, changes: dict[str, Any], *, label: str = "Updated") -> bool:
        """Send a partial update through the screen hook, report, and reload."""
        match self.mutate(lambda: self.screen.on_item_updated(row, changes)):
            case Ok(_):
                self.set_status(f"{label}: {self.screen.describe(row)}")
                ok = True
            case Err(e):
                self.set_status(f"Error (update): {e}", is_error=True)
                ok = False
            case _:
                ok = False
        self.load_data(keep_id=row.id)
        return ok

    def mutate(self, fn: Callable[[], Result[Any, str]]) -> Result[Any, str]:
        """Run a store mutation; change notifications it fires are folded into one reload."""
        self._mutating = True
        try:
            return fn()
        except Exception as e:
            logger.exception("Mutation failed")
            return Err[Any, str](str(e))
        finally:
            self._mutating = False

    # ---- editor callbacks ---------------------------------------------------

    def _validate_form(self, session: EditSession, values: dict[str, Any]) -> str | None:
        if session.mode == "filter":
            return None
        row = session.row
        if row is not None and row.parent_id is not None and str(values.get("parent_id")) == str(row.parent_id):
            # an unchanged parent is kept even when it no longer exists (orphan row)
            values["parent_id"] = row.parent_id
        elif values.get("parent_id") not in (None, ""):
            ids = [r.id for r in self.engine.raw_rows]
            match resolve_row_id(str(values["parent_id"]), source_ids=ids):
                case Ok(pid):
                    values["parent_id"] = pid
                case Err(e):
                    return f"Parent: {e}"
            if row is not None and would_create_cycle(self.engine.raw_rows, row.id, values["parent_id"]):
                return f"Circular parent reference: {values['parent_id']}"
        try:
            return self.screen.validate(values, session.row)
        except Exception as e:
            logger.exception("Screen validation failed")
            return str(e)

    def _submit(self, session: EditSession, values: dict[str, Any]) -> None:
        if session.mode == "filter":
            text = values.get("filter") or ""
            self.engine.set_text_filter(text)
            self.set_status(f"Filter: {text}" if text else "Filter cleared")
            return
        if session.mode == "add":
            values = {**self._add_defaults, **values}
            self._add_defaults = {}
            keep_id: RowId | None = None
            match self.mutate(lambda: self.screen.on_item_created(values)):
                case Ok(row):
                    keep_id = row.id if isinstance(row, Row) else None
                    self.set_status(f"Added: {short_id(keep_id) if keep_id is not None else ''}")
                case Err(e):
                    self.set_status(f"Error (add): {e}", is_error=True)
            self.load_data(keep_id=keep_id)
            return

        row = session.row
        if row is None:
            self.set_status("No row selected for edit", is_error=True)
            return
        changes = changed_fields(row, values)
        if not changes:
            self.set_status("No changes")
            self.load_data(keep_id=row.id)
            return
        self.apply_update(row, changes)

    # ---- rendering ----------------------------------------------------------

    def layout(self, width: int, height: int, top: int = 0) -> None:
        if width != self._columns_width:
            self.engine.set_columns(self.screen.get_columns(width))
            self._columns_width = width
        list_top = top + HEADER_HEIGHT
        self.engine.layout(0, list_top, width, max(0, height - list_top - FOOTER_HEIGHT))

    def _status_line(self) -> str:
        st = self.engine.state
        if st.sort_column is None:
            sort_label = "none"
        else:
            sort_label = f"{st.sort_column} {'desc' if st.sort_descending else 'asc'}"
        count = len(self.engine.displayed_rows)
        marked = len(self.engine.selected_ids)
        return HeaderLines.status(
            view_label=st.view_mode,
            sort_label=sort_label,
            completed_label="on" if st.show_completed else "off",
            filter_label=st.text or "-",
            count_label=f"{count} rows" + (f" ({marked} marked)" if marked else ""),
        )

    def _footer_line(self) -> str:
        actions = " ".join(f"[({a.key}) {a.label}]" for a in self.screen.get_custom_actions())
        return f"{actions} {HeaderLines.help()}".lstrip()

    def render(self, surface: RenderSurface, top: int = 0) -> None:
        width, height = surface.size()
        if width < 2 or height < top + HEADER_HEIGHT + FOOTER_HEIGHT + 1:
            # give up drawing if terminal size is too small
            return
        self.layout(width, height, top)

        surface.write_at(0, top, fit_to_width(HeaderLines.title(self.screen.title), width), *surface.color("title"))
        surface.write_at(0, top + 1, fit_to_width(self._status_line(), width), *surface.color("status"))

        session = self.editor.session
        self.engine.render(surface, suppress_highlight_id=None if session is None else session.target_id)

        surface.write_at(0, height - 2, fit_to_width(self._footer_line(), width), *surface.color("footer"))
        role = "status_error" if self.status.is_error else "status"
        surface.write_at(0, height - 1, fit_to_width(self.status.text, width), *surface.color(role))

        if session is not None:
            self.editor.render(
                surface,
                left=self.engine.x,
                width=self.engine.width,
                top_limit=self.engine.y,
                bottom_limit=self.engine.y + self.engine.height,
            )
        else:
            surface.hide_cursor()
        self.needs_render = False
