import re
from typing import TYPE_CHECKING, Any

from pyresults import Err, Ok, Result

from kanri.core.models import ColumnDefinition, CustomAction, FieldSchema, Row
from kanri.interfaces.tui.controller import ListScreen
from kanri.storage.base import RowSource
from kanri.util.ids import short_id
from kanri.util.time import now_iso, parse_date, today

if TYPE_CHECKING:
    from kanri.interfaces.tui.controller import ListScreenController

PRIORITY_CYCLE: tuple[int | None, ...] = (None, 1, 2, 3)
DIRECTIONS = ("import", "export")
COMMAND_CATEGORIES = ("shell", "git", "build", "deploy", "misc")
_EXCEL_COLUMN = re.compile(r"^[A-Z]{1,3}$")
_EXCEL_MAX_COLUMN = 16384  # XFD


def _due_role(row: Row) -> str | None:
    if row.completed:
        return "completed"
    match parse_date(row.get("due")):
        case Ok(d):
            now = today()
            if d < now:
                return "overdue"
            if d == now:
                return "today"
            return None
        case _:
            return None


def _done_role(row: Row) -> str | None:
    return "completed" if row.completed else None


def _check_mark(row: Row) -> str:
    return "[x]" if row.completed else "[ ]"


def excel_column_index(letters: str) -> int:
    """1-based index of an Excel column name (A -> 1, AA -> 27)."""
    idx = 0
    for c in letters:
        idx = idx * 26 + (ord(c) - ord("A") + 1)
    return idx


def parse_mapping(text: str) -> Result[dict[str, str], str]:
    """Parse `A=name, B=amount` into {column letter: field name}."""
    mapping: dict[str, str] = {}
    if not text or not text.strip():
        return Err[dict[str, str], str]("Mapping is empty")
    for part in text.split(","):
        if not part.strip():
            continue
        if "=" not in part:
            return Err[dict[str, str], str](f"Invalid mapping entry: {part.strip()!r} (expected COL=field)")
        col, name = (s.strip() for s in part.split("=", 1))
        col = col.upper()
        if not _EXCEL_COLUMN.match(col) or excel_column_index(col) > _EXCEL_MAX_COLUMN:
            return Err[dict[str, str], str](f"Invalid column: {col!r}")
        if not name:
            return Err[dict[str, str], str](f"Empty field name for column {col}")
        if col in mapping:
            return Err[dict[str, str], str](f"Duplicate column: {col}")
        if name in mapping.values():
            return Err[dict[str, str], str](f"Duplicate field: {name}")
        mapping[col] = name
    return Ok[dict[str, str], str](mapping)


# ---- tasks ------------------------------------------------------------------


class TaskScreen(ListScreen):
    name = "tasks"
    title = "Tasks"
    supports_completion = True

    def get_columns(self, width: int) -> list[ColumnDefinition]:
        columns = [
            ColumnDefinition("completed", "Done", width=4, format=_check_mark, color=_done_role),
            ColumnDefinition("text", "Task", fraction=0.6),
            ColumnDefinition("due", "Due", width=10, color=_due_role),
            ColumnDefinition("priority", "Pri", width=3, align="right"),
        ]
        if width >= 60:
            columns.append(ColumnDefinition("tags", "Tags", fraction=0.4, sortable=False))
        return columns

    def get_edit_fields(self, row: Row | None) -> list[FieldSchema]:
        def value(name: str) -> Any:
            return None if row is None else row.get(name)

        return [
            FieldSchema("text", "Task", required=True, max_length=200, value=value("text")),
            FieldSchema("due", "Due", type="date", value=value("due")),
            FieldSchema("priority", "Priority", type="int", value=value("priority")),
            FieldSchema("tags", "Tags", value=value("tags")),
            FieldSchema("parent_id", "Parent", value=value("parent_id")),
            FieldSchema("completed", "Done", type="bool", value=bool(value("completed"))),
        ]

    def validate(self, values: dict[str, Any], row: Row | None) -> str | None:  # noqa: ARG002
        priority = values.get("priority")
        if priority is not None and priority not in PRIORITY_CYCLE:
            return f"Priority must be 1-3 (got {priority})"
        tags = values.get("tags")
        if isinstance(tags, str):
            values["tags"] = [t.strip() for t in tags.split(",") if t.strip()]
        return None

    def describe(self, row: Row) -> str:
        return str(row.get("text") or short_id(row.id))

    def get_custom_actions(self) -> list[CustomAction]:
        return [CustomAction("p", "priority", self.cycle_priority)]

    def cycle_priority(self, controller: "ListScreenController") -> None:
        row = controller.current_row()
        if row is None:
            controller.set_status("No row selected", is_error=True)
            return
        current = row.get("priority")
        idx = PRIORITY_CYCLE.index(current) if current in PRIORITY_CYCLE else 0
        nxt = PRIORITY_CYCLE[(idx + 1) % len(PRIORITY_CYCLE)]
        controller.apply_update(row, {"priority": nxt}, label=f"Priority {nxt if nxt is not None else '-'}")


# ---- checklists -------------------------------------------------------------


class ChecklistScreen(ListScreen):
    name = "checklists"
    title = "Checklists"
    view_modes = ("all", "active", "completed")
    supports_completion = True

    def get_columns(self, width: int) -> list[ColumnDefinition]:  # noqa: ARG002
        return [
            ColumnDefinition("completed", "", width=3, format=_check_mark, color=_done_role, sortable=False),
            ColumnDefinition("text", "Item", fraction=0.6, color=_done_role),
            ColumnDefinition("note", "Note", fraction=0.4, sortable=False),
        ]

    def get_edit_fields(self, row: Row | None) -> list[FieldSchema]:
        def value(name: str) -> Any:
            return None if row is None else row.get(name)

        return [
            FieldSchema("text", "Item", required=True, max_length=200, value=value("text")),
            FieldSchema("note", "Note", value=value("note")),
            FieldSchema("parent_id", "Parent", value=value("parent_id")),
            FieldSchema("completed", "Done", type="bool", value=bool(value("completed"))),
        ]

    def describe(self, row: Row) -> str:
        return str(row.get("text") or short_id(row.id))

    def get_custom_actions(self) -> list[CustomAction]:
        return [CustomAction("r", "reset", self.reset_all)]

    def reset_all(self, controller: "ListScreenController") -> None:
        """Uncheck every item of the list."""
        done = [r for r in controller.engine.raw_rows if r.completed]
        errors: list[str] = []
        for row in done:
            match controller.mutate(lambda r=row: self.on_item_updated(r, {"completed": False})):
                case Err(e):
                    errors.append(str(e))
        if errors:
            controller.set_status(f"Error (reset): {'; '.join(errors)}", is_error=True)
        else:
            controller.set_status(f"Reset: {len(done)} item(s)")
        controller.load_data()


# ---- commands ---------------------------------------------------------------


class CommandScreen(ListScreen):
    name = "commands"
    title = "Commands"
    view_modes = ("all",)
    default_sort = "name"

    def get_columns(self, width: int) -> list[ColumnDefinition]:
        columns = [
            ColumnDefinition("name", "Name", fraction=0.25),
            ColumnDefinition("category", "Category", width=8),
            ColumnDefinition("command", "Command", fraction=0.45, color=lambda _r: "muted"),
        ]
        if width >= 80:
            columns.append(ColumnDefinition("description", "Description", fraction=0.3, sortable=False))
        return columns

    def get_edit_fields(self, row: Row | None) -> list[FieldSchema]:
        def value(name: str) -> Any:
            return None if row is None else row.get(name)

        return [
            FieldSchema("name", "Name", required=True, max_length=80, value=value("name")),
            FieldSchema("command", "Command", required=True, value=value("command")),
            FieldSchema(
                "category",
                "Category",
                type="choice",
                choices=COMMAND_CATEGORIES,
                value=value("category") or "misc",
            ),
            FieldSchema("description", "Description", value=value("description")),
        ]

    def describe(self, row: Row) -> str:
        return str(row.get("name") or short_id(row.id))

    def get_custom_actions(self) -> list[CustomAction]:
        return [CustomAction("y", "duplicate", self.duplicate)]

    def duplicate(self, controller: "ListScreenController") -> None:
        row = controller.current_row()
        if row is None:
            controller.set_status("No row selected", is_error=True)
            return
        fields = row.to_dict()
        fields.pop("id", None)
        fields["name"] = f"{row.get('name', '')} (copy)"
        match controller.mutate(lambda: self.on_item_created(fields)):
            case Ok(new_row):
                controller.set_status(f"Duplicated: {self.describe(row)}")
                controller.load_data(keep_id=new_row.id)
            case Err(e):
                controller.set_status(f"Error (duplicate): {e}", is_error=True)
                controller.load_data()


# ---- notes ------------------------------------------------------------------


class NoteScreen(ListScreen):
    name = "notes"
    title = "Notes"
    view_modes = ("all",)
    default_sort = "updated_at"

    def get_columns(self, width: int) -> list[ColumnDefinition]:  # noqa: ARG002
        return [
            ColumnDefinition("title", "Title", fraction=0.35),
            ColumnDefinition("body", "Body", fraction=0.65, sortable=False, color=lambda _r: "muted"),
            ColumnDefinition("updated_at", "Updated", width=19),
        ]

    def get_edit_fields(self, row: Row | None) -> list[FieldSchema]:
        def value(name: str) -> Any:
            return None if row is None else row.get(name)

        return [
            FieldSchema("title", "Title", required=True, max_length=120, value=value("title")),
            FieldSchema("body", "Body", value=value("body")),
            FieldSchema("tags", "Tags", value=value("tags")),
        ]

    def on_item_created(self, values: dict[str, Any]) -> Result[Row, str]:
        return self.source.add({**values, "updated_at": now_iso()})

    def on_item_updated(self, row: Row, changes: dict[str, Any]) -> Result[Row, str]:
        return self.source.update(row.id, {**changes, "updated_at": now_iso()})

    def describe(self, row: Row) -> str:
        return str(row.get("title") or short_id(row.id))

    def get_custom_actions(self) -> list[CustomAction]:
        return [CustomAction("t", "touch", self.touch)]

    def touch(self, controller: "ListScreenController") -> None:
        row = controller.current_row()
        if row is None:
            controller.set_status("No row selected", is_error=True)
            return
        controller.apply_update(row, {}, label="Touched")


# ---- excel profiles ---------------------------------------------------------


class ExcelProfileScreen(ListScreen):
    name = "excel"
    title = "Excel profiles"
    view_modes = ("all",)
    default_sort = "name"

    def get_columns(self, width: int) -> list[ColumnDefinition]:  # noqa: ARG002
        return [
            ColumnDefinition("name", "Name", fraction=0.25),
            ColumnDefinition("direction", "Dir", width=6),
            ColumnDefinition("sheet", "Sheet", fraction=0.15),
            ColumnDefinition("start_row", "Row", width=4, align="right"),
            ColumnDefinition("mapping", "Mapping", fraction=0.3, sortable=False, color=self._mapping_role),
            ColumnDefinition("path", "Path", fraction=0.3, sortable=False),
        ]

    def get_edit_fields(self, row: Row | None) -> list[FieldSchema]:
        def value(name: str) -> Any:
            return None if row is None else row.get(name)

        return [
            FieldSchema("name", "Name", required=True, max_length=80, value=value("name")),
            FieldSchema(
                "direction",
                "Direction",
                type="choice",
                required=True,
                choices=DIRECTIONS,
                value=value("direction") or DIRECTIONS[0],
            ),
            FieldSchema("sheet", "Sheet", value=value("sheet") or "Sheet1"),
            FieldSchema("start_row", "Start row", type="int", value=value("start_row") or 2),
            FieldSchema("mapping", "Mapping", required=True, value=value("mapping")),
            FieldSchema("path", "Path", value=value("path")),
        ]

    def validate(self, values: dict[str, Any], row: Row | None) -> str | None:  # noqa: ARG002
        start_row = values.get("start_row")
        if start_row is not None and start_row < 1:
            return f"Start row must be >= 1 (got {start_row})"
        match parse_mapping(str(values.get("mapping") or "")):
            case Err(e):
                return f"Mapping: {e}"
        return None

    @staticmethod
    def _mapping_role(row: Row) -> str | None:
        return "error" if parse_mapping(str(row.get("mapping") or "")).is_err() else None

    def describe(self, row: Row) -> str:
        return str(row.get("name") or short_id(row.id))

    def get_custom_actions(self) -> list[CustomAction]:
        return [CustomAction("v", "validate mapping", self.check_mapping)]

    def check_mapping(self, controller: "ListScreenController") -> None:
        row = controller.current_row()
        if row is None:
            controller.set_status("No row selected", is_error=True)
            return
        match parse_mapping(str(row.get("mapping") or "")):
            case Ok(mapping):
                controller.set_status(f"{self.describe(row)}: {len(mapping)} column(s) OK")
            case Err(e):
                controller.set_status(f"{self.describe(row)}: {e}", is_error=True)


SCREEN_CLASSES: tuple[type[ListScreen], ...] = (
    TaskScreen,
    ChecklistScreen,
    CommandScreen,
    NoteScreen,
    ExcelProfileScreen,
)
SCREEN_KINDS: dict[str, str] = {
    "tasks": "task",
    "checklists": "checklist",
    "commands": "command",
    "notes": "note",
    "excel": "excel_profile",
}


def build_screens(sources: dict[str, RowSource]) -> list[ListScreen]:
    """One screen per entity kind present in `sources` (keyed by kind)."""
    screens: list[ListScreen] = []
    for cls in SCREEN_CLASSES:
        kind = SCREEN_KINDS[cls.name]
        if kind in sources:
            screens.append(cls(sources[kind]))
    return screens

