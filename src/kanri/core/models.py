import copy
import curses
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from kanri.interfaces.tui.controller import ListScreenController

RowId = str | int
Align = Literal["left", "right", "center"]
FieldType = Literal["text", "int", "date", "bool", "choice"]

# expected field names per entity kind ("id" is always required)
ENTITY_SCHEMAS: dict[str, tuple[str, ...]] = {
    "task": ("id", "text", "due", "priority", "completed", "parent_id", "tags"),
    "checklist": ("id", "text", "completed", "parent_id", "note"),
    "command": ("id", "name", "command", "category", "description"),
    "note": ("id", "title", "body", "tags", "updated_at"),
    "excel_profile": ("id", "name", "direction", "sheet", "start_row", "mapping", "path"),
}


@dataclass
class Row:
    """One entity record as a field-name -> value map.

    `id` is required and stable across reloads. `parent_id` (optional)
    references another row's id and forms the display tree.
    """

    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> RowId:
        return self.fields.get("id", "")

    @property
    def parent_id(self) -> RowId | None:
        pid = self.fields.get("parent_id")
        if pid in (None, ""):
            return None
        return pid

    @property
    def completed(self) -> bool:
        return bool(self.fields.get("completed", False))

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def with_changes(self, changes: dict[str, Any]) -> "Row":
        return Row({**copy.deepcopy(self.fields), **copy.deepcopy(changes)})

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.fields)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "Row":
        return Row(copy.deepcopy(dict(d)))


@dataclass
class ColumnDefinition:
    """Static per-screen column descriptor.

    Either `width` (cells) or `fraction` (of the available width) sizes the
    column. `color` returns a theme role name for the cell.
    """

    name: str
    label: str
    width: int | None = None
    fraction: float | None = None
    align: Align = "left"
    format: Callable[[Row], str] | None = None
    color: Callable[[Row], str | None] | None = None
    skip_row_highlight: Callable[[Row], bool] | None = None
    sortable: bool = True


@dataclass
class FieldSchema:
    name: str
    label: str
    type: FieldType = "text"
    required: bool = False
    max_length: int | None = None
    value: Any = None
    choices: tuple[str, ...] = ()


@dataclass
class CustomAction:
    key: str
    label: str
    callback: "Callable[[ListScreenController], None]"


# key codes outside curses' KEY_* range
KEY_TAB = 9
KEY_ENTER_LF = 10
KEY_ENTER_CR = 13
KEY_ESC = 27
KEY_SPACE = 32
KEY_DEL_ASCII = 127
KEY_CTRL_S = 19
KEY_CTRL_U = 21
ENTER_KEYS = (curses.KEY_ENTER, KEY_ENTER_LF, KEY_ENTER_CR)
BACKSPACE_KEYS = (curses.KEY_BACKSPACE, KEY_DEL_ASCII, 8)


@dataclass(frozen=True)
class KeyEvent:
    """Key + modifier event, independent of the terminal library."""

    key: int
    ch: str | None = None
    ctrl: bool = False
    alt: bool = False
    shift: bool = False

    def is_char(self, c: str) -> bool:
        return self.ch == c and not self.ctrl and not self.alt

    @property
    def is_printable(self) -> bool:
        return self.ch is not None and len(self.ch) > 0 and self.ch >= " " and not self.ctrl

    @staticmethod
    def of(ch: str) -> "KeyEvent":
        return KeyEvent(ord(ch), ch)

    @staticmethod
    def from_curses(raw: int | str) -> "KeyEvent":
        """Build an event from a `get_wch()` result."""
        if isinstance(raw, str):
            key = ord(raw)
            # control characters (except Tab/Enter/Esc/Backspace) arrive as ^X
            ctrl = 0 < key < KEY_SPACE and key not in (KEY_TAB, KEY_ENTER_LF, KEY_ENTER_CR, KEY_ESC, 8)
            return KeyEvent(key, None if key < KEY_SPACE or key == KEY_DEL_ASCII else raw, ctrl=ctrl)
        return KeyEvent(raw, None, shift=raw == curses.KEY_BTAB)
