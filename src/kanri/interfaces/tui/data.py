from dataclasses import dataclass, field
from typing import Literal

from kanri.core.models import FieldSchema, Row, RowId
from kanri.core.view_modes import DEFAULT_VIEW_MODE

Mode = Literal[
    "idle",
    "editing",
]
EditMode = Literal[
    "add",
    "edit",
    "filter",
]
EditorOutcome = Literal[
    "handled",
    "confirmed",
    "cancelled",
    "invalid",
]


@dataclass
class FilterState:
    view_mode: str = DEFAULT_VIEW_MODE  # named predicate, see core.view_modes
    sort_column: str | None = None  # None = source order
    sort_descending: bool = False
    text: str = ""  # free-text filter (case-insensitive substring)
    show_completed: bool = True
    collapsed: set[RowId] = field(default_factory=set)  # parent ids whose children are hidden

    def cache_key(self) -> str:
        collapsed = ",".join(sorted(repr(c) for c in self.collapsed))
        return "|".join(
            [
                f"view={self.view_mode}",
                f"sort={self.sort_column}",
                f"desc={self.sort_descending}",
                f"text={self.text.casefold()}",
                f"completed={self.show_completed}",
                f"collapsed={collapsed}",
            ],
        )


@dataclass(frozen=True)
class DisplayedRow:
    """One line of the flattened, displayed sequence."""

    row: Row
    depth: int = 0
    has_children: bool = False
    collapsed: bool = False
    orphan: bool = False

    @property
    def id(self) -> RowId:
        return self.row.id


@dataclass
class FieldState:
    """Single-line field in the inline editor."""

    schema: FieldSchema
    buffer: str = ""  # text being edited
    cursor: int = 0  # cursor position within buffer
    error: str | None = None

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def label(self) -> str:
        return self.schema.label


@dataclass
class EditSession:
    mode: EditMode
    row: Row | None  # None in add and filter mode
    fields: list[FieldState] = field(default_factory=list)
    current_index: int = 0
    screen_y: int = 0  # row at which the overlay is anchored
    screen_x: int = 0
    error: str | None = None  # form-level message

    @property
    def target_id(self) -> RowId | None:
        return None if self.row is None else self.row.id

    def current_field(self) -> FieldState:
        return self.fields[self.current_index]

    def raw_values(self) -> dict[str, str]:
        return {f.name: f.buffer.strip() for f in self.fields}


@dataclass
class StatusMessage:
    text: str = ""
    is_error: bool = False

