import curses
from collections.abc import Callable
from typing import Any

from pyresults import Err, Ok, Result

from kanri.core.models import (
    BACKSPACE_KEYS,
    ENTER_KEYS,
    KEY_CTRL_S,
    KEY_CTRL_U,
    KEY_ESC,
    KEY_TAB,
    FieldSchema,
    KeyEvent,
    Row,
)
from kanri.interfaces.tui.data import EditMode, EditorOutcome, EditSession, FieldState
from kanri.interfaces.tui.helper import _string_width, clip_to_width, fit_to_width
from kanri.interfaces.tui.style import MAX_EDITOR_BOX_WIDTH
from kanri.interfaces.tui.surface import RenderSurface
from kanri.util.logger import setup_logger
from kanri.util.time import parse_date

logger = setup_logger("kanri", is_stream=False, is_file=True)

EDITOR_LAYER = 1
TRUE_WORDS = ("y", "yes", "true", "1", "x", "on")
FALSE_WORDS = ("", "n", "no", "false", "0", "off")

# (session, converted values) -> form-level error message or None
FormValidator = Callable[[EditSession, dict[str, Any]], str | None]
# (session, converted values) -> None; called once the form is valid
SubmitHandler = Callable[[EditSession, dict[str, Any]], None]


def _initial_buffer(schema: FieldSchema) -> str:
    value = schema.value
    match value:
        case None:
            return ""
        case bool():
            return "yes" if value else "no"
        case list() | tuple():
            return ", ".join(str(v) for v in value)
        case _:
            return str(value)


def convert_field(fs: FieldState) -> Result[Any, str]:
    """Validate one field and convert its buffer to a Python value."""
    schema = fs.schema
    text = fs.buffer.strip()
    if text == "":
        if schema.required:
            return Err[Any, str](f"{schema.label} is required")
        return Ok[Any, str](False if schema.type == "bool" else None)
    if schema.max_length is not None and len(text) > schema.max_length:
        return Err[Any, str](f"{schema.label} is longer than {schema.max_length} characters")
    match schema.type:
        case "int":
            try:
                return Ok[Any, str](int(text))
            except ValueError:
                return Err[Any, str](f"{schema.label}: invalid number '{text}'")
        case "date":
            match parse_date(text):
                case Ok(d):
                    return Ok[Any, str](d.isoformat())
                case Err(e):
                    return Err[Any, str](f"{schema.label}: {e}")
                case _:
                    return Err[Any, str]("Unexpected error")
        case "bool":
            low = text.casefold()
            if low in TRUE_WORDS:
                return Ok[Any, str](value=True)
            if low in FALSE_WORDS:
                return Ok[Any, str](value=False)
            return Err[Any, str](f"{schema.label}: expected yes/no")
        case "choice":
            if schema.choices and text not in schema.choices:
                return Err[Any, str](f"{schema.label}: expected one of {', '.join(schema.choices)}")
            return Ok[Any, str](text)
        case _:
            return Ok[Any, str](text)


class InlineEditorOverlay:
    """Transient add/edit form drawn over the list at the edited row.

    While a session is open every key is consumed. Enter / Ctrl+S confirm
    and Escape cancels; nothing else leaves the overlay.
    """

    def __init__(self, on_submit: SubmitHandler, validator: FormValidator | None = None) -> None:
        self.session: EditSession | None = None
        self._on_submit = on_submit
        self._validator = validator
        self.offset = 0  # first visible field when the form is taller than the area

    @property
    def is_open(self) -> bool:
        return self.session is not None

    def open(
        self,
        mode: EditMode,
        row: Row | None,
        fields: list[FieldSchema],
        position: tuple[int, int] | None,
    ) -> Result[None, str]:
        """Begin a session at screen `position` (x, y)."""
        if self.session is not None:
            return Err[None, str]("Editor already open")
        if not fields:
            return Err[None, str]("No editable fields")
        if mode == "edit" and row is None:
            return Err[None, str]("No row selected")
        if position is None:
            return Err[None, str]("Row not visible")
        states = [FieldState(schema=f, buffer=_initial_buffer(f)) for f in fields]
        for fs in states:
            fs.cursor = len(fs.buffer)
        x, y = position
        self.session = EditSession(mode=mode, row=row, fields=states, screen_x=x, screen_y=y)
        self.offset = 0
        return Ok[None, str](None)

    def close(self) -> None:
        self.session = None
        self.offset = 0

    # ---- keys -------------------------------------------------------------

    def handle_key(self, event: KeyEvent) -> EditorOutcome:  # noqa: C901
        ses = self.session
        if ses is None:
            return "handled"
        key = event.key
        fs = ses.current_field()

        if key in ENTER_KEYS or key == KEY_CTRL_S:
            return self.confirm()
        if key == KEY_ESC:
            self.cancel()
            return "cancelled"

        # field navigation
        if key in (KEY_TAB, curses.KEY_DOWN) and not event.shift:
            self._focus((ses.current_index + 1) % len(ses.fields))
        elif key in (curses.KEY_BTAB, curses.KEY_UP) or (key == KEY_TAB and event.shift):
            self._focus((ses.current_index - 1) % len(ses.fields))
        # editing within the field
        elif key in BACKSPACE_KEYS:
            if fs.cursor > 0:
                fs.buffer = fs.buffer[: fs.cursor - 1] + fs.buffer[fs.cursor :]
                fs.cursor -= 1
        elif key == curses.KEY_DC:
            if fs.cursor < len(fs.buffer):
                fs.buffer = fs.buffer[: fs.cursor] + fs.buffer[fs.cursor + 1 :]
        elif key == curses.KEY_LEFT:
            fs.cursor = max(0, fs.cursor - 1)
        elif key == curses.KEY_RIGHT:
            fs.cursor = min(len(fs.buffer), fs.cursor + 1)
        elif key == curses.KEY_HOME:
            fs.cursor = 0
        elif key == curses.KEY_END:
            fs.cursor = len(fs.buffer)
        elif key == KEY_CTRL_U:
            fs.buffer = ""
            fs.cursor = 0
        elif event.ch == " " and fs.schema.type in ("bool", "choice"):
            self._toggle(fs)
        elif event.is_printable and event.ch is not None:
            fs.buffer = fs.buffer[: fs.cursor] + event.ch + fs.buffer[fs.cursor :]
            fs.cursor += len(event.ch)
        # everything else is swallowed while the editor is open
        fs.error = None
        ses.error = None
        return "handled"

    def _focus(self, index: int) -> None:
        ses = self.session
        if ses is None:
            return
        ses.current_index = index
        f = ses.fields[index]
        f.cursor = len(f.buffer)

    def _toggle(self, fs: FieldState) -> None:
        if fs.schema.type == "bool":
            fs.buffer = "no" if fs.buffer.strip().casefold() in TRUE_WORDS else "yes"
        elif fs.schema.choices:
            choices = fs.schema.choices
            try:
                idx = choices.index(fs.buffer.strip())
            except ValueError:
                idx = -1
            fs.buffer = choices[(idx + 1) % len(choices)]
        fs.cursor = len(fs.buffer)

    # ---- confirm / cancel -------------------------------------------------

    def collect(self) -> Result[dict[str, Any], str]:
        """Validate every field; the first failing field gets the focus."""
        ses = self.session
        if ses is None:
            return Err[dict[str, Any], str]("Editor is not open")
        values: dict[str, Any] = {}
        first_error: tuple[int, str] | None = None
        for idx, fs in enumerate(ses.fields):
            match convert_field(fs):
                case Ok(v):
                    fs.error = None
                    values[fs.name] = v
                case Err(e):
                    fs.error = e
                    if first_error is None:
                        first_error = (idx, e)
        if first_error is not None:
            ses.current_index = first_error[0]
            return Err[dict[str, Any], str](first_error[1])
        return Ok[dict[str, Any], str](values)

    def confirm(self) -> EditorOutcome:
        ses = self.session
        if ses is None:
            return "handled"
        match self.collect():
            case Ok(values):
                pass
            case Err(e):
                ses.error = e
                return "invalid"
            case _:
                ses.error = "Unexpected error"
                return "invalid"
        if self._validator is not None and (msg := self._validator(ses, values)):
            ses.error = msg
            return "invalid"
        # close before submitting; the submit handler reloads the list
        self.close()
        self._on_submit(ses, values)
        return "confirmed"

    def cancel(self) -> None:
        self.close()

    # ---- rendering ----------------------------------------------------------

    def render(self, surface: RenderSurface, *, left: int, width: int, top_limit: int, bottom_limit: int) -> None:
        """Draw the form anchored at the session row, inside [top_limit, bottom_limit)."""
        ses = self.session
        if ses is None:
            return
        num_fields = len(ses.fields)
        area = max(3, bottom_limit - top_limit)
        box_width = max(10, min(MAX_EDITOR_BOX_WIDTH, width - (ses.screen_x - left)))
        # title(1) + fields + message/hint(1)
        box_height = min(num_fields + 2, area)
        field_rows = max(1, box_height - 2)

        # keep the focused field inside the visible window
        max_offset = max(0, num_fields - field_rows)
        self.offset = max(0, min(self.offset, max_offset))
        if ses.current_index < self.offset:
            self.offset = ses.current_index
        elif ses.current_index >= self.offset + field_rows:
            self.offset = ses.current_index - field_rows + 1

        # start on the edited row, shift up when the box would run past the area
        top = ses.screen_y
        if top + box_height > bottom_limit:
            top = bottom_limit - box_height
        top = max(top_limit, top)
        x = ses.screen_x

        surface.begin_layer(EDITOR_LAYER)
        try:
            fg, bg = surface.color("editor")
            surface.fill(x, top, box_width, box_height, " ", fg, bg)
            match ses.mode:
                case "add":
                    title = "[Add]"
                case "filter":
                    title = "[Filter]"
                case _:
                    title = f"[Edit {ses.target_id}]"
            surface.write_at(x, top, fit_to_width(title, box_width), fg, bg)

            label_width = min(max(_string_width(f.label) for f in ses.fields) + 4, box_width // 2)
            input_width = max(1, box_width - label_width)
            end_index = min(self.offset + field_rows, num_fields)
            for row, idx in enumerate(range(self.offset, end_index), start=1):
                fs = ses.fields[idx]
                focused = idx == ses.current_index
                marker = ">" if focused else " "
                star = "*" if fs.schema.required else " "
                label = fit_to_width(f"{marker}{star}{fs.label}: ", label_width)
                value = fs.buffer
                # show the tail when the input overflows
                while _string_width(value) > input_width - 1 and value:
                    value = value[1:]
                lfg, lbg = surface.color("error" if fs.error else "editor")
                surface.write_at(x, top + row, label, lfg, lbg)
                vfg, vbg = surface.color("editor_focus" if focused else "editor")
                surface.write_at(x + label_width, top + row, fit_to_width(value, input_width), vfg, vbg)

            if ses.error:
                efg, ebg = surface.color("error")
                surface.write_at(x, top + box_height - 1, fit_to_width(ses.error, box_width), efg, ebg)
            else:
                hint = "[Tab/S-Tab: Move, Enter/^S: Save, Esc: Cancel]"
                surface.write_at(x, top + box_height - 1, fit_to_width(hint, box_width), fg, bg)

            # terminal cursor in the focused field
            if self.offset <= ses.current_index < end_index:
                fs = ses.current_field()
                shown = fs.buffer
                hidden = 0
                while _string_width(shown) > input_width - 1 and shown:
                    shown = shown[1:]
                    hidden += 1
                before = clip_to_width(fs.buffer[hidden : max(hidden, fs.cursor)], input_width - 1)
                surface.set_cursor(
                    x + label_width + _string_width(before),
                    top + 1 + ses.current_index - self.offset,
                )
        finally:
            surface.end_layer()
