import curses
from dataclasses import dataclass
from typing import Protocol

from kanri.interfaces.tui.helper import _char_width
from kanri.interfaces.tui.style import ColorPair, Theme
from kanri.util.logger import setup_logger

logger = setup_logger("kanri", is_stream=False, is_file=True)

WIDE_CONTINUATION = ""


class RenderSurface(Protocol):
    """Cell-level drawing target consumed by the list screens."""

    theme: Theme

    def size(self) -> tuple[int, int]: ...

    def color(self, role: str | None) -> ColorPair: ...

    def write_at(self, x: int, y: int, text: str, fg: int | None = None, bg: int | None = None) -> int: ...

    def fill(
        self,
        x: int,
        y: int,
        w: int,
        h: int,
        ch: str = " ",
        fg: int | None = None,
        bg: int | None = None,
    ) -> None: ...

    def begin_layer(self, z: int) -> None: ...

    def end_layer(self) -> None: ...

    def set_cursor(self, x: int, y: int) -> None: ...

    def hide_cursor(self) -> None: ...


@dataclass
class Cell:
    ch: str = " "
    fg: int = -1
    bg: int = -1
    z: int = -1


class GridSurface:
    """In-memory frame buffer with z-ordered layers.

    Within one frame a cell owned by a higher layer is never overwritten by
    a lower one, so an overlay drawn before (or after) the list stays on top.
    """

    def __init__(self, width: int, height: int, theme: Theme | None = None) -> None:
        self.theme = theme or Theme()
        self.width = max(0, width)
        self.height = max(0, height)
        self.cursor: tuple[int, int] | None = None
        self._layers: list[int] = [0]
        self.cells: list[list[Cell]] = []
        self.clear()

    # ---- frame ----

    def clear(self) -> None:
        fg, bg = self.theme.color("default")
        self.cells = [[Cell(" ", fg, bg, -1) for _ in range(self.width)] for _ in range(self.height)]
        self.cursor = None
        self._layers = [0]

    def resize(self, width: int, height: int) -> None:
        self.width = max(0, width)
        self.height = max(0, height)
        self.clear()

    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def color(self, role: str | None) -> ColorPair:
        return self.theme.color(role)

    # ---- layers ----

    @property
    def z(self) -> int:
        return self._layers[-1]

    def begin_layer(self, z: int) -> None:
        self._layers.append(z)

    def end_layer(self) -> None:
        if len(self._layers) > 1:
            self._layers.pop()

    # ---- drawing ----

    def _put(self, x: int, y: int, ch: str, fg: int, bg: int) -> bool:
        if not (0 <= x < self.width and 0 <= y < self.height):
            return False
        cell = self.cells[y][x]
        if cell.z > self.z:
            return False
        cell.ch, cell.fg, cell.bg, cell.z = ch, fg, bg, self.z
        return True

    def write_at(self, x: int, y: int, text: str, fg: int | None = None, bg: int | None = None) -> int:
        """Write `text` starting at (x, y); returns the number of cells advanced."""
        dfg, dbg = self.theme.color("default")
        fg = dfg if fg is None else fg
        bg = dbg if bg is None else bg
        if not (0 <= y < self.height):
            return 0
        col = x
        for ch in text.replace("\t", " "):
            w = _char_width(ch)
            if w == 0:
                continue
            if col + w > self.width:
                break
            if col >= 0:
                self._put(col, y, ch, fg, bg)
                if w == 2:
                    self._put(col + 1, y, WIDE_CONTINUATION, fg, bg)
            col += w
        return col - x

    def fill(
        self,
        x: int,
        y: int,
        w: int,
        h: int,
        ch: str = " ",
        fg: int | None = None,
        bg: int | None = None,
    ) -> None:
        if w <= 0 or h <= 0:
            return
        line = ch * w
        for row in range(y, y + h):
            self.write_at(x, row, line, fg, bg)

    def set_cursor(self, x: int, y: int) -> None:
        if 0 <= x < self.width and 0 <= y < self.height:
            self.cursor = (x, y)
        else:
            _msg = f"Cursor position out of screen: row={y}, col={x}"
            logger.warning(_msg)
            self.cursor = None

    def hide_cursor(self) -> None:
        self.cursor = None

    # ---- inspection ----

    def text_at(self, y: int) -> str:
        return "".join(c.ch for c in self.cells[y])

    def cell(self, x: int, y: int) -> Cell:
        return self.cells[y][x]

    def runs(self, y: int) -> list[tuple[int, str, int, int]]:
        """Split row `y` into (x, text, fg, bg) runs of equal colors."""
        out: list[tuple[int, str, int, int]] = []
        start = 0
        buf: list[str] = []
        cur: tuple[int, int] | None = None
        for x, c in enumerate(self.cells[y]):
            if cur is not None and (c.fg, c.bg) != cur:
                out.append((start, "".join(buf), cur[0], cur[1]))
                buf = []
                start = x
            cur = (c.fg, c.bg)
            buf.append(c.ch)
        if cur is not None and buf:
            out.append((start, "".join(buf), cur[0], cur[1]))
        return out


class CursesSurface(GridSurface):
    """GridSurface presented to a curses window once per frame."""

    def __init__(self, stdscr: "curses.window", theme: Theme | None = None) -> None:
        self.stdscr = stdscr
        self._pairs: dict[ColorPair, int] = {}
        max_y, max_x = stdscr.getmaxyx()
        super().__init__(max_x, max_y, theme)

    def sync_size(self) -> None:
        max_y, max_x = self.stdscr.getmaxyx()
        if (max_x, max_y) != (self.width, self.height):
            self.resize(max_x, max_y)
        else:
            self.clear()

    def _attr(self, fg: int, bg: int) -> int:
        if not curses.has_colors():
            return curses.A_REVERSE if bg != -1 else 0
        key = (fg if fg < curses.COLORS else -1, bg if bg < curses.COLORS else -1)
        if key == (-1, -1):
            return 0
        idx = self._pairs.get(key)
        if idx is None:
            idx = len(self._pairs) + 1
            if idx >= curses.COLOR_PAIRS:
                return curses.A_REVERSE if bg != -1 else 0
            curses.init_pair(idx, key[0], key[1])
            self._pairs[key] = idx
        return curses.color_pair(idx)

    def _safe_addnstr(self, y: int, x: int, s: str, attr: int) -> None:
        limit = self.width - x
        # leave the bottom-right cell alone; writing it moves the cursor off screen
        if y == self.height - 1:
            limit -= 1
        n = min(len(s), limit)
        while n > 0:
            try:
                self.stdscr.addnstr(y, x, s[:n], n, attr)
            except curses.error:
                n -= 1
            else:
                return

    def present(self) -> None:
        self.stdscr.erase()
        for y in range(self.height):
            for x, text, fg, bg in self.runs(y):
                self._safe_addnstr(y, x, text, self._attr(fg, bg))
        try:
            if self.cursor is None:
                curses.curs_set(0)
            else:
                curses.curs_set(1)
                self.stdscr.move(self.cursor[1], self.cursor[0])
        except curses.error:
            # not every terminal supports cursor visibility changes
            logger.debug("Cursor control failed")
        self.stdscr.refresh()
