import argparse
import curses
import locale

from kanri.core.models import KeyEvent
from kanri.interfaces.tui.app import build_app
from kanri.interfaces.tui.surface import CursesSurface


def main(stdscr: curses.window, args: argparse.Namespace | None = None) -> int:
    stdscr.keypad(True)  # noqa: FBT003
    if curses.has_colors():
        curses.start_color()
        curses.use_default_colors()
    surface = CursesSurface(stdscr)
    app = build_app(surface, args)
    try:
        while app.running:
            app.draw()
            key_raw = stdscr.get_wch()
            if not app.handle_key(KeyEvent.from_curses(key_raw)):
                break
    finally:
        app.close()
    return 0


def run(args: argparse.Namespace | None = None) -> int:
    locale.setlocale(locale.LC_ALL, "")
    # shorter Esc delay so cancelling the editor feels immediate
    curses.set_escdelay(25)
    return curses.wrapper(main, args)
