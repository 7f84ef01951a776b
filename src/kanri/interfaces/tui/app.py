import argparse
import curses

from kanri.core.models import KEY_TAB, KeyEvent
from kanri.interfaces.tui.controller import ListScreenController
from kanri.interfaces.tui.helper import fit_to_width
from kanri.interfaces.tui.screens import SCREEN_KINDS, build_screens
from kanri.interfaces.tui.style import TAB_BAR_HEIGHT, Theme, load_theme
from kanri.interfaces.tui.surface import CursesSurface, GridSurface
from kanri.storage import get_row_source
from kanri.storage.base import RowSource
from kanri.util.dirs import load_env
from kanri.util.logger import setup_logger

logger = setup_logger("kanri", is_stream=False, is_file=True)

MIN_WIDTH = 20
MIN_HEIGHT = 8


class App:
    """Tabbed shell around one ListScreenController per entity screen.

    Only the foreground controller is active; the others keep their state
    and reload on activation when their row source changed meanwhile.
    """

    def __init__(self, controllers: list[ListScreenController], surface: GridSurface, *, initial: int = 0) -> None:
        if not controllers:
            _msg = "App needs at least one screen"
            raise ValueError(_msg)
        self.controllers = controllers
        self.surface = surface
        self.index = max(0, min(initial, len(controllers) - 1))
        self.running = True
        for c in self.controllers:
            c.attach()
        self.current.activate()

    @property
    def current(self) -> ListScreenController:
        return self.controllers[self.index]

    # ---- screens ----------------------------------------------------------

    def switch_to(self, index: int) -> None:
        index %= len(self.controllers)
        if index == self.index:
            return
        if self.current.editor.is_open:
            self.current.set_status("Finish or cancel the edit first", is_error=True)
            return
        self.current.deactivate()
        self.index = index
        self.current.activate()
        logger.debug("Switched to screen %s", self.current.screen.name)

    def switch_by_name(self, name: str) -> bool:
        for idx, c in enumerate(self.controllers):
            if c.screen.name == name:
                self.switch_to(idx)
                return True
        return False

    # ---- keys -------------------------------------------------------------

    def handle_key(self, event: KeyEvent) -> bool:
        """Route one key; returns False when the app should exit.

        The current screen sees the key first (its editor, custom actions and
        list keys); quit and screen switching only get what it leaves.
        """
        if event.key == curses.KEY_RESIZE:
            self.resize()
            return True
        if self.current.handle_key(event):
            return True
        if event.is_char("q"):
            self.running = False
            return False
        if event.key == KEY_TAB and not event.shift:
            self.switch_to(self.index + 1)
            return True
        if event.key == curses.KEY_BTAB or (event.key == KEY_TAB and event.shift):
            self.switch_to(self.index - 1)
            return True
        if event.ch is not None and event.ch.isdigit() and 1 <= int(event.ch) <= len(self.controllers):
            self.switch_to(int(event.ch) - 1)
        return True

    def resize(self) -> None:
        if isinstance(self.surface, CursesSurface):
            self.surface.sync_size()
        self.current.needs_render = True

    # ---- rendering ----------------------------------------------------------

    def tab_labels(self) -> list[str]:
        return [f" {n}:{c.screen.title} " for n, c in enumerate(self.controllers, start=1)]

    def draw(self) -> None:
        surface = self.surface
        surface.clear()
        width, height = surface.size()
        if width < MIN_WIDTH or height < MIN_HEIGHT:
            surface.write_at(0, 0, fit_to_width("Terminal too small", width), *surface.color("status_error"))
            self._present()
            return

        x = 0
        fg, bg = surface.color("tab")
        surface.write_at(0, 0, " " * width, fg, bg)
        for idx, label in enumerate(self.tab_labels()):
            role = "tab_active" if idx == self.index else "tab"
            x += surface.write_at(x, 0, label, *surface.color(role))
            if x >= width:
                break

        self.current.render(surface, top=TAB_BAR_HEIGHT)
        self._present()

    def _present(self) -> None:
        if isinstance(self.surface, CursesSurface):
            self.surface.present()

    def close(self) -> None:
        for c in self.controllers:
            c.detach()


def build_sources(env: dict[str, str]) -> dict[str, RowSource]:
    return {kind: get_row_source(kind, env) for kind in SCREEN_KINDS.values()}


def build_app(surface: GridSurface, args: argparse.Namespace | None = None) -> App:
    """Wire config, row sources, screens and controllers into an App."""
    env = load_env()
    theme_name = getattr(args, "theme", None) or env["THEME"]
    theme: Theme = load_theme(theme_name, env["THEME_PATH"] or None)
    surface.theme = theme

    controllers = [ListScreenController(s, theme=theme) for s in build_screens(build_sources(env))]
    app = App(controllers, surface)

    if (screen := getattr(args, "screen", None)) and not app.switch_by_name(screen):
        logger.warning("Unknown screen: %s", screen)
    for c in app.controllers:
        if view := getattr(args, "view", None):
            if view in c.screen.view_modes:
                c.engine.set_view_mode(view)
        if text := getattr(args, "filter", None):
            c.engine.set_text_filter(text)
    return app
