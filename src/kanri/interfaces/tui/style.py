from dataclasses import dataclass, field
from pathlib import Path

import yaml  # type: ignore[import-untyped]

from kanri.util.logger import setup_logger

logger = setup_logger("kanri", is_stream=False, is_file=True)

# (foreground, background) as curses color numbers, -1 = terminal default
ColorPair = tuple[int, int]

DEFAULT_COLORS: dict[str, ColorPair] = {
    "default": (-1, -1),
    "title": (166, -1),
    "header": (15, 238),
    "tab": (250, -1),
    "tab_active": (0, 166),
    "row": (-1, -1),
    "selected": (-1, 7),
    "marked": (11, -1),
    "completed": (10, -1),
    "overdue": (9, -1),
    "today": (12, -1),
    "muted": (8, -1),
    "add_row": (166, -1),
    "editor": (-1, 236),
    "editor_focus": (15, 24),
    "error": (9, 236),
    "status": (-1, -1),
    "status_error": (9, -1),
    "footer": (250, -1),
}

# roles drawn as black-on-white in the mono theme (reverse video without colors)
REVERSE_ROLES = frozenset({"selected", "tab_active", "header", "editor_focus", "marked"})

MONO_COLORS: dict[str, ColorPair] = {
    role: ((0, 7) if role in REVERSE_ROLES else (-1, -1)) for role in DEFAULT_COLORS
}

BUILTIN_THEMES: dict[str, dict[str, ColorPair]] = {
    "default": DEFAULT_COLORS,
    "mono": MONO_COLORS,
}

MIN_COLUMN_WIDTH = 3
COLUMN_SEPARATOR = " "
HEADER_HEIGHT = 2  # title, status line
TAB_BAR_HEIGHT = 1
FOOTER_HEIGHT = 2  # actions, status message
LIST_CHROME_HEIGHT = 1  # column header row
MAX_EDITOR_BOX_WIDTH = 80


@dataclass
class Theme:
    """Semantic role -> color pair lookup."""

    name: str = "default"
    colors: dict[str, ColorPair] = field(default_factory=lambda: dict(DEFAULT_COLORS))

    def color(self, role: str | None) -> ColorPair:
        if role is None:
            return self.colors["default"]
        pair = self.colors.get(role)
        if pair is None:
            _msg = f"Unknown theme role: {role!r}"
            logger.warning(_msg)
            self.colors[role] = self.colors["default"]
            return self.colors["default"]
        return pair


def load_theme(name: str = "default", path: str | None = None) -> Theme:
    """Build a theme from a built-in palette plus optional YAML overrides.

    The override file looks like `{"roles": {"selected": [0, 7], ...}}`.
    """
    base = BUILTIN_THEMES.get(name)
    if base is None:
        _msg = f"Unknown theme: {name!r}, using 'default'"
        logger.warning(_msg)
        name, base = "default", DEFAULT_COLORS
    theme = Theme(name=name, colors=dict(base))
    if not path:
        return theme

    _path = Path(path)
    if not _path.exists():
        _msg = f"Theme file not found: {_path}"
        logger.warning(_msg)
        return theme
    try:
        with _path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError:
        _msg = f"Failed to load theme file: {_path}"
        logger.exception(_msg)
        return theme
    for role, pair in (raw.get("roles") or {}).items():
        if isinstance(pair, list | tuple) and len(pair) == 2 and all(isinstance(c, int) for c in pair):
            theme.colors[str(role)] = (pair[0], pair[1])
        else:
            _msg = f"Invalid color for role {role!r}: {pair!r}"
            logger.warning(_msg)
    return theme


class HeaderLines:
    """Header/footer text for list screens."""

    @classmethod
    def title(cls, screen_title: str) -> str:
        return f"--- kanri > {screen_title} --- [Tab/1-5 Screen] [(q)uit]"

    @classmethod
    def status(
        cls,
        view_label: str,
        sort_label: str,
        completed_label: str,
        filter_label: str,
        count_label: str,
    ) -> str:
        return "".join(
            [
                f"[(v)iew: {view_label}] ",
                f"[(s)ort/(o)rder: {sort_label}] ",
                f"[(c)ompleted: {completed_label}] ",
                f"[filter: {filter_label}] ",
                f"{count_label}",
            ],
        )

    @classmethod
    def help(cls) -> str:
        return "[(a)dd] [(A)dd child] [(e)dit] [(d)elete] [Space: collapse/done] [(m)ark] [/ filter]"
