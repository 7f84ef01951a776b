import unicodedata

from kanri.core.models import Align


def _char_width(ch: str) -> int:
    """Calculate the width of a character in the terminal."""
    if len(ch) == 0:
        return 0
    # 制御文字
    if ch < " ":
        return 0
    # 結合文字 (濁点など)
    if unicodedata.combining(ch):
        return 0
    # 東アジア文字幅プロパティ
    # F: full-width, W: wide, A: ambiguous は2セル幅
    if unicodedata.east_asian_width(ch) in ("F", "W", "A"):
        return 2
    return 1


def _string_width(s: str) -> int:
    """Calculate the width of a string in the terminal."""
    return sum(map(_char_width, s))


def clip_to_width(s: str, width: int, *, ellipsis: str = "") -> str:
    """Cut `s` so that it occupies at most `width` cells."""
    if width <= 0:
        return ""
    s = s.replace("\t", " ").replace("\n", " ")
    if _string_width(s) <= width:
        return s
    room = width - _string_width(ellipsis)
    out: list[str] = []
    used = 0
    for ch in s:
        w = _char_width(ch)
        if used + w > room:
            break
        out.append(ch)
        used += w
    return "".join(out) + (ellipsis if room >= 0 else "")


def fit_to_width(s: str, width: int, align: Align = "left") -> str:
    """Clip and pad `s` to exactly `width` cells."""
    s = clip_to_width(s, width, ellipsis="~" if width > 1 else "")
    pad = max(0, width - _string_width(s))
    match align:
        case "right":
            return " " * pad + s
        case "center":
            left = pad // 2
            return " " * left + s + " " * (pad - left)
        case _:
            return s + " " * pad
