from collections.abc import Callable
from datetime import date

from pyresults import Ok

from kanri.core.models import Row
from kanri.util.logger import setup_logger
from kanri.util.time import parse_date

logger = setup_logger("kanri", is_stream=False, is_file=True)

ViewPredicate = Callable[[Row, date], bool]

DEFAULT_VIEW_MODE = "all"


def _due(row: Row) -> date | None:
    match parse_date(row.get("due")):
        case Ok(d):
            return d
        case _:
            return None


def _is_overdue(row: Row, today: date) -> bool:
    due = _due(row)
    return due is not None and due < today and not row.completed


def _is_due_today(row: Row, today: date) -> bool:
    return _due(row) == today


VIEW_MODES: dict[str, ViewPredicate] = {
    "all": lambda _row, _today: True,
    "active": lambda row, _today: not row.completed,
    "completed": lambda row, _today: row.completed,
    "overdue": _is_overdue,
    "today": _is_due_today,
}


def resolve_view_mode(name: str) -> tuple[str, ViewPredicate]:
    """Return (effective name, predicate); unknown names fall back to "all"."""
    predicate = VIEW_MODES.get(name)
    if predicate is None:
        _msg = f"Unknown view mode: {name!r}, falling back to {DEFAULT_VIEW_MODE!r}"
        logger.warning(_msg)
        return DEFAULT_VIEW_MODE, VIEW_MODES[DEFAULT_VIEW_MODE]
    return name, predicate
