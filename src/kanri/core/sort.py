from datetime import date, datetime
from typing import Any

from kanri.core.models import Row


def is_absent(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def row_sort_key(row: Row, column: str) -> tuple[int, Any]:
    """Sort key for a present value.

    Numbers (and booleans) order before dates, dates before text, so a
    column with mixed value types never raises TypeError.
    """
    value = row.get(column)
    match value:
        case bool():
            return (0, int(value))
        case int() | float():
            return (0, value)
        case datetime():
            return (1, value.isoformat())
        case date():
            return (1, value.isoformat())
        case str():
            return (2, value.casefold())
        case _:
            return (3, str(value).casefold())


def sort_rows(rows: list[Row], column: str | None, *, descending: bool = False) -> list[Row]:
    """Stable sort by `column`; rows without a value always come last.

    The direction only applies within the group of rows that carry a value.
    """
    if column is None:
        return list(rows)
    # 値が無い行は昇順・降順に関わらず末尾
    present = [r for r in rows if not is_absent(r.get(column))]
    absent = [r for r in rows if is_absent(r.get(column))]
    # sorted(reverse=True) keeps equal elements in their original order
    present = sorted(present, key=lambda r: row_sort_key(r, column), reverse=descending)
    return present + absent
