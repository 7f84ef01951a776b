from datetime import date, datetime
from typing import Any

from pyresults import Err, Ok, Result

ISO_FMT = "%Y-%m-%dT%H:%M:%S"
DATE_FMT = "%Y-%m-%d"


def now_iso() -> str:
    return datetime.now().astimezone().strftime(ISO_FMT)


def today() -> date:
    return datetime.now().astimezone().date()


def parse_date(value: Any) -> Result[date, str]:
    """Parse a row value into a date.

    Accepts `date`/`datetime` objects, `YYYY-MM-DD` strings and full ISO
    datetime strings.
    """
    match value:
        case None | "":
            return Err[date, str]("Empty date")
        case datetime():
            return Ok[date, str](value.date())
        case date():
            return Ok[date, str](value)
        case str():
            s = value.strip()
            try:
                if len(s) == len("YYYY-MM-DD"):
                    return Ok[date, str](datetime.strptime(s, DATE_FMT).date())  # noqa: DTZ007
                return Ok[date, str](datetime.fromisoformat(s).date())
            except ValueError:
                return Err[date, str](f"Invalid date: {s!r} (expected YYYY-MM-DD)")
        case _:
            return Err[date, str](f"Invalid date: {value!r}")
