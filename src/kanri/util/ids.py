import uuid
from datetime import datetime

from pyresults import Err, Ok, Result

from kanri.core.models import RowId

LENGTH_SHORTENED_ID = 8


def gen_row_id(kind: str) -> str:
    ts = datetime.now().astimezone().strftime("%Y%m%d%H%M%S")
    return f"{uuid.uuid4().hex[:LENGTH_SHORTENED_ID]}_{ts}_{kind}"


def short_id(row_id: object) -> str:
    return str(row_id)[:LENGTH_SHORTENED_ID]


def resolve_row_id(
    s: str,
    *,
    source_ids: list[RowId],
    shortened_length: int | None = LENGTH_SHORTENED_ID,
) -> Result[RowId, str]:
    """Map user input to an existing row id (full id, or a unique short prefix)."""
    s = s.strip()
    if len(s) == 0:
        return Err[RowId, str]("Empty ID")
    # full ID search
    candidates = [rid for rid in source_ids if str(rid) == s]
    # shortened prefix search
    if len(candidates) == 0 and shortened_length is not None and len(s) >= min(3, shortened_length):
        candidates = [rid for rid in source_ids if str(rid).startswith(s)]
    # match only one
    if len(candidates) == 1:
        return Ok[RowId, str](candidates[0])
    # multiple matches
    if len(candidates) > 1:
        _msg = f"Ambiguous ID: {s} (multiple rows. Please set full ID.)"
        return Err[RowId, str](_msg)
    _msg = f"Unknown ID: {s} (please set correct ID.)"
    return Err[RowId, str](_msg)
