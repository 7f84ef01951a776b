import json
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pyresults import Err, Ok, Result

from kanri.storage.base import RowSource


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in (".yaml", ".yml")


def export_rows(source: RowSource, path: str) -> Result[int, str]:
    """Write all rows of `source` to a new JSON or YAML file (by suffix)."""
    _path = Path(path)
    if _path.exists():
        return Err[int, str](f"File already exists: {_path}")
    match source.get_all():
        case Ok(rows):
            data = {"kind": source.kind, "rows": [r.to_dict() for r in rows]}
        case Err(e):
            return Err[int, str](e)
        case _:
            return Err[int, str]("Unexpected error")
    with _path.open("w", encoding="utf-8") as f:
        if _is_yaml(_path):
            yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False)
        else:
            json.dump(data, f, ensure_ascii=False, indent=2, default=str)
    return Ok[int, str](len(data["rows"]))


def read_rows(path: str) -> Result[list[dict[str, Any]], str]:
    _path = Path(path)
    if not _path.exists():
        return Err[list[dict[str, Any]], str](f"File not found: {_path}")
    try:
        with _path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f) if _is_yaml(_path) else json.load(f)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        return Err[list[dict[str, Any]], str](f"Invalid file {_path}: {e}")
    rows = raw.get("rows") if isinstance(raw, dict) else raw
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        return Err[list[dict[str, Any]], str](f"Invalid file {_path}: expected a list of rows")
    return Ok[list[dict[str, Any]], str](rows)


def import_rows(source: RowSource, path: str) -> Result[int, str]:
    """Replace the rows of `source` with the file content (one change notification)."""
    match read_rows(path):
        case Ok(rows):
            return source.replace_all(rows)
        case Err(e):
            return Err[int, str](e)
        case _:
            return Err[int, str]("Unexpected error")
