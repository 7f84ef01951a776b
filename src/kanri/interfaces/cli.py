# ruff: noqa: T201

import argparse
import sys
from datetime import date
from typing import Any

import yaml  # type: ignore[import-untyped]
from pyresults import Err, Ok

from kanri.core.models import ENTITY_SCHEMAS, Row
from kanri.core.validate import detect_cycles, find_orphans
from kanri.core.view_modes import VIEW_MODES
from kanri.interfaces.tui.controller import ListScreen
from kanri.interfaces.tui.list_view import ListViewEngine
from kanri.interfaces.tui.screens import SCREEN_CLASSES, SCREEN_KINDS
from kanri.io.row_io import export_rows, import_rows
from kanri.storage import get_row_source
from kanri.storage.base import RowSource
from kanri.util.dirs import load_env
from kanri.util.ids import LENGTH_SHORTENED_ID, resolve_row_id
from kanri.util.logger import setup_logger, setup_mode

logger = setup_logger("kanri", is_stream=False, is_file=True)

LIST_WIDTH = 100


class KanriError(Exception):
    """Unrecoverable command error (exit code 1)."""


def get_source(kind: str) -> RowSource:
    try:
        return get_row_source(kind, load_env())
    except ValueError as e:
        raise KanriError(str(e)) from e


def _rows_of(source: RowSource) -> list[Row]:
    match source.get_all():
        case Ok(rows):
            return rows
        case Err(e):
            raise KanriError(e)
        case _:
            raise KanriError("Unexpected error")


def _screen_for(kind: str, source: RowSource) -> ListScreen:
    name = next(n for n, k in SCREEN_KINDS.items() if k == kind)
    cls = next(c for c in SCREEN_CLASSES if c.name == name)
    return cls(source)


def parse_assignments(pairs: list[str]) -> dict[str, Any]:
    """`key=value` arguments -> fields; values are read as YAML scalars."""
    fields: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            _msg = f"Invalid field: {pair!r} (expected key=value)"
            raise KanriError(_msg)
        key, raw = pair.split("=", 1)
        key = key.strip()
        if not key:
            _msg = f"Invalid field: {pair!r} (empty key)"
            raise KanriError(_msg)
        try:
            value = yaml.safe_load(raw) if raw.strip() else None
        except yaml.YAMLError:
            value = raw
        # dates are stored as ISO strings, the same as the inline editor writes them
        fields[key] = value.isoformat() if isinstance(value, date) else value
    return fields


def cmd_list(args: argparse.Namespace) -> int:
    source = get_source(args.kind)
    screen = _screen_for(args.kind, source)
    engine = ListViewEngine(
        screen.get_columns(LIST_WIDTH),
        view_modes=screen.view_modes,
        sort_column=args.sort or screen.default_sort,
        sort_descending=args.desc,
    )
    engine.set_rows(_rows_of(source))
    if args.view:
        engine.set_view_mode(args.view)
    if args.filter:
        engine.set_text_filter(args.filter)
    if args.hide_completed:
        engine.toggle_show_completed()

    for d in engine.displayed_rows:
        _id = str(d.id)[:LENGTH_SHORTENED_ID].ljust(LENGTH_SHORTENED_ID)
        marker = "+" if d.collapsed else ("?" if d.orphan else " ")
        cells = [engine.format_cell(c, d) for c in engine.columns]
        print(f"{marker} {_id} | {'  ' * d.depth}{' | '.join(cells)}")
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    source = get_source(args.kind)
    fields = parse_assignments(args.fields)
    if (pid := fields.get("parent_id")) not in (None, ""):
        match resolve_row_id(str(pid), source_ids=[r.id for r in _rows_of(source)]):
            case Ok(resolved):
                fields["parent_id"] = resolved
            case Err(e):
                raise KanriError(e)
    match source.add(fields):
        case Ok(row):
            print(row.id)
            return 0
        case Err(e):
            raise KanriError(e)
        case _:
            raise KanriError("Unexpected error")


def cmd_delete(args: argparse.Namespace) -> int:
    source = get_source(args.kind)
    match resolve_row_id(args.id, source_ids=[r.id for r in _rows_of(source)]):
        case Ok(row_id):
            pass
        case Err(e):
            raise KanriError(e)
        case _:
            raise KanriError("Unexpected error")
    match source.delete(row_id):
        case Ok(_):
            print(f"deleted: {row_id}")
            return 0
        case Err(e):
            raise KanriError(e)
        case _:
            raise KanriError("Unexpected error")


def cmd_export(args: argparse.Namespace) -> int:
    match export_rows(get_source(args.kind), args.path):
        case Ok(n):
            print(f"exported {n} row(s) to {args.path}")
            return 0
        case Err(e):
            raise KanriError(e)
        case _:
            raise KanriError("Unexpected error")


def cmd_import(args: argparse.Namespace) -> int:
    match import_rows(get_source(args.kind), args.path):
        case Ok(n):
            print(f"imported {n} row(s) from {args.path}")
            return 0
        case Err(e):
            raise KanriError(e)
        case _:
            raise KanriError("Unexpected error")


def cmd_check(args: argparse.Namespace) -> int:
    rows = _rows_of(get_source(args.kind))

    has_errors = False

    cycles = detect_cycles(rows)
    if cycles:
        has_errors = True
        print("Cycles detected:")
        for cycle in cycles:
            print(f"  {' -> '.join(str(c) for c in cycle)}")
    else:
        print("No cycles detected.")

    orphans = find_orphans(rows)
    if orphans:
        has_errors = True
        print("\nOrphans detected:")
        for r in orphans:
            print(f"  {r.id} has parent_id={r.parent_id} which does not exist")
    else:
        print("\nNo orphans detected.")

    if has_errors:
        return 1
    print(f"\n{args.kind}: hierarchy is valid.")
    return 0


def cmd_tui(args: argparse.Namespace) -> int:
    # curses is only needed for the interactive UI
    from kanri.interfaces.tui import endpoint  # noqa: PLC0415

    return endpoint.run(args)


def build_parser() -> argparse.ArgumentParser:
    kinds = list(ENTITY_SCHEMAS.keys())
    p = argparse.ArgumentParser(prog="kanri", description="Terminal list manager for tasks, checklists and more")
    p.add_argument("--debug", action="store_true", help="debug mode")
    sub = p.add_subparsers(dest="cmd", required=True)

    # tui
    sp = sub.add_parser("tui", help="run TUI")
    sp.add_argument("--screen", choices=list(SCREEN_KINDS.keys()), help="initial screen")
    sp.add_argument("--theme", help="theme name (default, mono)")
    sp.add_argument("--view", choices=list(VIEW_MODES.keys()), help="initial view mode")
    sp.add_argument("--filter", help="initial text filter")
    sp.set_defaults(func=cmd_tui)

    # list
    sp = sub.add_parser("list", help="list rows as displayed in the TUI")
    sp.add_argument("kind", choices=kinds)
    sp.add_argument("--view", choices=list(VIEW_MODES.keys()))
    sp.add_argument("--sort", help="column name to sort by")
    sp.add_argument("--desc", action="store_true", help="descending order")
    sp.add_argument("--filter", help="case-insensitive text filter")
    sp.add_argument("--hide-completed", action="store_true")
    sp.set_defaults(func=cmd_list)

    # add
    sp = sub.add_parser("add", help="add a row")
    sp.add_argument("kind", choices=kinds)
    sp.add_argument("fields", nargs="+", help="key=value pairs")
    sp.set_defaults(func=cmd_add)

    # delete
    sp = sub.add_parser("delete", help="delete a row")
    sp.add_argument("kind", choices=kinds)
    sp.add_argument("id", help="full ID or a unique prefix")
    sp.set_defaults(func=cmd_delete)

    # export / import
    sp = sub.add_parser("export", help="export rows to json or yaml")
    sp.add_argument("kind", choices=kinds)
    sp.add_argument("path")
    sp.set_defaults(func=cmd_export)

    sp = sub.add_parser("import", help="replace rows from json or yaml")
    sp.add_argument("kind", choices=kinds)
    sp.add_argument("path")
    sp.set_defaults(func=cmd_import)

    # check
    sp = sub.add_parser("check", help="check parent_id cycles and orphans")
    sp.add_argument("kind", choices=kinds)
    sp.set_defaults(func=cmd_check)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_mode(is_debug=args.debug)
    try:
        return args.func(args)  # type: ignore[no-any-return]
    except KanriError as e:
        _msg = f"An error occurred while running '{args.cmd}': {e!s}"
        logger.error(_msg)  # noqa: TRY400
        return 1
