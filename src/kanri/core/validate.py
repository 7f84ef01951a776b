from kanri.core.models import Row, RowId

WHITE = 0
GRAY = 1
BLACK = 2


def would_create_cycle(rows: list[Row], row_id: RowId, new_parent_id: RowId | None) -> bool:
    """Return True if setting `row_id`'s parent to `new_parent_id` closes a cycle.

    Walks the parent chain upwards from the new parent; reaching `row_id`
    means the row would become its own ancestor.
    """
    if new_parent_id in (None, ""):
        return False
    parents: dict[RowId, RowId | None] = {r.id: r.parent_id for r in rows}
    seen: set[RowId] = set()
    cur: RowId | None = new_parent_id
    while cur is not None:
        if cur == row_id:
            return True
        if cur in seen:
            # a pre-existing cycle that does not involve row_id
            return False
        seen.add(cur)
        cur = parents.get(cur)
    return False


def detect_cycles(rows: list[Row]) -> list[list[RowId]]:
    """Detect all cycles in the parent_id graph using DFS.

    Returns a list of cycles, where each cycle is represented as a list of row IDs
    (child -> parent direction, first id repeated at the end).
    """
    cycles: list[list[RowId]] = []
    parents: dict[RowId, RowId | None] = {r.id: r.parent_id for r in rows}
    color: dict[RowId, int] = dict.fromkeys(parents.keys(), WHITE)

    for rid in parents:
        if color[rid] != WHITE:
            continue
        path: list[RowId] = []
        cur: RowId | None = rid
        # every node has at most one parent, so the DFS is a single chain walk
        while cur is not None and cur in color:
            if color[cur] == GRAY:
                cycle_start = path.index(cur)
                cycles.append([*path[cycle_start:], cur])
                break
            if color[cur] == BLACK:
                break
            color[cur] = GRAY
            path.append(cur)
            cur = parents[cur]
        for node in path:
            color[node] = BLACK

    return cycles


def find_orphans(rows: list[Row]) -> list[Row]:
    """Rows whose declared parent is not among `rows`."""
    ids = {r.id for r in rows}
    return [r for r in rows if r.parent_id is not None and r.parent_id not in ids]
