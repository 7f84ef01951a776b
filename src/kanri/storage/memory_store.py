from typing import Any

from pyresults import Ok, Result

from kanri.core.models import Row
from kanri.storage.base import RowSource


class MemoryRowSource(RowSource):
    def __init__(self, kind: str, rows: list[dict[str, Any]] | None = None) -> None:
        super().__init__(kind)
        self._initial = rows or []
        self.load()

    def load(self) -> None:
        self._rows = {}
        for data in self._initial:
            row = Row.from_dict(data)
            self._rows[row.id] = row

    def save(self) -> Result[None, str]:
        return Ok[None, str](None)
