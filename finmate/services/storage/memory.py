"""
In-memory row source.

Holds a snapshot of tables as lists of dicts. Used by tests and by local
runs that load fixture data instead of a live spreadsheet.
"""

import copy
from typing import Iterable, Optional, Sequence

from finmate.models.records import Record
from finmate.services.storage.filters import RowFilter, apply_filters
from finmate.services.storage.interface import FetchFailedError, RowSourceInterface


class InMemoryRowSource(RowSourceInterface):
    """
    Row source backed by plain dicts.

    Tables listed in ``failing_tables`` raise FetchFailedError, which lets
    tests exercise the degraded paths.
    """

    def __init__(
        self,
        tables: Optional[dict[str, Iterable[Record]]] = None,
        failing_tables: Iterable[str] = (),
    ):
        self._tables: dict[str, list[Record]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self._failing = set(failing_tables)
        self.calls: list[str] = []

    def set_table(self, table: str, rows: Iterable[Record]) -> None:
        self._tables[table] = [dict(row) for row in rows]

    def fail_table(self, table: str) -> None:
        self._failing.add(table)

    async def fetch_rows(
        self,
        table: str,
        user_id: Optional[str] = None,
        filters: Sequence[RowFilter] = (),
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Record]:
        self.calls.append(table)
        if table in self._failing:
            raise FetchFailedError(table, "table unavailable")

        rows = apply_filters(
            self._tables.get(table, []),
            user_id=user_id,
            filters=filters,
            limit=limit,
            order_by=order_by,
            descending=descending,
        )
        # Callers get their own copies, like a real fetch would
        return copy.deepcopy(rows)
