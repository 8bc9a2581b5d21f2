"""
Row identity and deduplication helpers used by the join engine.

A row is identified by its position in its owning table. Rows that
arrive without a known position fall back to a structural key, the
canonical JSON serialization of the row, so two distinct rows with
identical content share one identity.
"""

import json
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Tuple, TypeVar

T = TypeVar("T")

VisitKey = Tuple[str, str, int]


def structural_key(value: Any) -> str:
    """Canonical serialization used for structural equality."""
    return json.dumps(value, sort_keys=True, default=str, separators=(",", ":"))


def row_key(table_id: str, row: Any, row_index: Optional[int] = None) -> str:
    """
    Identity of a row within its table.

    Args:
        table_id: Owning table id
        row: The row itself (used only when the index is unknown)
        row_index: Position of the row in the table's row list

    Returns:
        "<table>:<index>" or "<table>:s:<serialized row>"
    """
    if row_index is not None and row_index >= 0:
        return f"{table_id}:{row_index}"
    return f"{table_id}:s:{structural_key(row)}"


def visit_key(table_id: str, row: Any, row_index: Optional[int], depth: int) -> VisitKey:
    """Visited-set key: the same row may recur at a different depth, never at the same one."""
    return (table_id, row_key(table_id, row, row_index), depth)


class RowIndex:
    """
    Positions of every row of a fixed set of tables.

    Rows are looked up by object identity, so two equal rows at
    different positions stay distinct. A row that is not held by its
    table (a copy, or a row from elsewhere) falls back to its
    structural key.
    """

    def __init__(self, tables: Iterable[Any]):
        self._positions: Dict[str, Dict[int, int]] = {}
        # Held so the ids stay valid for the lifetime of the index
        self._rows: Dict[str, List[Any]] = {}
        for table in tables:
            positions: Dict[int, int] = {}
            for index, row in enumerate(table.rows):
                positions.setdefault(id(row), index)
            self._positions[table.id] = positions
            self._rows[table.id] = table.rows

    def index_of(self, table_id: str, row: Any) -> Optional[int]:
        index = self._positions.get(table_id, {}).get(id(row))
        if index is None:
            return None
        rows = self._rows[table_id]
        if index >= len(rows) or rows[index] is not row:
            return None
        return index

    def key(self, table_id: str, row: Any) -> str:
        return row_key(table_id, row, self.index_of(table_id, row))

    def visit_key(self, table_id: str, row: Any, depth: int) -> VisitKey:
        return (table_id, self.key(table_id, row), depth)


def unique_by(items: Iterable[T], key_fn: Callable[[T], Hashable]) -> List[T]:
    """Keep the first item for every key, preserving order."""
    seen = set()
    out: List[T] = []
    for item in items:
        key = key_fn(item)
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def dedupe(items: Iterable[T]) -> List[T]:
    """Remove structurally equal duplicates, preserving order."""
    return unique_by(items, structural_key)
