"""
Edits on the catalog: renaming tables and columns, removing tables and edges.

Every function returns new objects and leaves its inputs untouched.
"""

from dataclasses import replace
from typing import Dict, List, Mapping, NamedTuple, Optional

from docjoin.catalog.models import EdgeRecord, Table


class RemoveTableResult(NamedTuple):
    tables: List[Table]
    edges: List[EdgeRecord]
    lead_table_id: str


def ensure_column_renames(table: Table) -> Dict[str, str]:
    """Column rename map of a table, identity-initialized when missing."""
    if table.column_renames is not None:
        return dict(table.column_renames)
    return {col: col for col in table.columns}


def find_original_column(column_renames: Mapping[str, str], current: str) -> Optional[str]:
    for original, cur in column_renames.items():
        if cur == current:
            return original
    return None


def rename_table(table: Table, new_name: str) -> Table:
    return replace(table, name=new_name)


def rename_column(table: Table, current: str, new: str) -> Table:
    """Rename a column in the schema and in every row that carries it."""
    column_renames = ensure_column_renames(table)
    original = find_original_column(column_renames, current) or current
    columns = [new if col == current else col for col in table.columns]

    rows = []
    for row in table.rows:
        if current not in row or new == current:
            rows.append(row)
            continue
        # Keep the key position so output documents stay ordered like the source
        rows.append({(new if key == current else key): value for key, value in row.items()})

    column_renames[original] = new
    return replace(table, columns=columns, rows=rows, column_renames=column_renames)


def apply_column_renames(table: Table, column_renames: Mapping[str, str]) -> Table:
    """Replay saved renames (original -> current), skipping ones already applied."""
    out = replace(table, column_renames=ensure_column_renames(table))
    for original, current in column_renames.items():
        existing = out.column_renames or {}
        if existing.get(original) == current:
            continue
        out = rename_column(out, existing.get(original, original), current)
    return out


def apply_table_renames(tables: List[Table], table_renames: Optional[Mapping[str, str]]) -> List[Table]:
    if not table_renames:
        return tables
    return [
        replace(t, name=table_renames[t.id], original_name=t.original_name or t.name)
        if table_renames.get(t.id) else t
        for t in tables
    ]


def apply_all_column_renames(
    tables: List[Table],
    column_renames: Optional[Mapping[str, Mapping[str, str]]],
) -> List[Table]:
    if not column_renames:
        return tables
    return [
        apply_column_renames(t, column_renames[t.id]) if column_renames.get(t.id) else t
        for t in tables
    ]


def update_edges_for_column_rename(
    edges: List[EdgeRecord],
    table_id: str,
    current: str,
    new: str,
) -> List[EdgeRecord]:
    """Point edge handles at the renamed column."""
    out = []
    for edge in edges:
        source_handle = edge.source_handle
        target_handle = edge.target_handle
        if edge.source == table_id and source_handle == current:
            source_handle = new
        if edge.target == table_id and target_handle == current:
            target_handle = new
        if (source_handle, target_handle) != (edge.source_handle, edge.target_handle):
            edge = replace(edge, source_handle=source_handle, target_handle=target_handle)
        out.append(edge)
    return out


def rename_selected_columns(
    selected: Mapping[str, List[str]],
    table_id: str,
    current: str,
    new: str,
) -> Dict[str, List[str]]:
    """Carry a column rename into the per-table projection map."""
    out = {tid: list(cols) for tid, cols in selected.items()}
    cols = out.get(table_id)
    if cols and current in cols:
        out[table_id] = [new if col == current else col for col in cols]
    return out


def remove_table(table_id: str, tables: List[Table], edges: List[EdgeRecord]) -> RemoveTableResult:
    """Delete a table together with every edge touching it."""
    remaining = [t for t in tables if t.id != table_id]
    remaining_edges = [e for e in edges if e.source != table_id and e.target != table_id]
    lead_table_id = remaining[0].id if remaining else ""
    return RemoveTableResult(remaining, remaining_edges, lead_table_id)


def remove_edge(edge_id: str, edges: List[EdgeRecord]) -> List[EdgeRecord]:
    return [e for e in edges if e.id != edge_id]
