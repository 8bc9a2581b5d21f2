"""
Column transforms applied at document-build time.

Split:  turns a delimited string value into a JSON array.
Pivot:  groups numbered/patterned columns into an array of objects.

Both are scoped by table id and always return a new row.
"""

from typing import Dict, Iterable, List, Sequence

from docjoin.catalog.models import ColumnSplit, Row, TablePivot


def match_group_columns(all_columns: Iterable[str], prefix: str) -> Dict[str, str]:
    """
    Resolve which concrete columns a pivot group matches.

    Args:
        all_columns: Declared columns of the table
        prefix: Case-sensitive column-name prefix, e.g. "Item"

    Returns:
        Mapping of index (the suffix left after the prefix) to column name
    """
    result: Dict[str, str] = {}
    for col in all_columns:
        if col.startswith(prefix):
            suffix = col[len(prefix):]
            if suffix:
                result[suffix] = col
    return result


def _as_number(value: str):
    try:
        number = float(value)
    except ValueError:
        return None
    # "nan" parses but cannot be ordered
    return None if number != number else number


def sort_pivot_indices(indices: Iterable[str]) -> List[str]:
    """Numeric order when every index is a number, lexicographic otherwise."""
    unique = set(indices)
    numbers = {idx: _as_number(idx) for idx in unique}
    if unique and all(n is not None for n in numbers.values()):
        return sorted(unique, key=lambda idx: (numbers[idx], idx))
    return sorted(unique)


def pivot_group_maps(pivot: TablePivot, all_columns: Sequence[str]) -> List[Dict[str, str]]:
    """One index -> column map per group, in group order."""
    return [match_group_columns(all_columns, g.column_prefix) for g in pivot.groups]


def pivot_indices(pivot: TablePivot, all_columns: Sequence[str]) -> List[str]:
    """Sorted union of indices found across all groups of a pivot."""
    indices = set()
    for cols in pivot_group_maps(pivot, all_columns):
        indices.update(cols.keys())
    return sort_pivot_indices(indices)


def apply_split(row: Row, splits: Iterable[ColumnSplit], table_id: str) -> Row:
    """Apply column splits for `table_id` to a copy of `row`."""
    out = dict(row)
    for split in splits:
        if split.table_id != table_id:
            continue
        value = out.get(split.column)
        if isinstance(value, str):
            out[split.column] = [piece.strip() for piece in value.split(split.delimiter)]
    return out


def apply_pivot(
    row: Row,
    pivots: Iterable[TablePivot],
    table_id: str,
    all_columns: Sequence[str],
) -> Row:
    """
    Apply table pivots for `table_id` to a copy of `row`.

    Every pivot removes the columns its groups match and sets its
    array property. Indices where no group has a value in the row are
    skipped, so sparse rows produce shorter arrays.
    """
    out = dict(row)
    for pivot in pivots:
        if pivot.table_id != table_id:
            continue

        group_maps = pivot_group_maps(pivot, all_columns)
        indices = set()
        for cols in group_maps:
            indices.update(cols.keys())

        items: List[Row] = []
        for idx in sort_pivot_indices(indices):
            item: Row = {}
            for group, cols in zip(pivot.groups, group_maps):
                col_name = cols.get(idx)
                if col_name is not None and col_name in out:
                    item[group.output_property_name] = out[col_name]
            if item:
                items.append(item)

        for cols in group_maps:
            for col_name in cols.values():
                out.pop(col_name, None)

        out[pivot.array_name] = items
    return out


def apply_transforms(
    row: Row,
    table_id: str,
    all_columns: Sequence[str],
    splits: Iterable[ColumnSplit],
    pivots: Iterable[TablePivot],
) -> Row:
    """Apply splits, then pivots, to a projected row."""
    out = apply_split(row, splits, table_id)
    return apply_pivot(out, pivots, table_id, all_columns)
