"""
Document join engine.

Builds one nested JSON document from a lead row by walking the
relationship graph depth-first. Each table visited contributes its
projected (filtered, split and pivoted) row; related rows are embedded
under the relationship's property name as an object (one-to-one) or a
deduplicated array (one-to-many).

Traversal rules:
- A row is expanded at most once per recursion depth; a revisit at the
  same depth yields the projected row without children, which ends
  cycles.
- Edges that lead back to the current table or to the immediate parent
  are recursive. They are followed only while `depth < max_depth`, and
  never when `max_depth` is unset or 0. Every other hop starts the
  child subtree at depth 0.
- When the local join column is consumed by a pivot, every element of
  the pivot array is joined separately and carries its own matches.
"""

import logging
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

from docjoin.catalog.models import (
    BuildOptions,
    Cardinality,
    Relationship,
    Row,
    Table,
    TablePivot,
)
from docjoin.common.metrics import track_document_build
from docjoin.join.errors import NotFoundError, RelationshipValidationError
from docjoin.join.identity import RowIndex, VisitKey, dedupe
from docjoin.join.relationships import validate_relationships
from docjoin.join.transforms import apply_transforms, pivot_group_maps, pivot_indices

logger = logging.getLogger(__name__)

_NUMBER_TYPES = (int, float)


def strict_equal(a: Any, b: Any) -> bool:
    """
    Join-key equality without coercion.

    Numbers compare by value (1 == 1.0), booleans only equal booleans,
    and every other value must have the same type and compare equal.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, _NUMBER_TYPES) and isinstance(b, _NUMBER_TYPES):
        return a == b
    return type(a) is type(b) and a == b


class _PivotJoin(NamedTuple):
    """Pivot that consumes a join column, with its resolved layout."""
    pivot: TablePivot
    sibling_columns: Dict[str, str]  # index -> column of the join column's group
    group_maps: List[Dict[str, str]]
    indices: List[str]


class DocumentBuilder:
    """
    Reusable builder over one fixed set of tables, relationships and rules.

    Lookups that depend only on the inputs are prepared once, so bulk
    export can call `build` for every row cheaply. Each `build` call owns
    its visited set and returns a fresh document.
    """

    def __init__(
        self,
        tables: Iterable[Table],
        relationships: Iterable[Relationship],
        options: Optional[BuildOptions] = None,
        strict: bool = False,
    ):
        """
        Initialize the builder.

        Args:
            tables: All tables of the project
            relationships: Normalized relationships
            options: Column projection, splits and pivots
            strict: Raise RelationshipValidationError when a relationship
                names an unknown table or an undeclared column

        Raises:
            RelationshipValidationError: strict mode only
        """
        self.tables: Dict[str, Table] = {t.id: t for t in tables}
        self.relationships: List[Relationship] = list(relationships)
        self.options = options or BuildOptions()

        if strict:
            problems = validate_relationships(self.relationships, self.tables.values())
            if problems:
                raise RelationshipValidationError(problems)

        self._relationships_by_table: Dict[str, List[Relationship]] = {}
        for rel in self.relationships:
            self._relationships_by_table.setdefault(rel.source_table_id, []).append(rel)
            if rel.target_table_id != rel.source_table_id:
                self._relationships_by_table.setdefault(rel.target_table_id, []).append(rel)

        self._splits = {}
        for split in self.options.column_splits:
            self._splits.setdefault(split.table_id, []).append(split)
        self._pivots = {}
        for pivot in self.options.table_pivots:
            self._pivots.setdefault(pivot.table_id, []).append(pivot)

        self._row_index = RowIndex(self.tables.values())
        self._pivot_joins = self._index_pivot_columns()
        self._nested_names = self._index_nested_names()

    def _index_pivot_columns(self) -> Dict[Tuple[str, str], _PivotJoin]:
        """Map (table id, column) to the first pivot that consumes the column."""
        lookup: Dict[Tuple[str, str], _PivotJoin] = {}
        for pivot in self.options.table_pivots:
            table = self.tables.get(pivot.table_id)
            if table is None:
                continue
            group_maps = pivot_group_maps(pivot, table.columns)
            indices = pivot_indices(pivot, table.columns)
            for cols in group_maps:
                for col_name in cols.values():
                    lookup.setdefault(
                        (pivot.table_id, col_name),
                        _PivotJoin(pivot, cols, group_maps, indices),
                    )
        return lookup

    def _index_nested_names(self) -> Dict[str, Set[str]]:
        """Property names a table's related tables may be embedded under."""
        names: Dict[str, Set[str]] = {}
        for table_id, rels in self._relationships_by_table.items():
            found = names.setdefault(table_id, set())
            for rel in rels:
                other = self.tables.get(rel.other_end(table_id))
                if other is not None:
                    found.add(other.name)
                if rel.output_property_name:
                    found.add(rel.output_property_name)
        return names

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, lead_table_id: str, lead_row_index: int) -> Dict[str, Any]:
        """
        Build the document for one lead row.

        Args:
            lead_table_id: Id of the document's root table
            lead_row_index: Position of the lead row in that table

        Returns:
            {lead table name: nested row}

        Raises:
            NotFoundError: Unknown lead table or row index out of range
        """
        lead_table = self.tables.get(lead_table_id)
        if lead_table is None:
            raise NotFoundError(f"Lead table not found: {lead_table_id}", table_id=lead_table_id)
        if not isinstance(lead_row_index, int) or not 0 <= lead_row_index < len(lead_table.rows):
            raise NotFoundError(
                f"Lead row not found index={lead_row_index}",
                table_id=lead_table_id,
                row_index=lead_row_index,
            )

        visited: Set[VisitKey] = set()
        lead_row = lead_table.rows[lead_row_index]
        return {
            lead_table.name: self._build_nested(lead_table, lead_row, None, 0, visited)
        }

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def _filter_columns(self, table: Table, row: Row) -> Row:
        cols = self.options.columns_filter.get(table.id)
        if not cols:
            return dict(row)
        return {col: row[col] for col in cols if col in row}

    def _project(self, table: Table, row: Row) -> Row:
        all_columns = table.columns or list(row.keys())
        return apply_transforms(
            self._filter_columns(table, row),
            table.id,
            all_columns,
            self._splits.get(table.id, ()),
            self._pivots.get(table.id, ()),
        )

    def _filter_included(self, rel: Relationship, child_id: str, node: Row) -> Row:
        """Apply the edge's child column filter, keeping nested join results."""
        if not rel.included_columns:
            return node
        keep = set(rel.included_columns) | self._nested_names.get(child_id, set())
        return {key: value for key, value in node.items() if key in keep}

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _build_nested(
        self,
        table: Table,
        row: Row,
        parent_id: Optional[str],
        depth: int,
        visited: Set[VisitKey],
    ) -> Row:
        key = self._row_index.visit_key(table.id, row, depth)
        if key in visited:
            return self._project(table, row)
        visited.add(key)

        projected = self._project(table, row)

        for rel in self._relationships_by_table.get(table.id, ()):
            child_id = rel.other_end(table.id)
            recursive = child_id == table.id or child_id == parent_id
            if recursive:
                if not rel.max_depth or depth >= rel.max_depth:
                    continue

            child_table = self.tables.get(child_id)
            if child_table is None:
                logger.debug("Skipping relationship to unknown table %s", child_id)
                continue

            local_col, remote_col = rel.local_and_remote_columns(table.id)
            child_depth = depth + 1 if recursive else 0

            pivot_join = self._pivot_joins.get((table.id, local_col))
            if pivot_join is not None:
                self._join_pivot_elements(
                    projected, table, row, rel, child_table, remote_col,
                    pivot_join, child_depth, visited)
                continue

            if local_col not in row:
                continue
            nested = self._build_matches(
                table, rel, child_table, remote_col, row[local_col], child_depth, visited)
            if nested:
                self._embed(projected, rel, child_table, nested)

        return projected

    def _build_matches(
        self,
        table: Table,
        rel: Relationship,
        child_table: Table,
        remote_col: str,
        value: Any,
        child_depth: int,
        visited: Set[VisitKey],
    ) -> List[Row]:
        """Build every child row whose remote column equals `value`, deduplicated."""
        nodes = []
        for child_row in child_table.rows:
            if remote_col not in child_row or not strict_equal(child_row[remote_col], value):
                continue
            node = self._build_nested(
                child_table, child_row, table.id, child_depth, visited)
            nodes.append(self._filter_included(rel, child_table.id, node))
        return dedupe(nodes)

    def _join_pivot_elements(
        self,
        projected: Row,
        table: Table,
        row: Row,
        rel: Relationship,
        child_table: Table,
        remote_col: str,
        pivot_join: _PivotJoin,
        child_depth: int,
        visited: Set[VisitKey],
    ) -> None:
        """Join each pivot array element on its own pre-pivot column value."""
        items = projected.get(pivot_join.pivot.array_name)
        if not isinstance(items, list):
            return

        # Indices skipped while pivoting (no value in the row) have no element
        filtered = self._filter_columns(table, row)
        kept = [
            idx for idx in pivot_join.indices
            if any(cols.get(idx) in filtered for cols in pivot_join.group_maps)
        ]

        for item, idx in zip(items, kept):
            col_name = pivot_join.sibling_columns.get(idx)
            if col_name is None or col_name not in row or not isinstance(item, dict):
                continue
            nested = self._build_matches(
                table, rel, child_table, remote_col, row[col_name], child_depth, visited)
            if nested:
                self._embed(item, rel, child_table, nested)

    @staticmethod
    def _embed(target: Row, rel: Relationship, child_table: Table, nested: List[Row]) -> None:
        prop = rel.output_property_name or child_table.name
        if rel.cardinality == Cardinality.ONE_TO_ONE:
            target[prop] = nested[0]
            return
        existing = target.get(prop)
        if existing is None:
            target[prop] = nested
        else:
            merged = existing if isinstance(existing, list) else [existing]
            target[prop] = dedupe(merged + nested)


@track_document_build
def build_document(
    lead_table_id: str,
    lead_row_index: int,
    tables: Iterable[Table],
    relationships: Iterable[Relationship],
    options: Optional[BuildOptions] = None,
    strict: bool = False,
) -> Dict[str, Any]:
    """
    Build the joined document for one lead row.

    Convenience wrapper around DocumentBuilder for single builds
    (previews); bulk callers should keep one builder per export.

    Raises:
        NotFoundError: Unknown lead table or row index out of range
        RelationshipValidationError: strict mode only
    """
    builder = DocumentBuilder(tables, relationships, options, strict=strict)
    return builder.build(lead_table_id, lead_row_index)
