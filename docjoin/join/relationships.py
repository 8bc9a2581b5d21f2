"""
Relationship normalization.

Converts canvas edge records plus their per-edge overrides into the
engine's Relationship form, and offers validation for callers that
want to surface schema-authoring mistakes.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from docjoin.catalog.models import Cardinality, EdgeRecord, Relationship, Table
from docjoin.common.metrics import relationships_dropped_total

logger = logging.getLogger(__name__)


def _cardinality(value: Optional[str], default: Cardinality) -> Cardinality:
    if value is None:
        return default
    try:
        return Cardinality(value)
    except ValueError:
        logger.debug(f"Unknown cardinality {value!r}, using {default.value}")
        return default


def to_relationships(
    edges: Iterable[EdgeRecord],
    edge_types: Optional[Mapping[str, str]] = None,
    edge_column_filters: Optional[Mapping[str, List[str]]] = None,
    edge_max_depth: Optional[Mapping[str, int]] = None,
    edge_property_names: Optional[Mapping[str, str]] = None,
    default_cardinality: Cardinality = Cardinality.ONE_TO_MANY,
) -> List[Relationship]:
    """
    Normalize canvas edges into relationships.

    Overrides are keyed by edge id. Cardinality falls back to the edge's
    own `data["type"]`, then to `default_cardinality`. Edges without both column
    handles carry no join information and are dropped.

    Args:
        edges: Edge records from the canvas or a saved project
        edge_types: Edge id -> "one-to-many" | "one-to-one"
        edge_column_filters: Edge id -> child columns to keep
        edge_max_depth: Edge id -> recursion bound
        edge_property_names: Edge id -> embedded property name
        default_cardinality: Used when neither override nor edge data names one

    Returns:
        Relationships in edge order
    """
    edge_types = edge_types or {}
    edge_column_filters = edge_column_filters or {}
    edge_max_depth = edge_max_depth or {}
    edge_property_names = edge_property_names or {}

    relationships: List[Relationship] = []
    for edge in edges:
        if not edge.source_handle or not edge.target_handle:
            relationships_dropped_total.labels(reason="missing_column").inc()
            logger.debug(f"Dropping edge {edge.id}: missing join column")
            continue

        included = edge_column_filters.get(edge.id)
        relationships.append(Relationship(
            source_table_id=edge.source,
            target_table_id=edge.target,
            source_column=edge.source_handle,
            target_column=edge.target_handle,
            cardinality=_cardinality(
                edge_types.get(edge.id) or edge.data.get("type"), default_cardinality),
            included_columns=list(included) if included is not None else None,
            max_depth=edge_max_depth.get(edge.id),
            output_property_name=edge_property_names.get(edge.id),
        ))
    return relationships


def relationships_for_table(relationships: Iterable[Relationship], table_id: str) -> List[Relationship]:
    """Relationships with `table_id` at either end, in declaration order."""
    return [rel for rel in relationships if rel.touches(table_id)]


def validate_relationships(relationships: Iterable[Relationship], tables: Iterable[Table]) -> List[str]:
    """
    Describe relationships that reference unknown tables or columns.

    Returns:
        Human-readable problems; empty when everything resolves
    """
    table_map: Dict[str, Table] = {t.id: t for t in tables}
    problems: List[str] = []
    for rel in relationships:
        for table_id, column in (
            (rel.source_table_id, rel.source_column),
            (rel.target_table_id, rel.target_column),
        ):
            table = table_map.get(table_id)
            if table is None:
                problems.append(f"unknown table {table_id!r}")
            elif column not in table.columns:
                problems.append(f"column {column!r} not declared on table {table_id!r}")
        if rel.max_depth is not None and rel.max_depth < 0:
            problems.append(f"negative max depth on {rel.source_table_id}->{rel.target_table_id}")
    return problems
