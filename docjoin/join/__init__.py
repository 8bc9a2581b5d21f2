"""
Join module for document building.

Provides column transforms, relationship normalization, row identity
helpers and the recursive document join engine.
"""

from docjoin.join.errors import JoinError, NotFoundError, RelationshipValidationError
from docjoin.join.transforms import (
    apply_split,
    apply_pivot,
    apply_transforms,
    match_group_columns,
    sort_pivot_indices,
)
from docjoin.join.relationships import (
    to_relationships,
    relationships_for_table,
    validate_relationships,
)
from docjoin.join.identity import RowIndex, structural_key, row_key, dedupe, unique_by
from docjoin.join.engine import DocumentBuilder, build_document, strict_equal

__all__ = [  # ruff: noqa: RUF022
    # Errors
    "JoinError",
    "NotFoundError",
    "RelationshipValidationError",
    # Transforms
    "apply_split",
    "apply_pivot",
    "apply_transforms",
    "match_group_columns",
    "sort_pivot_indices",
    # Relationships
    "to_relationships",
    "relationships_for_table",
    "validate_relationships",
    # Identity
    "structural_key",
    "row_key",
    "RowIndex",
    "dedupe",
    "unique_by",
    # Engine
    "DocumentBuilder",
    "build_document",
    "strict_equal",
]
