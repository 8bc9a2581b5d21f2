"""
Catalog models for imported tables and their relationships.

These are passive structures: ingestion creates tables, the canvas
(or a saved project) declares relationships and column transforms,
and the join engine reads all of them without modifying anything.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

Row = Dict[str, Any]


class Cardinality(str, Enum):
    """How a relationship embeds its matches."""
    ONE_TO_MANY = "one-to-many"
    ONE_TO_ONE = "one-to-one"


@dataclass
class ColumnType:
    """Declared type information for one column (from schema dumps)."""
    data_type: Optional[str] = None
    is_primary_key: bool = False


@dataclass
class Table:
    """
    An imported table.

    `columns` is the declared schema; rows may miss declared keys or
    carry extra ones. `name` is the display name and the key used in
    built documents.
    """
    id: str
    name: str
    columns: List[str] = field(default_factory=list)
    rows: List[Row] = field(default_factory=list)

    file_name: Optional[str] = None
    source_type: Optional[str] = None
    source_text: Optional[str] = None
    original_name: Optional[str] = None
    column_renames: Optional[Dict[str, str]] = None  # original -> current
    is_document_root: bool = False
    primary_keys: List[str] = field(default_factory=list)
    column_types: Dict[str, ColumnType] = field(default_factory=dict)

    def to_dict(self, include_rows: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "fileName": self.file_name,
            "columns": list(self.columns),
            "sourceType": self.source_type,
            "isDocumentRoot": self.is_document_root,
            "primaryKeys": list(self.primary_keys),
            "columnTypes": {
                col: {"dataType": ct.data_type, "isPrimaryKey": ct.is_primary_key}
                for col, ct in self.column_types.items()
            },
        }
        if self.original_name is not None:
            data["originalName"] = self.original_name
        if self.column_renames is not None:
            data["columnRenames"] = dict(self.column_renames)
        if include_rows:
            data["rows"] = self.rows
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Table":
        column_types = {
            col: ColumnType(
                data_type=info.get("dataType"),
                is_primary_key=bool(info.get("isPrimaryKey")),
            )
            for col, info in (data.get("columnTypes") or {}).items()
        }
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            columns=list(data.get("columns") or []),
            rows=list(data.get("rows") or []),
            file_name=data.get("fileName"),
            source_type=data.get("sourceType"),
            source_text=data.get("sourceText"),
            original_name=data.get("originalName"),
            column_renames=data.get("columnRenames"),
            is_document_root=bool(data.get("isDocumentRoot")),
            primary_keys=list(data.get("primaryKeys") or []),
            column_types=column_types,
        )


@dataclass
class Relationship:
    """
    Normalized column-level relationship between two tables.

    `max_depth` only matters for edges that revisit the table being
    built (self-joins or a hop back to the immediate parent).
    """
    source_table_id: str
    target_table_id: str
    source_column: str
    target_column: str
    cardinality: Cardinality = Cardinality.ONE_TO_MANY
    included_columns: Optional[List[str]] = None
    max_depth: Optional[int] = None
    output_property_name: Optional[str] = None

    def touches(self, table_id: str) -> bool:
        return self.source_table_id == table_id or self.target_table_id == table_id

    def other_end(self, table_id: str) -> str:
        """Table on the far side of the edge, seen from `table_id`."""
        if self.source_table_id == table_id:
            return self.target_table_id
        return self.source_table_id

    def local_and_remote_columns(self, table_id: str) -> Tuple[str, str]:
        """Join columns as (column on `table_id`, column on the other end)."""
        if self.source_table_id == table_id:
            return self.source_column, self.target_column
        return self.target_column, self.source_column


@dataclass
class EdgeRecord:
    """A relationship as drawn on the canvas: table ids plus column handles."""
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "sourceHandle": self.source_handle,
            "targetHandle": self.target_handle,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EdgeRecord":
        source = data["source"]
        target = data["target"]
        return cls(
            id=data.get("id") or f"{source}:{data.get('sourceHandle')}__{target}:{data.get('targetHandle')}",
            source=source,
            target=target,
            source_handle=data.get("sourceHandle"),
            target_handle=data.get("targetHandle"),
            data=dict(data.get("data") or {}),
        )


@dataclass
class ColumnSplit:
    """Split a column's string values on `delimiter` into an array."""
    table_id: str
    column: str
    delimiter: str

    def to_dict(self) -> Dict[str, Any]:
        return {"tableId": self.table_id, "column": self.column, "delimiter": self.delimiter}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnSplit":
        return cls(table_id=data["tableId"], column=data["column"], delimiter=data["delimiter"])


@dataclass
class PivotGroup:
    """Columns starting with `column_prefix` become `output_property_name` entries."""
    column_prefix: str
    output_property_name: str


@dataclass
class TablePivot:
    """
    Pivot groups of numbered columns into an array of objects.

    For Item1,Fact1,Item2,Fact2 with groups Item/Fact and array name
    "Items" the row gains Items=[{Item, Fact}, {Item, Fact}] and loses
    the four flat columns.
    """
    table_id: str
    array_name: str
    groups: List[PivotGroup] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tableId": self.table_id,
            "arrayName": self.array_name,
            "groups": [
                {"pattern": g.column_prefix, "propertyName": g.output_property_name}
                for g in self.groups
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TablePivot":
        return cls(
            table_id=data["tableId"],
            array_name=data["arrayName"],
            groups=[
                PivotGroup(column_prefix=g["pattern"], output_property_name=g["propertyName"])
                for g in data.get("groups") or []
            ],
        )


@dataclass
class BuildOptions:
    """Per-build projection and transform rules."""
    columns_filter: Dict[str, List[str]] = field(default_factory=dict)
    column_splits: List[ColumnSplit] = field(default_factory=list)
    table_pivots: List[TablePivot] = field(default_factory=list)
