"""
SQL Server schema dump parser.

Reads the tab-delimited INFORMATION_SCHEMA export produced by the
column/foreign-key query (one line per column) and returns empty
tables, foreign-key edges and parse errors. Tables that declare a
primary key are flagged as document roots.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from docjoin.catalog.models import ColumnType, EdgeRecord, Table
from docjoin.ingest.parsers import slugify

logger = logging.getLogger(__name__)

SCHEMA_COLUMNS = [
    "table_schema", "table_name", "column_name", "ordinal_position",
    "data_type", "max_length", "precision", "scale", "is_nullable",
    "is_identity", "default_value", "is_primary_key", "fk_name",
    "fk_ref_schema", "fk_ref_table", "fk_ref_column",
]
FK_COLUMNS = SCHEMA_COLUMNS[-4:]


@dataclass
class SchemaParseResult:
    tables: List[Table] = field(default_factory=list)
    edges: List[EdgeRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _norm(value: Optional[str]) -> Optional[str]:
    """Trimmed value, with blanks and the literal NULL treated as absent."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.upper() == "NULL":
        return None
    return value


def _is_true(value: Optional[str]) -> bool:
    return value is not None and (value == "1" or value.lower() == "true")


def _split_line(line: str, header: List[str]) -> Dict[str, str]:
    fields = line.split("\t")
    if len(fields) >= len(SCHEMA_COLUMNS):
        # Leading fields by position; the foreign-key block is aligned from
        # the end because empty defaults sometimes add stray tabs
        values = dict(zip(SCHEMA_COLUMNS[:-4], fields))
        values.update(zip(FK_COLUMNS, fields[-4:]))
        return values
    by_header = dict(zip(header, fields))
    return {key: by_header.get(key, by_header.get(key.replace("_", " "), "")) for key in SCHEMA_COLUMNS}


def parse_sql_server_schema(text: str) -> SchemaParseResult:
    """
    Parse a schema dump into tables and foreign-key edges.

    Args:
        text: Tab-delimited dump, with or without the header line

    Returns:
        SchemaParseResult; tables carry columns, types and primary keys
        but no rows
    """
    result = SchemaParseResult()
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        result.errors.append("Empty schema input")
        return result

    header = [h.strip().lower() for h in lines[0].split("\t")]
    has_header = all(col in header for col in SCHEMA_COLUMNS)
    body = lines[1:] if has_header else lines
    if not has_header:
        header = list(SCHEMA_COLUMNS)

    records = []
    for line in body:
        raw = _split_line(line, header)
        records.append({key: _norm(raw.get(key)) for key in SCHEMA_COLUMNS})

    tables: Dict[str, Table] = {}

    def ensure_table(schema: Optional[str], name: str) -> Table:
        display = f"{schema}.{name}" if schema else name
        table = tables.get(display)
        if table is None:
            table = Table(
                id=slugify(display),
                name=display,
                file_name=display,
                source_type="sqlschema",
                original_name=display,
                column_renames={},
            )
            tables[display] = table
        return table

    for rec in records:
        if not rec["table_name"] or not rec["column_name"]:
            continue
        table = ensure_table(rec["table_schema"], rec["table_name"])
        column = rec["column_name"]
        if column not in table.columns:
            table.columns.append(column)
            table.column_renames[column] = column
        is_pk = _is_true(rec["is_primary_key"])
        table.column_types[column] = ColumnType(data_type=rec["data_type"], is_primary_key=is_pk)
        if is_pk:
            if column not in table.primary_keys:
                table.primary_keys.append(column)
            table.is_document_root = True

    seen_edges = set()
    for rec in records:
        if not rec["fk_name"] or not rec["table_name"]:
            continue
        src_col = rec["column_name"]
        dst_col = rec["fk_ref_column"]
        if not src_col or not dst_col or not rec["fk_ref_table"]:
            logger.debug(f"Skipping incomplete foreign key {rec['fk_name']}")
            continue
        src = ensure_table(rec["table_schema"], rec["table_name"])
        dst = ensure_table(rec["fk_ref_schema"], rec["fk_ref_table"])
        edge_id = f"{src.id}:{src_col}__{dst.id}:{dst_col}"
        if edge_id in seen_edges:
            continue
        seen_edges.add(edge_id)
        result.edges.append(EdgeRecord(
            id=edge_id,
            source=src.id,
            target=dst.id,
            source_handle=src_col,
            target_handle=dst_col,
            data={"type": "one-to-many"},
        ))

    result.tables = list(tables.values())
    logger.info(f"Parsed schema: {len(result.tables)} tables, {len(result.edges)} foreign keys")
    return result
