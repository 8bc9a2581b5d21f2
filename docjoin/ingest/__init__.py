"""
Ingest module for tabular sources.

Provides file and archive parsing into tables, and SQL Server schema
dump parsing into tables plus foreign-key edges, with synthetic rows
for the tables a dump leaves empty.
"""

from docjoin.ingest.parsers import (
    ParseError,
    ParseResult,
    ParsingOptions,
    parse_files,
    parse_paths,
    parse_delimited_text,
    detect_delimiter,
    slugify,
)
from docjoin.ingest.sql_schema import SchemaParseResult, parse_sql_server_schema
from docjoin.ingest.dummy_rows import generate_dummy_rows

__all__ = [  # ruff: noqa: RUF022
    # Files
    "ParseError",
    "ParseResult",
    "ParsingOptions",
    "parse_files",
    "parse_paths",
    "parse_delimited_text",
    "detect_delimiter",
    "slugify",
    # Schema dumps
    "SchemaParseResult",
    "parse_sql_server_schema",
    "generate_dummy_rows",
]
