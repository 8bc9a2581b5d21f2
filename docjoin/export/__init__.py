"""Bulk export of joined documents into ZIP archives."""

from docjoin.export.exporter import (
    DocumentExporter,
    ExportedDocument,
    ExportResult,
    RowFailure,
    export_to_storage,
)

__all__ = [
    "DocumentExporter",
    "ExportedDocument",
    "ExportResult",
    "RowFailure",
    "export_to_storage",
]
