"""
Bulk export of joined documents.

Builds one document per row of each document-root table and bundles
them into a ZIP archive as <Root>/<Root>_<index>.json. A row whose
build fails is recorded and skipped so one bad row never aborts the
export.
"""

import io
import json
import logging
import threading
import zipfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from docjoin.catalog.models import BuildOptions, Relationship, Table
from docjoin.common.logging_config import PerformanceTracker, get_structured_logger, set_run_id
from docjoin.common.metrics import track_document_build, track_export
from docjoin.join.engine import DocumentBuilder
from docjoin.join.errors import JoinError
from docjoin.storage.adapter import StorageAdapter

logger = logging.getLogger(__name__)
run_log = get_structured_logger(__name__)


@dataclass
class RowFailure:
    table_id: str
    row_index: int
    error: str


@dataclass
class ExportedDocument:
    table: Table
    row_index: int
    document: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class ExportResult:
    archive: bytes
    filename: str
    file_count: int = 0
    errors: List[RowFailure] = field(default_factory=list)
    cancelled: bool = False


class DocumentExporter:
    """
    Exports documents for every row of one or more root tables.

    All builds share one DocumentBuilder; each build owns its visited
    state, so rows can be built on several threads at once.
    """

    def __init__(
        self,
        tables: Iterable[Table],
        relationships: Iterable[Relationship],
        options: Optional[BuildOptions] = None,
        workers: int = 1,
        indent: Optional[int] = 2,
        strict: bool = False,
    ):
        """
        Initialize exporter.

        Args:
            tables: All tables of the project
            relationships: Normalized relationships
            options: Column projection, splits and pivots
            workers: Threads used to build documents (1 = sequential)
            indent: JSON indentation of exported files
            strict: Validate relationships before exporting
        """
        self.tables = list(tables)
        self.builder = DocumentBuilder(self.tables, relationships, options, strict=strict)
        self.workers = max(1, workers)
        self.indent = indent

    def resolve_roots(self, root_ids: Optional[Iterable[str]] = None) -> List[Table]:
        """
        Tables to export from.

        Explicit ids win (unknown ids are skipped); without them every
        table flagged as a document root is used.
        """
        by_id = {t.id: t for t in self.tables}
        if root_ids:
            roots = []
            for rid in root_ids:
                table = by_id.get(rid)
                if table is None:
                    logger.warning(f"Skipping unknown root table {rid}")
                    continue
                roots.append(table)
            return roots
        return [t for t in self.tables if t.is_document_root]

    @staticmethod
    def archive_name(roots: List[Table]) -> str:
        name = roots[0].name if len(roots) == 1 else "documents"
        return f"{name}_export.zip"

    @track_document_build
    def _build_row(self, table: Table, row_index: int) -> Dict[str, Any]:
        return self.builder.build(table.id, row_index)

    def _build_safe(self, table: Table, row_index: int) -> ExportedDocument:
        try:
            return ExportedDocument(table, row_index, document=self._build_row(table, row_index))
        except JoinError as e:
            logger.warning(f"Failed building {table.id}[{row_index}]: {e}")
            return ExportedDocument(table, row_index, error=str(e))

    def iter_documents(
        self,
        root_ids: Optional[Iterable[str]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[ExportedDocument]:
        """
        Build documents root by root, row by row, in row order.

        Args:
            root_ids: Root table ids (defaults to flagged document roots)
            cancel: Checked between rows; stops the iteration once set
        """
        for table in self.resolve_roots(root_ids):
            indices = range(len(table.rows))
            if self.workers == 1:
                for idx in indices:
                    if cancel is not None and cancel.is_set():
                        return
                    yield self._build_safe(table, idx)
                continue

            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                futures = [pool.submit(self._build_safe, table, idx) for idx in indices]
                for future in futures:
                    if cancel is not None and cancel.is_set():
                        for pending in futures:
                            pending.cancel()
                        return
                    yield future.result()

    def render(self, document: Dict[str, Any]) -> str:
        return json.dumps(document, indent=self.indent, ensure_ascii=False, default=str)

    @track_export
    def export_zip(
        self,
        root_ids: Optional[Iterable[str]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ExportResult:
        """
        Export every root row into a ZIP archive.

        Returns:
            ExportResult with archive bytes, file count and per-row errors
        """
        roots = self.resolve_roots(root_ids)
        result = ExportResult(archive=b"", filename=self.archive_name(roots))

        buffer = io.BytesIO()
        with PerformanceTracker("export_zip", logger, roots=[t.id for t in roots]):
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for item in self.iter_documents([t.id for t in roots], cancel=cancel):
                    if item.document is None:
                        result.errors.append(RowFailure(item.table.id, item.row_index, item.error or ""))
                        continue
                    path = f"{item.table.name}/{item.table.name}_{item.row_index}.json"
                    archive.writestr(path, self.render(item.document))
                    result.file_count += 1

        # Cancelled only when the iteration stopped before the last row
        expected = sum(len(t.rows) for t in roots)
        result.cancelled = result.file_count + len(result.errors) < expected
        result.archive = buffer.getvalue()
        run_log.info(
            "Export finished",
            files=result.file_count,
            errors=len(result.errors),
            cancelled=result.cancelled,
        )
        return result


def export_to_storage(
    storage: StorageAdapter,
    exporter: DocumentExporter,
    root_ids: Optional[Iterable[str]] = None,
    run_id: Optional[str] = None,
) -> Tuple[str, ExportResult]:
    """
    Export and persist the archive.

    Returns:
        (storage URI of the archive, export result)
    """
    run_id = set_run_id(run_id)
    result = exporter.export_zip(root_ids)
    uri = storage.store_export(run_id, result.filename, result.archive)
    return uri, result
