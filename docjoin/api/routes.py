# API routes

import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from docjoin.catalog.models import (
    BuildOptions,
    Cardinality,
    ColumnSplit,
    EdgeRecord,
    Relationship,
    Table,
    TablePivot,
)
from docjoin.common.logging_config import PerformanceTracker, clear_run_id, set_run_id
from docjoin.config.settings import Settings, get_settings
from docjoin.cost.ru import RuEstimator
from docjoin.export.exporter import DocumentExporter
from docjoin.ingest.dummy_rows import generate_dummy_rows
from docjoin.ingest.parsers import parse_files
from docjoin.ingest.sql_schema import parse_sql_server_schema
from docjoin.join.engine import build_document
from docjoin.join.errors import NotFoundError, RelationshipValidationError
from docjoin.join.relationships import to_relationships
from docjoin.projects.store import (
    ExportedProject,
    ProjectError,
    ProjectMeta,
    ProjectState,
    ProjectStore,
)
from docjoin.storage.factory import get_storage_adapter


logger = logging.getLogger(__name__)

router = APIRouter()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JoinRequest(_CamelModel):
    """Tables, canvas edges and build rules shared by preview and export."""
    tables: List[Dict[str, Any]]
    edges: List[Dict[str, Any]] = Field(default_factory=list)
    edge_types: Dict[str, str] = Field(default_factory=dict)
    edge_column_filters: Dict[str, List[str]] = Field(default_factory=dict)
    edge_max_depth: Dict[str, int] = Field(default_factory=dict)
    edge_property_names: Dict[str, str] = Field(default_factory=dict)
    selected_columns: Dict[str, List[str]] = Field(default_factory=dict)
    column_splits: List[Dict[str, Any]] = Field(default_factory=list)
    table_pivots: List[Dict[str, Any]] = Field(default_factory=list)
    strict: Optional[bool] = None

    def to_inputs(
        self, default_cardinality: Cardinality = Cardinality.ONE_TO_MANY,
    ) -> Tuple[List[Table], List[Relationship], BuildOptions]:
        """
        Convert the payload into engine inputs.

        Raises:
            HTTPException: 400 when a table, edge or transform is malformed
        """
        try:
            tables = [Table.from_dict(t) for t in self.tables]
            edges = [EdgeRecord.from_dict(e) for e in self.edges]
            options = BuildOptions(
                columns_filter=dict(self.selected_columns),
                column_splits=[ColumnSplit.from_dict(s) for s in self.column_splits],
                table_pivots=[TablePivot.from_dict(p) for p in self.table_pivots],
            )
        except (KeyError, TypeError) as e:
            raise HTTPException(status_code=400, detail=f"Malformed request field: {e}")

        relationships = to_relationships(
            edges,
            edge_types=self.edge_types,
            edge_column_filters=self.edge_column_filters,
            edge_max_depth=self.edge_max_depth,
            edge_property_names=self.edge_property_names,
            default_cardinality=default_cardinality,
        )
        return tables, relationships, options


class PreviewRequest(JoinRequest):
    lead_table_id: str
    lead_row_index: int = 0


class PreviewResponse(BaseModel):
    document: Dict[str, Any]
    cost: Dict[str, Any]


class ExportRequest(JoinRequest):
    root_ids: List[str] = Field(default_factory=list)


class ParseResponse(BaseModel):
    tables: List[dict]
    errors: List[str]


class SqlSchemaRequest(BaseModel):
    text: str


class SqlSchemaResponse(BaseModel):
    tables: List[dict]
    edges: List[dict]
    errors: List[str]


class SaveProjectRequest(_CamelModel):
    name: str
    state: ProjectState


def get_project_store(settings: Settings = Depends(get_settings)) -> ProjectStore:
    return ProjectStore(get_storage_adapter(), max_bytes=settings.project_max_bytes)


def _strict(request: JoinRequest, settings: Settings) -> bool:
    return settings.strict_relationships if request.strict is None else request.strict


def _default_cardinality(settings: Settings) -> Cardinality:
    try:
        return Cardinality(settings.default_cardinality)
    except ValueError:
        logger.warning(f"Invalid default cardinality {settings.default_cardinality!r}")
        return Cardinality.ONE_TO_MANY


@router.post("/preview", response_model=PreviewResponse)
def preview(request: PreviewRequest, settings: Settings = Depends(get_settings)):
    """
    Build the document for one lead row.

    - **leadTableId**: Root table of the document
    - **leadRowIndex**: Row of the root table to start from

    Returns the document plus its RU cost estimate.
    """
    tables, relationships, options = request.to_inputs(_default_cardinality(settings))
    try:
        document = build_document(
            request.lead_table_id,
            request.lead_row_index,
            tables,
            relationships,
            options,
            strict=_strict(request, settings),
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RelationshipValidationError as e:
        raise HTTPException(status_code=400, detail=e.problems)

    estimate = RuEstimator().estimate(document)
    return PreviewResponse(document=document, cost=estimate.to_dict())


@router.post("/export")
def export(request: ExportRequest, settings: Settings = Depends(get_settings)):
    """
    Export every row of the root tables as a ZIP of JSON documents.

    Root tables default to those flagged as document roots. Rows that
    fail to build are skipped and counted in the X-Export-Errors header.
    """
    tables, relationships, options = request.to_inputs(_default_cardinality(settings))
    run_id = set_run_id()
    try:
        exporter = DocumentExporter(
            tables,
            relationships,
            options,
            workers=settings.export_workers,
            indent=settings.export_indent,
            strict=_strict(request, settings),
        )
        if not exporter.resolve_roots(request.root_ids):
            raise HTTPException(status_code=400, detail="No document root tables to export")
        result = exporter.export_zip(request.root_ids)
    except RelationshipValidationError as e:
        raise HTTPException(status_code=400, detail=e.problems)
    finally:
        clear_run_id()

    return Response(
        content=result.archive,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            "X-Export-Files": str(result.file_count),
            "X-Export-Errors": str(len(result.errors)),
            "X-Run-Id": run_id,
        },
    )


@router.post("/parse", response_model=ParseResponse)
def parse(
    files: List[UploadFile] = File(...),
    settings: Settings = Depends(get_settings),
):
    """
    Parse uploaded CSV/TSV/TXT/JSON/JSONL files or archives into tables.

    Files that fail are reported in `errors`; the rest are returned.
    Archives may expand to at most `max_upload_bytes` in total.
    """
    payload = []
    for upload in files:
        data = upload.file.read(settings.max_upload_bytes + 1)
        if len(data) > settings.max_upload_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"{upload.filename} exceeds {settings.max_upload_bytes} bytes",
            )
        payload.append((upload.filename or "upload", data))

    with PerformanceTracker("parse_upload", logger, files=len(payload)):
        result = parse_files(payload, max_expanded_bytes=settings.max_upload_bytes)
    return ParseResponse(
        tables=[t.to_dict() for t in result.tables],
        errors=result.errors,
    )


@router.post("/schema/sql", response_model=SqlSchemaResponse)
def parse_sql_schema(
    request: SqlSchemaRequest,
    settings: Settings = Depends(get_settings),
):
    """
    Turn a SQL Server schema dump into tables and foreign-key edges.

    The dump carries no data, so every table is filled with synthetic
    rows that respect its foreign keys.
    """
    result = parse_sql_server_schema(request.text)
    if result.errors and not result.tables:
        raise HTTPException(status_code=400, detail="; ".join(result.errors))
    tables = generate_dummy_rows(result.tables, result.edges, count=settings.dummy_row_count)
    return SqlSchemaResponse(
        tables=[t.to_dict() for t in tables],
        edges=[e.to_dict() for e in result.edges],
        errors=result.errors,
    )


@router.get("/projects", response_model=List[ProjectMeta])
def list_projects(store: ProjectStore = Depends(get_project_store)):
    return store.list_projects()


@router.get("/projects/{project_id}")
def get_project(project_id: str, store: ProjectStore = Depends(get_project_store)):
    state = store.load_project(project_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return state.model_dump(by_alias=True)


@router.put("/projects/{project_id}")
def save_project(
    project_id: str,
    request: SaveProjectRequest,
    store: ProjectStore = Depends(get_project_store),
):
    """
    Save a project state.

    States over the configured size ceiling are refused with 413.
    """
    state = request.state.model_copy(update={"project_id": project_id})
    if not store.save_project(project_id, request.name, state):
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Project state too large or not writable",
        )
    return {"id": project_id, "name": request.name, "saved": True}


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(project_id: str, store: ProjectStore = Depends(get_project_store)):
    store.delete_project(project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/projects/{project_id}/bundle")
def export_project(project_id: str, store: ProjectStore = Depends(get_project_store)):
    bundle = store.export_project(project_id)
    if bundle is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return bundle.model_dump(by_alias=True)


@router.post("/projects/import", response_model=ProjectMeta, status_code=status.HTTP_201_CREATED)
def import_project(bundle: ExportedProject, store: ProjectStore = Depends(get_project_store)):
    try:
        return store.import_project(bundle)
    except ProjectError as e:
        raise HTTPException(status_code=400, detail=str(e))
