"""
Project persistence.

A project is everything needed to rebuild a session: where each table
came from, the canvas edges with their per-edge overrides, column
selections, renames and column transforms. States are stored as JSON
through a StorageAdapter; table source texts are stored beside them so
a state stays small.
"""

import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from docjoin.catalog.models import (
    BuildOptions,
    ColumnSplit,
    EdgeRecord,
    Relationship,
    Table,
    TablePivot,
)
from docjoin.catalog.operations import apply_all_column_renames, apply_table_renames
from docjoin.ingest.dummy_rows import DEFAULT_ROW_COUNT, generate_dummy_rows
from docjoin.ingest.parsers import ParsingOptions, parse_files
from docjoin.ingest.sql_schema import parse_sql_server_schema
from docjoin.join.relationships import to_relationships
from docjoin.storage.adapter import StorageAdapter, StorageError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 4_500_000


class ProjectError(Exception):
    """Exception raised for project persistence errors."""
    pass


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TableSource(_CamelModel):
    file_name: str = ""
    name: str = ""
    source_text: Optional[str] = None
    source_type: Optional[str] = None


class TableParsingOptions(_CamelModel):
    delimiter: str = "auto"
    skip_rows: int = 0


class ProjectState(_CamelModel):
    """Saved session state of one project."""
    project_id: str
    tables_sources: Dict[str, TableSource] = Field(default_factory=dict)
    node_positions: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    edges: List[Dict[str, Any]] = Field(default_factory=list)
    root_table_id: str = ""
    lead_row_index: int = 0
    selected_columns: Dict[str, List[str]] = Field(default_factory=dict)
    expanded_tables: Dict[str, bool] = Field(default_factory=dict)
    table_parsing_options: Dict[str, TableParsingOptions] = Field(default_factory=dict)
    edge_types: Dict[str, str] = Field(default_factory=dict)
    edge_column_filters: Dict[str, List[str]] = Field(default_factory=dict)
    edge_max_depth: Dict[str, int] = Field(default_factory=dict)
    edge_property_names: Dict[str, str] = Field(default_factory=dict)
    table_renames: Dict[str, str] = Field(default_factory=dict)
    column_renames: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    document_root_ids: List[str] = Field(default_factory=list)
    column_splits: List[Dict[str, Any]] = Field(default_factory=list)
    table_pivots: List[Dict[str, Any]] = Field(default_factory=list)
    sql_schema_text: Optional[str] = None

    def edge_records(self) -> List[EdgeRecord]:
        return [EdgeRecord.from_dict(e) for e in self.edges]

    def relationships(self) -> List[Relationship]:
        """Normalized relationships with this project's per-edge overrides."""
        return to_relationships(
            self.edge_records(),
            edge_types=self.edge_types,
            edge_column_filters=self.edge_column_filters,
            edge_max_depth=self.edge_max_depth,
            edge_property_names=self.edge_property_names,
        )

    def build_options(self) -> BuildOptions:
        return BuildOptions(
            columns_filter=dict(self.selected_columns),
            column_splits=[ColumnSplit.from_dict(s) for s in self.column_splits],
            table_pivots=[TablePivot.from_dict(p) for p in self.table_pivots],
        )


class ProjectMeta(_CamelModel):
    id: str
    name: str


class ExportedProject(_CamelModel):
    """Portable bundle of a project: state plus every table source."""
    marker: bool = Field(default=True, alias="_docjoin")
    version: int = 1
    name: str
    state: ProjectState
    sources: Dict[str, str] = Field(default_factory=dict)


def make_project_id(name: str) -> str:
    """Slug of the name suffixed with a millisecond timestamp."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    stamp = time.time_ns() // 1_000_000
    return f"{slug}-{stamp}" if slug else f"project-{stamp}"


class ProjectStore:
    """
    Saves and loads projects through a storage adapter.

    Each project file holds {"id", "name", "state"}; sources live under
    the adapter's source area keyed by project and table id.
    """

    def __init__(self, storage: StorageAdapter, max_bytes: int = DEFAULT_MAX_BYTES):
        """
        Initialize project store.

        Args:
            storage: Storage backend
            max_bytes: Largest serialized state that will be saved
        """
        self.storage = storage
        self.max_bytes = max_bytes

    def _read_record(self, uri: str) -> Optional[Dict[str, Any]]:
        try:
            return json.loads(self.storage.retrieve(uri).read().decode("utf-8"))
        except (StorageError, ValueError) as e:
            logger.warning(f"Failed reading project record {uri}: {e}")
            return None

    def list_projects(self) -> List[ProjectMeta]:
        projects = []
        for uri in self.storage.list_files("fs://projects"):
            record = self._read_record(uri)
            if record and "id" in record:
                projects.append(ProjectMeta(id=record["id"], name=record.get("name") or record["id"]))
        return sorted(projects, key=lambda p: p.name)

    def save_project(self, project_id: str, name: str, state: ProjectState) -> bool:
        """
        Save a project state.

        Returns:
            False when the serialized state exceeds the size limit or the
            write fails; True otherwise
        """
        record = {"id": project_id, "name": name, "state": state.model_dump(by_alias=True)}
        data = json.dumps(record).encode("utf-8")
        if len(data) > self.max_bytes:
            logger.warning(
                "Project too large to persist, skipping save",
                extra={"extra_fields": {"project_id": project_id, "size": len(data)}},
            )
            return False
        try:
            self.storage.store_project(project_id, data)
        except StorageError as e:
            logger.warning(f"Failed saving project {project_id}: {e}")
            return False
        return True

    def load_project(self, project_id: str) -> Optional[ProjectState]:
        uri = self.storage.project_uri(project_id)
        if not self.storage.exists(uri):
            return None
        record = self._read_record(uri)
        if record is None:
            return None
        try:
            return ProjectState.model_validate(record.get("state") or {})
        except ValidationError as e:
            logger.warning(f"Invalid project state {project_id}: {e}")
            return None

    def _require_record(self, project_id: str) -> Dict[str, Any]:
        uri = self.storage.project_uri(project_id)
        record = self._read_record(uri) if self.storage.exists(uri) else None
        if record is None:
            raise ProjectError(f"Project {project_id} not found")
        return record

    def rename_project(self, project_id: str, name: str) -> None:
        """
        Raises:
            ProjectError: If the project does not exist
        """
        record = self._require_record(project_id)
        record["name"] = name
        self.storage.store_project(project_id, json.dumps(record).encode("utf-8"))

    def delete_project(self, project_id: str) -> None:
        """Delete a project and its stored sources."""
        uri = self.storage.project_uri(project_id)
        if self.storage.exists(uri):
            self.storage.delete(uri)
        for source in self.storage.list_files(self.storage.sources_prefix(project_id)):
            self.storage.delete(source)

    def set_source(self, project_id: str, table_id: str, source_text: str) -> str:
        return self.storage.store_source(project_id, table_id, source_text.encode("utf-8"))

    def get_source(self, project_id: str, table_id: str) -> Optional[str]:
        uri = self.storage.source_uri(project_id, table_id)
        if not self.storage.exists(uri):
            return None
        return self.storage.retrieve(uri).read().decode("utf-8")

    def export_project(self, project_id: str) -> Optional[ExportedProject]:
        """Bundle a saved project with all of its sources; None if unknown."""
        state = self.load_project(project_id)
        if state is None:
            return None
        record = self._require_record(project_id)
        sources = {}
        for table_id in state.tables_sources:
            text = self.get_source(project_id, table_id)
            if text:
                sources[table_id] = text
        return ExportedProject(name=record.get("name") or project_id, state=state, sources=sources)

    def import_project(self, bundle: ExportedProject) -> ProjectMeta:
        """
        Save an exported bundle as a new project.

        The name gets a " (2)", " (3)" ... suffix when already taken.

        Raises:
            ProjectError: If the state cannot be saved
        """
        taken = {p.name for p in self.list_projects()}
        name = bundle.name
        counter = 2
        while name in taken:
            name = f"{bundle.name} ({counter})"
            counter += 1

        project_id = make_project_id(name)
        state = bundle.state.model_copy(update={"project_id": project_id})
        if not self.save_project(project_id, name, state):
            raise ProjectError(f"Could not save imported project {name}")
        for table_id, source_text in bundle.sources.items():
            self.set_source(project_id, table_id, source_text)
        logger.info(f"Imported project {name} as {project_id}")
        return ProjectMeta(id=project_id, name=name)


def rehydrate_tables(
    state: ProjectState,
    store: ProjectStore,
    dummy_row_count: int = DEFAULT_ROW_COUNT,
) -> List[Table]:
    """
    Rebuild the tables of a saved project.

    Sources are re-parsed (or the SQL schema dump re-read and its empty
    tables filled with `dummy_row_count` synthetic rows), then saved
    table and column renames are replayed.
    """
    if state.sql_schema_text:
        schema = parse_sql_server_schema(state.sql_schema_text)
        tables = generate_dummy_rows(schema.tables, schema.edges, count=dummy_row_count)
    else:
        files = []
        options: Dict[str, ParsingOptions] = {}
        for table_id, src in state.tables_sources.items():
            text = src.source_text or store.get_source(state.project_id, table_id)
            if not text:
                logger.debug(f"No stored source for table {table_id}")
                continue
            file_name = src.file_name or f"{src.name or table_id}.txt"
            files.append((file_name, text.encode("utf-8")))
            parsing = state.table_parsing_options.get(table_id)
            if parsing is not None:
                options[file_name] = ParsingOptions(delimiter=parsing.delimiter, skip_rows=parsing.skip_rows)
        if not files:
            return []
        result = parse_files(files, options=options)
        for error in result.errors:
            logger.warning(f"Rehydrate: {error}")
        tables = result.tables

    tables = apply_table_renames(tables, state.table_renames)
    return apply_all_column_renames(tables, state.column_renames)
