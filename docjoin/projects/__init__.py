"""Project persistence: saved states, table sources and portable bundles."""

from docjoin.projects.store import (
    ExportedProject,
    ProjectError,
    ProjectMeta,
    ProjectState,
    ProjectStore,
    TableSource,
    make_project_id,
    rehydrate_tables,
)

__all__ = [
    "ExportedProject",
    "ProjectError",
    "ProjectMeta",
    "ProjectState",
    "ProjectStore",
    "TableSource",
    "make_project_id",
    "rehydrate_tables",
]
