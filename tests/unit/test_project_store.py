"""
Unit tests for project persistence.
"""

import pytest

from docjoin.catalog.models import Cardinality
from docjoin.projects.store import (
    ExportedProject,
    ProjectError,
    ProjectState,
    ProjectStore,
    TableSource,
    make_project_id,
    rehydrate_tables,
)

PEOPLE_CSV = "id,name\n1,Ada\n2,Bob\n"


@pytest.fixture
def store(temp_storage):
    return ProjectStore(temp_storage)


@pytest.fixture
def state():
    return ProjectState(
        project_id="p1",
        tables_sources={"people": TableSource(file_name="people.csv", name="people")},
        edges=[{
            "id": "e1",
            "source": "orders",
            "target": "people",
            "sourceHandle": "person_id",
            "targetHandle": "id",
        }],
        root_table_id="people",
        selected_columns={"people": ["id"]},
        edge_types={"e1": "one-to-one"},
        edge_max_depth={"e1": 2},
        column_splits=[{"tableId": "people", "column": "tags", "delimiter": ";"}],
        table_pivots=[{
            "tableId": "people",
            "arrayName": "Phones",
            "groups": [{"pattern": "Phone", "propertyName": "number"}],
        }],
    )


class TestProjectState:
    """Tests for deriving engine inputs from a saved state."""

    def test_relationships_apply_overrides(self, state):
        rels = state.relationships()

        assert len(rels) == 1
        assert rels[0].source_column == "person_id"
        assert rels[0].cardinality == Cardinality.ONE_TO_ONE
        assert rels[0].max_depth == 2

    def test_build_options(self, state):
        options = state.build_options()

        assert options.columns_filter == {"people": ["id"]}
        assert options.column_splits[0].delimiter == ";"
        assert options.table_pivots[0].groups[0].column_prefix == "Phone"

    def test_camel_case_round_trip(self, state):
        dumped = state.model_dump(by_alias=True)

        assert "tablesSources" in dumped
        assert dumped["tablesSources"]["people"]["fileName"] == "people.csv"
        assert ProjectState.model_validate(dumped) == state


class TestSaveAndLoad:
    """Tests for saving, loading and listing projects."""

    def test_round_trip(self, store, state):
        assert store.save_project("p1", "Demo", state)

        assert store.load_project("p1") == state

    def test_load_unknown_returns_none(self, store):
        assert store.load_project("missing") is None

    def test_oversized_state_not_saved(self, temp_storage, state):
        store = ProjectStore(temp_storage, max_bytes=10)

        assert store.save_project("p1", "Demo", state) is False
        assert store.load_project("p1") is None

    def test_list_projects_sorted_by_name(self, store, state):
        store.save_project("p1", "Zeta", state)
        store.save_project("p2", "Alpha", state.model_copy(update={"project_id": "p2"}))

        assert [p.name for p in store.list_projects()] == ["Alpha", "Zeta"]

    def test_rename_project(self, store, state):
        store.save_project("p1", "Demo", state)

        store.rename_project("p1", "Renamed")

        assert store.list_projects()[0].name == "Renamed"

    def test_rename_unknown_project(self, store):
        with pytest.raises(ProjectError):
            store.rename_project("missing", "x")

    def test_delete_removes_sources(self, store, state, temp_storage):
        store.save_project("p1", "Demo", state)
        store.set_source("p1", "people", PEOPLE_CSV)

        store.delete_project("p1")

        assert store.load_project("p1") is None
        assert store.get_source("p1", "people") is None
        assert temp_storage.list_files(temp_storage.sources_prefix("p1")) == []


class TestExportImport:
    """Tests for portable project bundles."""

    def test_export_includes_sources(self, store, state):
        store.save_project("p1", "Demo", state)
        store.set_source("p1", "people", PEOPLE_CSV)

        bundle = store.export_project("p1")

        assert bundle.name == "Demo"
        assert bundle.sources == {"people": PEOPLE_CSV}
        assert bundle.model_dump(by_alias=True)["_docjoin"] is True

    def test_export_unknown_returns_none(self, store):
        assert store.export_project("missing") is None

    def test_import_deduplicates_names(self, store, state):
        store.save_project("p1", "Demo", state)
        store.set_source("p1", "people", PEOPLE_CSV)
        bundle = ExportedProject.model_validate(store.export_project("p1").model_dump(by_alias=True))

        first = store.import_project(bundle)
        second = store.import_project(bundle)

        assert first.name == "Demo (2)"
        assert second.name == "Demo (3)"
        assert store.get_source(first.id, "people") == PEOPLE_CSV
        assert store.load_project(first.id).project_id == first.id

    def test_make_project_id(self):
        assert make_project_id("My Project!").startswith("my-project-")
        assert make_project_id("!!!").startswith("project-")


class TestRehydrate:
    """Tests for rebuilding tables from a saved project."""

    def test_sources_reparsed_and_renames_replayed(self, store):
        state = ProjectState(
            project_id="p1",
            tables_sources={"people": TableSource(file_name="people.csv", name="people")},
            table_renames={"people": "Persons"},
            column_renames={"people": {"name": "full_name"}},
        )
        store.set_source("p1", "people", PEOPLE_CSV)

        tables = rehydrate_tables(state, store)

        assert len(tables) == 1
        assert tables[0].name == "Persons"
        assert tables[0].columns == ["id", "full_name"]
        assert tables[0].rows[0] == {"id": 1, "full_name": "Ada"}

    def test_inline_source_text_preferred(self, store):
        state = ProjectState(
            project_id="p1",
            tables_sources={"people": TableSource(
                file_name="people.csv", name="people", source_text="id\n7\n")},
        )

        tables = rehydrate_tables(state, store)

        assert tables[0].rows == [{"id": 7}]

    def test_missing_sources_yield_no_tables(self, store):
        state = ProjectState(
            project_id="p1",
            tables_sources={"people": TableSource(file_name="people.csv")},
        )

        assert rehydrate_tables(state, store) == []

    def test_sql_schema_text(self, store):
        schema = "dbo\tUsers\tId\t1\tint\t4\t10\t0\t0\t1\t\t1\t\t\t\t"
        state = ProjectState(project_id="p1", sql_schema_text=schema)

        tables = rehydrate_tables(state, store)

        assert tables[0].name == "dbo.Users"
        assert tables[0].is_document_root
        assert [row["Id"] for row in tables[0].rows] == list(range(1, 11))

    def test_sql_schema_row_count(self, store):
        schema = "dbo\tUsers\tId\t1\tint\t4\t10\t0\t0\t1\t\t1\t\t\t\t"
        state = ProjectState(project_id="p1", sql_schema_text=schema)

        tables = rehydrate_tables(state, store, dummy_row_count=3)

        assert len(tables[0].rows) == 3
