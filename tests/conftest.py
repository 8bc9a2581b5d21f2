# Test configuration

import pytest
import os
import sys

# Add the project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from docjoin.catalog.models import Relationship, Table  # noqa: E402
from docjoin.storage.filesystem import FilesystemStorage  # noqa: E402


@pytest.fixture
def test_settings(tmp_path):
    """Override settings for testing"""
    from docjoin.config.settings import Settings
    return Settings(
        storage_path=str(tmp_path / "storage"),
        json_logs=False,
        export_workers=1,
    )


@pytest.fixture
def temp_storage(tmp_path):
    """Create a temporary storage instance."""
    return FilesystemStorage(str(tmp_path / "storage"))


@pytest.fixture
def table_a():
    return Table(
        id="A",
        name="A",
        columns=["id", "b_id"],
        rows=[{"id": 1, "b_id": 10}, {"id": 2, "b_id": 11}],
        is_document_root=True,
    )


@pytest.fixture
def table_b():
    return Table(
        id="B",
        name="B",
        columns=["id", "val"],
        rows=[{"id": 10, "val": "x"}, {"id": 11, "val": "y"}],
    )


@pytest.fixture
def a_to_b():
    return Relationship(
        source_table_id="A",
        target_table_id="B",
        source_column="b_id",
        target_column="id",
    )


@pytest.fixture
def employees():
    return Table(
        id="employees",
        name="Employee",
        columns=["id", "name", "manager_id"],
        rows=[
            {"id": 1, "name": "Boss", "manager_id": None},
            {"id": 2, "name": "Worker", "manager_id": 1},
            {"id": 3, "name": "Intern", "manager_id": 2},
        ],
    )
