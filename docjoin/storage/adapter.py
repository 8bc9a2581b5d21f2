"""
Storage backend interface.

A backend keeps three areas, each addressed by URI:

    projects  serialized project states, one per project id
    sources   the raw text each imported table was parsed from
    exports   ZIP archives produced by bulk export runs
"""

from abc import ABC, abstractmethod
from typing import BinaryIO, List


class StorageError(Exception):
    """Raised when a backend cannot read, write or locate a file."""


class StorageAdapter(ABC):

    @abstractmethod
    def store_project(self, project_id: str, data: bytes) -> str:
        """
        Write a project state, replacing any previous copy.

        Returns the URI it was written to (e.g. 'fs://projects/sales-1.json').
        """

    @abstractmethod
    def store_source(self, project_id: str, table_id: str, data: bytes) -> str:
        """Write the source text of one table of a project and return its URI."""

    @abstractmethod
    def store_export(self, run_id: str, filename: str, data: bytes) -> str:
        """Write the archive of an export run and return its URI."""

    @abstractmethod
    def project_uri(self, project_id: str) -> str:
        ...

    @abstractmethod
    def source_uri(self, project_id: str, table_id: str) -> str:
        ...

    @abstractmethod
    def sources_prefix(self, project_id: str) -> str:
        """Prefix shared by every source URI of a project."""

    @abstractmethod
    def retrieve(self, uri: str) -> BinaryIO:
        """
        Open a stored file for reading.

        Raises:
            StorageError: If nothing is stored at `uri`
        """

    @abstractmethod
    def exists(self, uri: str) -> bool:
        ...

    @abstractmethod
    def delete(self, uri: str) -> None:
        """
        Remove a stored file.

        Raises:
            StorageError: If nothing is stored at `uri`
        """

    @abstractmethod
    def list_files(self, prefix: str = "") -> List[str]:
        """Sorted URIs of every file under `prefix`."""
