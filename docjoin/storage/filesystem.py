"""
Filesystem storage backend.

Layout below the base path:

    projects/{project_id}.json
    sources/{project_id}/{table_id}.txt
    exports/{run_id}/{filename}

Writes go to a sibling '.tmp' file that is renamed into place, so a
reader never sees a half-written project.
"""

import re
from contextlib import contextmanager
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, List

from docjoin.storage.adapter import StorageAdapter, StorageError

SCHEME = "fs://"
_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def _safe(part: str) -> str:
    """Single path component with separators and other unsafe characters replaced."""
    cleaned = _SAFE_NAME.sub("_", part).strip(".")
    if not cleaned:
        raise StorageError(f"Invalid path component: {part!r}")
    return cleaned


@contextmanager
def _os_errors(action: str):
    try:
        yield
    except StorageError:
        raise
    except OSError as e:
        raise StorageError(f"Failed to {action}: {e}") from e


class FilesystemStorage(StorageAdapter):
    """Storage rooted at a local directory."""

    AREAS = ("projects", "sources", "exports")

    def __init__(self, base_path: str = "./storage"):
        self.base_path = Path(base_path).resolve()
        for area in self.AREAS:
            (self.base_path / area).mkdir(parents=True, exist_ok=True)

    def _resolve(self, uri: str) -> Path:
        if not uri.startswith(SCHEME):
            raise StorageError(f"Invalid URI scheme: {uri}")

        path = (self.base_path / uri[len(SCHEME):]).resolve()
        if path != self.base_path and self.base_path not in path.parents:
            raise StorageError(f"URI outside storage root: {uri}")
        return path

    def _uri(self, path: Path) -> str:
        return SCHEME + path.relative_to(self.base_path).as_posix()

    def _write(self, uri: str, data: bytes, action: str) -> str:
        with _os_errors(action):
            path = self._resolve(uri)
            path.parent.mkdir(parents=True, exist_ok=True)
            staging = path.with_name(path.name + ".tmp")
            staging.write_bytes(data)
            staging.replace(path)
        return uri

    def project_uri(self, project_id: str) -> str:
        return f"{SCHEME}projects/{_safe(project_id)}.json"

    def source_uri(self, project_id: str, table_id: str) -> str:
        return f"{SCHEME}sources/{_safe(project_id)}/{_safe(table_id)}.txt"

    def sources_prefix(self, project_id: str) -> str:
        return f"{SCHEME}sources/{_safe(project_id)}"

    def store_project(self, project_id: str, data: bytes) -> str:
        return self._write(self.project_uri(project_id), data, "store project")

    def store_source(self, project_id: str, table_id: str, data: bytes) -> str:
        return self._write(self.source_uri(project_id, table_id), data, "store source")

    def store_export(self, run_id: str, filename: str, data: bytes) -> str:
        uri = f"{SCHEME}exports/{_safe(run_id)}/{_safe(filename)}"
        return self._write(uri, data, "store export")

    def retrieve(self, uri: str) -> BinaryIO:
        path = self._resolve(uri)
        if not path.is_file():
            raise StorageError(f"File not found: {uri}")
        with _os_errors("retrieve file"):
            return BytesIO(path.read_bytes())

    def exists(self, uri: str) -> bool:
        return self._resolve(uri).is_file()

    def delete(self, uri: str) -> None:
        """Delete a file and any directories it leaves empty below its area."""
        path = self._resolve(uri)
        if not path.is_file():
            raise StorageError(f"File not found: {uri}")

        area_roots = {self.base_path / area for area in self.AREAS}
        with _os_errors("delete file"):
            path.unlink()
            parent = path.parent
            while parent not in area_roots and parent != self.base_path:
                if any(parent.iterdir()):
                    break
                parent.rmdir()
                parent = parent.parent

    def list_files(self, prefix: str = "") -> List[str]:
        """
        List stored files.

        Args:
            prefix: URI prefix ('fs://sources/p1') or a path below the root

        Returns:
            Sorted list of URIs, staging files excluded
        """
        if prefix.startswith(SCHEME):
            root = self._resolve(prefix)
        elif "://" in prefix:
            raise StorageError(f"Invalid URI scheme: {prefix}")
        else:
            root = self.base_path / prefix

        if not root.exists():
            return []
        with _os_errors("list files"):
            return sorted(
                self._uri(path)
                for path in root.rglob("*")
                if path.is_file() and not path.name.endswith(".tmp")
            )
