"""
Storage backend abstraction for project state and exports.

Provides the adapter interface and a filesystem implementation.
"""

from docjoin.storage.adapter import StorageAdapter, StorageError
from docjoin.storage.filesystem import FilesystemStorage
from docjoin.storage.factory import get_storage_adapter, reset_storage_adapter

__all__ = [
    "StorageAdapter",
    "StorageError",
    "FilesystemStorage",
    "get_storage_adapter",
    "reset_storage_adapter",
]
