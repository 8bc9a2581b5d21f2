"""
Storage factory for the application's storage adapter.

The API resolves its adapter through `get_storage_adapter`; library
callers construct a FilesystemStorage and pass it in directly.
"""

from functools import lru_cache

from docjoin.config.settings import get_settings
from docjoin.storage.adapter import StorageAdapter
from docjoin.storage.filesystem import FilesystemStorage


@lru_cache()
def get_storage_adapter() -> StorageAdapter:
    """
    Get or create the storage adapter instance.

    Returns:
        StorageAdapter instance (FilesystemStorage)
    """
    settings = get_settings()
    return FilesystemStorage(base_path=settings.storage_path)


def reset_storage_adapter() -> None:
    """Drop the cached adapter (useful for testing)."""
    get_storage_adapter.cache_clear()
