"""
Storage backends.

A provider is a callable returning a context manager that yields a Storage
for the duration of one request.
"""
from contextlib import contextmanager

from examhub.storage.base import DuplicateRecord, Storage
from examhub.storage.memory import MemoryStorage
from examhub.storage.sql import SqlStorage, SqlStorageProvider


class MemoryStorageProvider:
    """Every request shares one MemoryStorage."""

    def __init__(self, storage: MemoryStorage = None):
        self.storage = storage or MemoryStorage()

    def init(self) -> None:
        pass

    @contextmanager
    def __call__(self):
        yield self.storage

    def dispose(self) -> None:
        pass


def build_storage_provider(settings):
    if settings.storage_backend == "memory":
        return MemoryStorageProvider()
    if settings.storage_backend == "sql":
        return SqlStorageProvider(settings.database_url, echo=settings.debug)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


__all__ = [
    "DuplicateRecord",
    "Storage",
    "MemoryStorage",
    "MemoryStorageProvider",
    "SqlStorage",
    "SqlStorageProvider",
    "build_storage_provider",
]
