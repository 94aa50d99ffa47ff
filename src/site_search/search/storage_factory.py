"""Storage factory for choosing the index medium at construction time."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from site_search.search.file_storage import FileIndexStore
from site_search.search.sqlite_storage import SqliteIndexStore
from site_search.search.storage import IndexStore, MemoryIndexStore


if TYPE_CHECKING:
    from site_search.config import Settings


logger = logging.getLogger(__name__)


def create_index_store(settings: Settings) -> IndexStore:
    """Create the medium named by ``settings.storage_backend``."""
    backend = settings.storage_backend
    if backend == "sqlite":
        store: IndexStore = SqliteIndexStore(settings.sqlite_path())
    elif backend == "file":
        store = FileIndexStore(settings.storage_path)
    elif backend == "memory":
        store = MemoryIndexStore()
    else:
        raise ValueError(f"Unknown storage backend '{backend}'. Available: ['file', 'memory', 'sqlite']")
    logger.info("Using %s index storage", backend, extra={"storage_path": settings.storage_path})
    return store
