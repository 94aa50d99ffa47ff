"""Shared test fixtures and configuration."""

from __future__ import annotations

import os

import pytest

from site_search.config import Settings
from site_search.search.analyzers import TextAnalyzer
from site_search.search.engine import SearchEngine
from site_search.search.file_storage import FileIndexStore
from site_search.search.indexer import Indexer
from site_search.search.query_cache import QueryCache
from site_search.search.sqlite_storage import SqliteIndexStore
from site_search.search.storage import MemoryIndexStore


STORE_BACKENDS = ("memory", "file", "sqlite")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep host SEARCH_ENGINE_* variables and .env files out of every test."""
    for key in list(os.environ):
        if key.upper().startswith("SEARCH_ENGINE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(storage_backend="memory", storage_path=tmp_path / "search-data", log_json=False)


@pytest.fixture
def analyzer(settings) -> TextAnalyzer:
    return TextAnalyzer.from_settings(settings)


def _make_store(backend: str, tmp_path):
    if backend == "memory":
        return MemoryIndexStore()
    if backend == "file":
        return FileIndexStore(tmp_path / "snapshots")
    return SqliteIndexStore(tmp_path / "search.db")


@pytest.fixture(params=STORE_BACKENDS)
def store(request, tmp_path):
    """Every storage medium, so contract tests run once per backend."""
    index_store = _make_store(request.param, tmp_path)
    yield index_store
    index_store.close()


@pytest.fixture
def memory_store():
    return MemoryIndexStore()


@pytest.fixture
def cache(settings) -> QueryCache:
    return QueryCache(ttl_seconds=settings.cache_ttl_seconds, max_entries=settings.cache_max_entries)


@pytest.fixture
def indexer(store, analyzer, settings, cache) -> Indexer:
    return Indexer(store, analyzer, settings, cache)


@pytest.fixture
def engine(store, analyzer, settings, cache) -> SearchEngine:
    return SearchEngine(store, analyzer, settings, cache)


@pytest.fixture
def products(indexer):
    """The ``products`` index with the red-shoes catalogue on site 1."""
    indexer.create_index("products")
    indexer.index_document("products", 1, 1, "Red Shoes", "Comfortable red running shoes", "en")
    indexer.index_document("products", 1, 2, "Running Socks", "Cotton socks to wear with your shoes", "en")
    indexer.index_document("products", 1, 3, "Blue Jacket", "A waterproof jacket for cold mornings", "en")
    return indexer
