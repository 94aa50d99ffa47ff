"""Self-hosted full-text search: BM25 ranking, n-gram fuzzy matching and highlighting."""

from __future__ import annotations

from dataclasses import dataclass

from site_search.config import Settings
from site_search.search.analyzers import TextAnalyzer
from site_search.search.engine import SearchEngine
from site_search.search.indexer import Indexer
from site_search.search.query_cache import QueryCache
from site_search.search.storage import IndexStore
from site_search.search.storage_factory import create_index_store


__version__ = "0.1.0"


@dataclass(frozen=True)
class SearchStack:
    """The store, indexer and engine sharing one configuration and one cache."""

    settings: Settings
    store: IndexStore
    indexer: Indexer
    engine: SearchEngine

    def close(self) -> None:
        self.store.close()


def build_search_stack(settings: Settings | None = None) -> SearchStack:
    """Wire the configured storage medium, analyzer, cache, indexer and engine."""
    settings = settings or Settings()
    store = create_index_store(settings)
    analyzer = TextAnalyzer.from_settings(settings)
    cache = QueryCache(
        ttl_seconds=settings.cache_ttl_seconds,
        max_entries=settings.cache_max_entries,
        enabled=settings.enable_cache,
    )
    return SearchStack(
        settings=settings,
        store=store,
        indexer=Indexer(store, analyzer, settings, cache),
        engine=SearchEngine(store, analyzer, settings, cache),
    )


__all__ = [
    "Indexer",
    "SearchEngine",
    "SearchStack",
    "Settings",
    "__version__",
    "build_search_stack",
]
