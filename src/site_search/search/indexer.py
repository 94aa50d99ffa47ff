"""Indexing pipeline: documents to postings, title markers and n-grams.

The Indexer analyzes one document at a time and hands the storage medium a
complete ``DocumentWrite``; the medium swaps every row of the document in
one atomic operation. Writers for the same ``(index, site, element)`` key
are serialized through a fixed pool of locks picked by key hash; keys on
different stripes proceed in parallel.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
import logging
import threading
import time
from typing import TYPE_CHECKING

from site_search.config import Settings
from site_search.domain.search import DocStats
from site_search.observability.metrics import INDEX_DOC_COUNT, INDEX_OPERATIONS
from site_search.observability.tracing import create_span, set_span_attributes
from site_search.search.errors import IndexNotFoundError, SearchEngineError
from site_search.search.extraction import FieldValue, build_body
from site_search.search.ngrams import generate_ngrams
from site_search.search.storage import DocumentWrite, IndexStats
from site_search.search.stopwords import normalize_language


if TYPE_CHECKING:
    from site_search.search.analyzers import TextAnalyzer
    from site_search.search.query_cache import QueryCache
    from site_search.search.storage import IndexStore


logger = logging.getLogger(__name__)

_DocumentKey = tuple[str, int, int]

LOCK_STRIPES = 64
TITLE_BODY_POSITION_GAP = 1


class Indexer:
    """Writes, replaces and removes documents in an ``IndexStore``."""

    def __init__(
        self,
        store: IndexStore,
        analyzer: TextAnalyzer,
        settings: Settings | None = None,
        cache: QueryCache | None = None,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.settings = settings or Settings()
        self.ngram_sizes = self.settings.get_ngram_sizes()
        self.auto_create_indices = self.settings.auto_create_indices
        self.default_language = self.settings.default_language
        self.cache = cache
        self._locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))

    def _lock_for(self, key: _DocumentKey) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def _invalidate(self, index_handle: str) -> None:
        if self.cache is not None:
            self.cache.invalidate_index(index_handle)

    def _record(self, index_handle: str, operation: str, status: str) -> None:
        INDEX_OPERATIONS.labels(index=index_handle, operation=operation, status=status).inc()

    def _publish_doc_count(self, index_handle: str, site_id: int) -> None:
        stats = self.store.get_stats(index_handle, site_id)
        INDEX_DOC_COUNT.labels(index=index_handle, site=str(site_id)).set(stats.doc_count)

    # Index lifecycle

    def create_index(self, index_handle: str) -> bool:
        """Register ``index_handle``; returns False when it already existed."""
        created = self.store.create_index(index_handle)
        if created:
            logger.info("Created index %s", index_handle)
        return created

    def _require_index(self, index_handle: str) -> None:
        if self.store.index_exists(index_handle):
            return
        if not self.auto_create_indices:
            raise IndexNotFoundError(index_handle)
        self.create_index(index_handle)

    # Writes

    def build_document(
        self,
        index_handle: str,
        site_id: int,
        element_id: int,
        title: str,
        body: str,
        language: str,
        element_type: str = "entry",
    ) -> DocumentWrite:
        """Analyze one document into the rows the store persists."""
        title_tokens = self.analyzer.analyze(title or "", language)
        body_tokens = self.analyzer.analyze(body or "", language)
        # Body positions start past a gap so the title never runs into the body
        body_offset = len(title_tokens) + TITLE_BODY_POSITION_GAP if title_tokens else 0
        term_positions: dict[str, list[int]] = {}
        for token in title_tokens:
            term_positions.setdefault(token.text, []).append(token.position)
        for token in body_tokens:
            term_positions.setdefault(token.text, []).append(body_offset + token.position)

        title_terms = frozenset(token.text for token in title_tokens)
        return DocumentWrite(
            index_handle=index_handle,
            site_id=site_id,
            element_id=element_id,
            language=language,
            title=title or "",
            element_type=element_type,
            search_text=" ".join(self.analyzer.normalize(title or "")),
            term_positions={term: tuple(positions) for term, positions in term_positions.items()},
            title_terms=title_terms,
            term_ngrams={term: tuple(generate_ngrams(term, self.ngram_sizes)) for term in term_positions},
        )

    def index_document(
        self,
        index_handle: str,
        site_id: int,
        element_id: int,
        title: str,
        body: str,
        language: str | None = None,
        element_type: str = "entry",
    ) -> DocStats:
        """Index or re-index one document.

        Re-indexing identical content leaves the stored state unchanged.

        Raises:
            IndexNotFoundError: The index is unknown and auto-creation is off
            StorageFailure: The medium rejected the write
        """
        language = normalize_language(language or self.default_language)
        started = time.perf_counter()
        with create_span("index_document", index_handle, site_id=site_id, element_id=element_id) as span:
            try:
                self._require_index(index_handle)
                document = self.build_document(
                    index_handle, site_id, element_id, title, body, language, element_type
                )
                with self._lock_for((index_handle, site_id, element_id)):
                    change = self.store.replace_document(document)
                set_span_attributes(span, doc_length=document.doc_length, is_new=not change.existed)
            except SearchEngineError:
                self._record(index_handle, "index", "error")
                raise

        self._invalidate(index_handle)
        self._record(index_handle, "index", "success")
        self._publish_doc_count(index_handle, site_id)
        took_ms = (time.perf_counter() - started) * 1000
        if document.doc_length == 0:
            logger.info(
                "Element %s in %s/%s has no indexable terms; summary stored only",
                element_id,
                index_handle,
                site_id,
            )
        logger.debug(
            "Indexed element %s in %s/%s (%d terms, %.1fms)",
            element_id,
            index_handle,
            site_id,
            document.doc_length,
            took_ms,
        )
        return DocStats(
            element_id=element_id,
            site_id=site_id,
            language=language,
            doc_length=document.doc_length,
            unique_terms=len(document.term_positions),
            title_terms=len(document.title_terms),
            is_new=not change.existed,
            took_ms=round(took_ms, 3),
        )

    def index_fields(
        self,
        index_handle: str,
        site_id: int,
        element_id: int,
        title: str,
        fields: Iterable[FieldValue],
        language: str | None = None,
        element_type: str = "entry",
    ) -> DocStats:
        """Index a document whose body is assembled from typed content fields."""
        extracted = build_body(fields)
        return self.index_document(
            index_handle, site_id, element_id, title, extracted.body, language, element_type
        )

    def remove_document(self, index_handle: str, site_id: int, element_id: int) -> None:
        """Remove every row of one document; unknown documents are a no-op.

        Raises:
            IndexNotFoundError: The index was never registered
            StorageFailure: The medium rejected the delete
        """
        with create_span("remove_document", index_handle, site_id=site_id, element_id=element_id) as span:
            try:
                if not self.store.index_exists(index_handle):
                    raise IndexNotFoundError(index_handle)
                with self._lock_for((index_handle, site_id, element_id)):
                    change = self.store.delete_document(index_handle, site_id, element_id)
                set_span_attributes(span, removed=change is not None)
            except SearchEngineError:
                self._record(index_handle, "remove", "error")
                raise

        if change is None:
            logger.debug("Element %s not indexed in %s/%s; nothing to remove", element_id, index_handle, site_id)
            self._record(index_handle, "remove", "noop")
            return
        self._invalidate(index_handle)
        self._record(index_handle, "remove", "success")
        self._publish_doc_count(index_handle, site_id)
        logger.debug("Removed element %s from %s/%s", element_id, index_handle, site_id)

    def clear_index(self, index_handle: str) -> None:
        """Delete every document of every site; the index stays registered."""
        with create_span("clear_index", index_handle):
            try:
                if not self.store.index_exists(index_handle):
                    raise IndexNotFoundError(index_handle)
                self.store.clear_index(index_handle)
            except SearchEngineError:
                self._record(index_handle, "clear", "error")
                raise
        self._invalidate(index_handle)
        self._record(index_handle, "clear", "success")
        logger.info("Cleared index %s", index_handle)

    def rebuild_metadata(self, index_handle: str) -> dict[int, IndexStats]:
        """Recompute per-site document counts and lengths from the postings."""
        with create_span("rebuild_metadata", index_handle) as span:
            if not self.store.index_exists(index_handle):
                raise IndexNotFoundError(index_handle)
            rebuilt = self.store.rebuild_metadata(index_handle)
            set_span_attributes(span, sites=len(rebuilt))
        self._invalidate(index_handle)
        for site_id, stats in rebuilt.items():
            INDEX_DOC_COUNT.labels(index=index_handle, site=str(site_id)).set(stats.doc_count)
        logger.info("Rebuilt metadata for %s (%d sites)", index_handle, len(rebuilt))
        return rebuilt

    # Async wrappers for fire-and-forget callers

    async def aindex_document(
        self,
        index_handle: str,
        site_id: int,
        element_id: int,
        title: str,
        body: str,
        language: str | None = None,
        element_type: str = "entry",
    ) -> DocStats:
        return await asyncio.to_thread(
            self.index_document, index_handle, site_id, element_id, title, body, language, element_type
        )

    async def aremove_document(self, index_handle: str, site_id: int, element_id: int) -> None:
        await asyncio.to_thread(self.remove_document, index_handle, site_id, element_id)
