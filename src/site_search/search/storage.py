"""Index storage contract and the in-memory medium.

Every medium persists the same seven entities, all scoped by
``(index_handle, site_id)``:

* document postings ``(element_id, term) -> frequency, language, positions``
* term statistics, the inverted mirror of postings
* title markers ``(element_id, term)``
* n-gram mappings ``(ngram, term)``
* n-gram counts ``term -> |ngrams(term)|``
* metadata ``(site_id, key) -> value`` (``doc_count``, ``total_length``; site 0
  holds index-level markers such as ``schema_version``)
* element summaries used for autocomplete

``replace_document`` and ``delete_document`` are atomic per document: they
swap every row keyed to the document, drop n-gram rows for terms that no
longer have postings in the site, and apply the metadata delta in the same
operation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
from typing import Any


logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"
INDEX_SITE_ID = 0
META_DOC_COUNT = "doc_count"
META_TOTAL_LENGTH = "total_length"
META_SCHEMA_VERSION = "schema_version"
META_CREATED_AT = "created_at"


@dataclass(frozen=True, slots=True)
class Posting:
    """One document's occurrences of a term."""

    element_id: int
    frequency: int
    language: str
    positions: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class ElementSummary:
    """Denormalized per-document row backing autocomplete."""

    element_id: int
    title: str
    element_type: str
    search_text: str


@dataclass(frozen=True, slots=True)
class NgramOverlap:
    """A stored term sharing n-grams with a query term."""

    term: str
    shared: int
    ngram_count: int


@dataclass(frozen=True, slots=True)
class IndexStats:
    """Corpus statistics for one ``(index_handle, site_id)`` scope."""

    doc_count: int = 0
    total_length: int = 0

    @property
    def average_length(self) -> float:
        if self.doc_count <= 0:
            return 0.0
        return self.total_length / self.doc_count


@dataclass(frozen=True, slots=True)
class MetadataDelta:
    doc_count: int = 0
    total_length: int = 0


@dataclass(frozen=True, slots=True)
class DocumentWrite:
    """Everything the Indexer derived from one document, ready to persist."""

    index_handle: str
    site_id: int
    element_id: int
    language: str
    title: str
    element_type: str
    search_text: str
    term_positions: Mapping[str, tuple[int, ...]]
    title_terms: frozenset[str]
    term_ngrams: Mapping[str, tuple[str, ...]]

    @property
    def doc_length(self) -> int:
        return sum(len(positions) for positions in self.term_positions.values())

    def postings(self) -> dict[str, Posting]:
        return {
            term: Posting(self.element_id, len(positions), self.language, tuple(positions))
            for term, positions in self.term_positions.items()
        }

    def summary(self) -> ElementSummary:
        return ElementSummary(self.element_id, self.title, self.element_type, self.search_text)


@dataclass(frozen=True, slots=True)
class DocumentChange:
    """Outcome of an atomic document replacement or removal."""

    existed: bool
    previous_length: int
    doc_length: int
    delta: MetadataDelta = field(default_factory=MetadataDelta)


def compute_metadata_delta(previous_length: int | None, new_length: int | None) -> MetadataDelta:
    """Metadata change when a document goes from ``previous_length`` to ``new_length``.

    ``None`` means the document is not counted: absent, or present without
    any postings (e.g. stop words only).
    """
    previous_counted = previous_length is not None and previous_length > 0
    new_counted = new_length is not None and new_length > 0
    return MetadataDelta(
        doc_count=int(new_counted) - int(previous_counted),
        total_length=(new_length or 0) - (previous_length or 0),
    )


def clamp_metadata(index_handle: str, site_id: int, key: str, value: int) -> int:
    """Clamp drifted metadata to zero and report it."""
    if value < 0:
        logger.warning(
            "Metadata drift: %s for index %s site %s would be %s; clamping to 0",
            key,
            index_handle,
            site_id,
            value,
            extra={"index_handle": index_handle, "site_id": site_id, "meta_key": key},
        )
        return 0
    return value


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class IndexStore(ABC):
    """Storage medium contract shared by the memory, file and SQLite backends."""

    # Index lifecycle

    @abstractmethod
    def create_index(self, index_handle: str) -> bool:
        """Register ``index_handle``; returns False when it already existed."""

    @abstractmethod
    def index_exists(self, index_handle: str) -> bool:
        """Whether the index carries a schema marker."""

    @abstractmethod
    def list_indices(self) -> list[str]:
        """Registered index handles, sorted."""

    # Writes

    @abstractmethod
    def replace_document(self, document: DocumentWrite) -> DocumentChange:
        """Atomically swap all rows of one document for ``document``."""

    @abstractmethod
    def delete_document(self, index_handle: str, site_id: int, element_id: int) -> DocumentChange | None:
        """Atomically remove one document; ``None`` when it was not indexed."""

    @abstractmethod
    def clear_index(self, index_handle: str) -> None:
        """Remove every document row of every site; the index stays registered."""

    @abstractmethod
    def rebuild_metadata(self, index_handle: str) -> dict[int, IndexStats]:
        """Recompute ``doc_count``/``total_length`` from postings for every site."""

    # Reads

    @abstractmethod
    def get_stats(self, index_handle: str, site_id: int) -> IndexStats:
        """Corpus statistics for the site."""

    @abstractmethod
    def get_postings(self, index_handle: str, site_id: int, terms: Iterable[str]) -> dict[str, list[Posting]]:
        """Postings per term; terms without postings are omitted."""

    @abstractmethod
    def get_document_lengths(self, index_handle: str, site_id: int, element_ids: Iterable[int]) -> dict[int, int]:
        """Document length (sum of posting frequencies) per element."""

    @abstractmethod
    def get_title_matches(self, index_handle: str, site_id: int, terms: Iterable[str]) -> dict[str, set[int]]:
        """Elements whose title carries each term."""

    @abstractmethod
    def get_ngram_overlaps(self, index_handle: str, site_id: int, ngrams: Iterable[str]) -> list[NgramOverlap]:
        """Every stored term sharing at least one of ``ngrams``."""

    @abstractmethod
    def terms_with_prefix(self, index_handle: str, site_id: int, prefix: str, limit: int) -> list[tuple[str, int]]:
        """``(term, document_frequency)`` for terms starting with ``prefix``, most frequent first."""

    @abstractmethod
    def get_summaries(
        self, index_handle: str, site_id: int, element_ids: Iterable[int]
    ) -> dict[int, ElementSummary]:
        """Element summaries by element id."""

    @abstractmethod
    def titles_with_prefix(self, index_handle: str, site_id: int, prefix: str, limit: int) -> list[ElementSummary]:
        """Summaries whose normalized title starts with ``prefix``, or has a word that does."""

    @abstractmethod
    def element_footprint(self, index_handle: str, site_id: int, element_id: int) -> dict[str, int]:
        """Row counts per entity keyed to one element, for audits."""

    def close(self) -> None:  # noqa: B027 - optional hook
        """Release resources held by the medium."""


def _title_rank(summary: ElementSummary, prefix: str) -> int | None:
    if summary.search_text.startswith(prefix):
        return 0
    if f" {prefix}" in f" {summary.search_text}":
        return 1
    return None


def rank_title_matches(summaries: Iterable[ElementSummary], prefix: str, limit: int) -> list[ElementSummary]:
    """Order title matches: whole-title prefix first, then word prefix, then title."""
    ranked = []
    for summary in summaries:
        rank = _title_rank(summary, prefix)
        if rank is not None:
            ranked.append((rank, summary.search_text, summary.element_id, summary))
    ranked.sort(key=lambda item: item[:3])
    return [item[3] for item in ranked[:limit]]


@dataclass
class _IndexState:
    postings: dict[tuple[int, int], dict[str, Posting]] = field(default_factory=dict)
    term_stats: dict[tuple[int, str], dict[int, Posting]] = field(default_factory=dict)
    titles: dict[tuple[int, int], set[str]] = field(default_factory=dict)
    ngrams: dict[tuple[int, str], set[str]] = field(default_factory=dict)
    term_grams: dict[tuple[int, str], set[str]] = field(default_factory=dict)
    ngram_counts: dict[tuple[int, str], int] = field(default_factory=dict)
    metadata: dict[tuple[int, str], str] = field(default_factory=dict)
    summaries: dict[tuple[int, int], ElementSummary] = field(default_factory=dict)


class MemoryIndexStore(IndexStore):
    """Process-local medium backed by dictionaries.

    A single re-entrant lock serializes mutations and reads; per-document
    locking happens a level up in the Indexer.
    """

    def __init__(self) -> None:
        self._indices: dict[str, _IndexState] = {}
        self._lock = threading.RLock()

    # Hook for persistent subclasses, called with the lock held
    def _after_mutation(self, index_handle: str) -> None:
        return None

    def _state(self, index_handle: str) -> _IndexState:
        state = self._indices.get(index_handle)
        if state is None:
            state = _IndexState()
            self._indices[index_handle] = state
        return state

    def _existing_state(self, index_handle: str) -> _IndexState | None:
        return self._indices.get(index_handle)

    def create_index(self, index_handle: str) -> bool:
        with self._lock:
            state = self._state(index_handle)
            marker = (INDEX_SITE_ID, META_SCHEMA_VERSION)
            if marker in state.metadata:
                return False
            state.metadata[marker] = SCHEMA_VERSION
            state.metadata[(INDEX_SITE_ID, META_CREATED_AT)] = utc_timestamp()
            self._after_mutation(index_handle)
            return True

    def index_exists(self, index_handle: str) -> bool:
        with self._lock:
            state = self._existing_state(index_handle)
            return state is not None and (INDEX_SITE_ID, META_SCHEMA_VERSION) in state.metadata

    def list_indices(self) -> list[str]:
        with self._lock:
            return sorted(handle for handle in self._indices if self.index_exists(handle))

    def _remove_rows(self, state: _IndexState, site_id: int, element_id: int) -> tuple[bool, int, set[str]]:
        existed = (site_id, element_id) in state.summaries
        old_postings = state.postings.pop((site_id, element_id), {})
        for term in old_postings:
            inverted = state.term_stats.get((site_id, term))
            if inverted is not None:
                inverted.pop(element_id, None)
                if not inverted:
                    del state.term_stats[(site_id, term)]
        state.titles.pop((site_id, element_id), None)
        state.summaries.pop((site_id, element_id), None)
        previous_length = sum(posting.frequency for posting in old_postings.values())
        return existed, previous_length, set(old_postings)

    def _drop_orphaned_ngrams(self, state: _IndexState, site_id: int, terms: Iterable[str]) -> None:
        for term in terms:
            if (site_id, term) in state.term_stats:
                continue
            state.ngram_counts.pop((site_id, term), None)
            for gram in state.term_grams.pop((site_id, term), ()):
                key = (site_id, gram)
                members = state.ngrams.get(key)
                if members is None:
                    continue
                members.discard(term)
                if not members:
                    del state.ngrams[key]

    def _apply_delta(self, state: _IndexState, index_handle: str, site_id: int, delta: MetadataDelta) -> None:
        for key, change in ((META_DOC_COUNT, delta.doc_count), (META_TOTAL_LENGTH, delta.total_length)):
            current = int(state.metadata.get((site_id, key), "0"))
            state.metadata[(site_id, key)] = str(clamp_metadata(index_handle, site_id, key, current + change))

    def replace_document(self, document: DocumentWrite) -> DocumentChange:
        site_id, element_id = document.site_id, document.element_id
        with self._lock:
            state = self._state(document.index_handle)
            existed, previous_length, old_terms = self._remove_rows(state, site_id, element_id)

            postings = document.postings()
            if postings:
                state.postings[(site_id, element_id)] = postings
                for term, posting in postings.items():
                    state.term_stats.setdefault((site_id, term), {})[element_id] = posting
            if document.title_terms:
                state.titles[(site_id, element_id)] = set(document.title_terms)
            for term, grams in document.term_ngrams.items():
                if term not in postings:
                    continue
                state.ngram_counts[(site_id, term)] = len(grams)
                state.term_grams[(site_id, term)] = set(grams)
                for gram in grams:
                    state.ngrams.setdefault((site_id, gram), set()).add(term)
            state.summaries[(site_id, element_id)] = document.summary()

            self._drop_orphaned_ngrams(state, site_id, old_terms - set(postings))
            delta = compute_metadata_delta(previous_length, document.doc_length)
            self._apply_delta(state, document.index_handle, site_id, delta)
            self._after_mutation(document.index_handle)
            return DocumentChange(existed, previous_length, document.doc_length, delta)

    def delete_document(self, index_handle: str, site_id: int, element_id: int) -> DocumentChange | None:
        with self._lock:
            state = self._existing_state(index_handle)
            if state is None:
                return None
            existed, previous_length, old_terms = self._remove_rows(state, site_id, element_id)
            if not existed and not old_terms:
                return None
            self._drop_orphaned_ngrams(state, site_id, old_terms)
            delta = compute_metadata_delta(previous_length, None)
            self._apply_delta(state, index_handle, site_id, delta)
            self._after_mutation(index_handle)
            return DocumentChange(existed, previous_length, 0, delta)

    def clear_index(self, index_handle: str) -> None:
        with self._lock:
            state = self._existing_state(index_handle)
            if state is None:
                return
            markers = {key: value for key, value in state.metadata.items() if key[0] == INDEX_SITE_ID}
            self._indices[index_handle] = _IndexState(metadata=markers)
            self._after_mutation(index_handle)

    def rebuild_metadata(self, index_handle: str) -> dict[int, IndexStats]:
        with self._lock:
            state = self._state(index_handle)
            # Sites with stale metadata but no postings are reset to zero
            totals: dict[int, list[int]] = {
                site_id: [0, 0] for site_id, _key in state.metadata if site_id != INDEX_SITE_ID
            }
            for (site_id, _element_id), postings in state.postings.items():
                length = sum(posting.frequency for posting in postings.values())
                if length > 0:
                    site_totals = totals.setdefault(site_id, [0, 0])
                    site_totals[0] += 1
                    site_totals[1] += length
            result = {}
            for site_id, (doc_count, total_length) in totals.items():
                state.metadata[(site_id, META_DOC_COUNT)] = str(doc_count)
                state.metadata[(site_id, META_TOTAL_LENGTH)] = str(total_length)
                result[site_id] = IndexStats(doc_count, total_length)
            self._after_mutation(index_handle)
            return result

    def get_stats(self, index_handle: str, site_id: int) -> IndexStats:
        with self._lock:
            state = self._existing_state(index_handle)
            if state is None:
                return IndexStats()
            doc_count = int(state.metadata.get((site_id, META_DOC_COUNT), "0"))
            total_length = int(state.metadata.get((site_id, META_TOTAL_LENGTH), "0"))
            return IndexStats(
                clamp_metadata(index_handle, site_id, META_DOC_COUNT, doc_count),
                clamp_metadata(index_handle, site_id, META_TOTAL_LENGTH, total_length),
            )

    def get_postings(self, index_handle: str, site_id: int, terms: Iterable[str]) -> dict[str, list[Posting]]:
        with self._lock:
            state = self._existing_state(index_handle)
            if state is None:
                return {}
            result = {}
            for term in terms:
                inverted = state.term_stats.get((site_id, term))
                if inverted:
                    result[term] = sorted(inverted.values(), key=lambda posting: posting.element_id)
            return result

    def get_document_lengths(self, index_handle: str, site_id: int, element_ids: Iterable[int]) -> dict[int, int]:
        with self._lock:
            state = self._existing_state(index_handle)
            if state is None:
                return {}
            lengths = {}
            for element_id in element_ids:
                postings = state.postings.get((site_id, element_id))
                if postings:
                    lengths[element_id] = sum(posting.frequency for posting in postings.values())
            return lengths

    def get_title_matches(self, index_handle: str, site_id: int, terms: Iterable[str]) -> dict[str, set[int]]:
        wanted = set(terms)
        with self._lock:
            state = self._existing_state(index_handle)
            if state is None:
                return {}
            matches: dict[str, set[int]] = defaultdict(set)
            for (title_site, element_id), title_terms in state.titles.items():
                if title_site != site_id:
                    continue
                for term in title_terms & wanted:
                    matches[term].add(element_id)
            return dict(matches)

    def get_ngram_overlaps(self, index_handle: str, site_id: int, ngrams: Iterable[str]) -> list[NgramOverlap]:
        with self._lock:
            state = self._existing_state(index_handle)
            if state is None:
                return []
            shared: dict[str, int] = defaultdict(int)
            for gram in set(ngrams):
                for term in state.ngrams.get((site_id, gram), ()):
                    shared[term] += 1
            return [
                NgramOverlap(term, count, state.ngram_counts.get((site_id, term), 0))
                for term, count in sorted(shared.items())
            ]

    def terms_with_prefix(self, index_handle: str, site_id: int, prefix: str, limit: int) -> list[tuple[str, int]]:
        with self._lock:
            state = self._existing_state(index_handle)
            if state is None:
                return []
            matches = [
                (term, len(inverted))
                for (term_site, term), inverted in state.term_stats.items()
                if term_site == site_id and term.startswith(prefix)
            ]
        matches.sort(key=lambda item: (-item[1], item[0]))
        return matches[:limit]

    def get_summaries(
        self, index_handle: str, site_id: int, element_ids: Iterable[int]
    ) -> dict[int, ElementSummary]:
        with self._lock:
            state = self._existing_state(index_handle)
            if state is None:
                return {}
            return {
                element_id: state.summaries[(site_id, element_id)]
                for element_id in element_ids
                if (site_id, element_id) in state.summaries
            }

    def titles_with_prefix(self, index_handle: str, site_id: int, prefix: str, limit: int) -> list[ElementSummary]:
        with self._lock:
            state = self._existing_state(index_handle)
            if state is None:
                return []
            summaries = [summary for (summary_site, _), summary in state.summaries.items() if summary_site == site_id]
        return rank_title_matches(summaries, prefix, limit)

    def element_footprint(self, index_handle: str, site_id: int, element_id: int) -> dict[str, int]:
        with self._lock:
            state = self._existing_state(index_handle) or _IndexState()
            postings = state.postings.get((site_id, element_id), {})
            return {
                "postings": len(postings),
                "term_stats": sum(
                    1
                    for (term_site, _), inverted in state.term_stats.items()
                    if term_site == site_id and element_id in inverted
                ),
                "titles": len(state.titles.get((site_id, element_id), ())),
                "summaries": int((site_id, element_id) in state.summaries),
            }

    # Snapshot support for the file medium

    def _export_state(self, index_handle: str) -> dict[str, Any]:
        state = self._state(index_handle)
        return {
            "postings": [
                [site_id, element_id, term, posting.frequency, posting.language, list(posting.positions)]
                for (site_id, element_id), postings in state.postings.items()
                for term, posting in postings.items()
            ],
            "titles": [
                [site_id, element_id, term]
                for (site_id, element_id), terms in state.titles.items()
                for term in sorted(terms)
            ],
            "ngrams": [
                [site_id, gram, term] for (site_id, gram), terms in state.ngrams.items() for term in sorted(terms)
            ],
            "ngram_counts": [[site_id, term, count] for (site_id, term), count in state.ngram_counts.items()],
            "metadata": [[site_id, key, value] for (site_id, key), value in state.metadata.items()],
            "summaries": [
                [site_id, summary.element_id, summary.title, summary.element_type, summary.search_text]
                for (site_id, _), summary in state.summaries.items()
            ],
        }

    def _import_state(self, index_handle: str, payload: Mapping[str, Any]) -> None:
        state = _IndexState()
        for site_id, element_id, term, frequency, language, positions in payload.get("postings", []):
            posting = Posting(element_id, frequency, language, tuple(positions))
            state.postings.setdefault((site_id, element_id), {})[term] = posting
            state.term_stats.setdefault((site_id, term), {})[element_id] = posting
        for site_id, element_id, term in payload.get("titles", []):
            state.titles.setdefault((site_id, element_id), set()).add(term)
        for site_id, gram, term in payload.get("ngrams", []):
            state.ngrams.setdefault((site_id, gram), set()).add(term)
            state.term_grams.setdefault((site_id, term), set()).add(gram)
        for site_id, term, count in payload.get("ngram_counts", []):
            state.ngram_counts[(site_id, term)] = count
        for site_id, key, value in payload.get("metadata", []):
            state.metadata[(site_id, key)] = value
        for site_id, element_id, title, element_type, search_text in payload.get("summaries", []):
            state.summaries[(site_id, element_id)] = ElementSummary(element_id, title, element_type, search_text)
        self._indices[index_handle] = state
