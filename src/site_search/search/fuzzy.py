"""Fuzzy matching for typo-tolerant search.

Query terms with no exact postings are expanded to indexed terms whose
character n-gram sets are similar enough (Jaccard similarity).

Smart Defaults:
- N-gram sizes 2 and 3 over the space-padded term
- Similarity threshold 0.5, inclusive
- Shorter thresholds for terms of four characters or fewer
- At most 100 candidates per term, most similar first
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
import logging
import time
from typing import TYPE_CHECKING

from site_search.search.errors import FuzzyTimeout
from site_search.search.ngrams import DEFAULT_NGRAM_SIZES, adaptive_threshold, generate_ngrams, jaccard_from_counts


if TYPE_CHECKING:
    from site_search.config import Settings
    from site_search.search.storage import IndexStore


logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# How many overlap rows to score between deadline checks
_DEADLINE_CHECK_INTERVAL = 256


@dataclass(frozen=True, slots=True)
class Deadline:
    """Absolute point on a monotonic clock after which fuzzy work stops."""

    expires_at: float
    budget_ms: float
    clock: Clock = time.monotonic

    @classmethod
    def after_ms(cls, budget_ms: float, clock: Clock = time.monotonic) -> Deadline:
        return cls(clock() + budget_ms / 1000.0, budget_ms, clock)

    def expired(self) -> bool:
        return self.clock() > self.expires_at


@dataclass(frozen=True, slots=True)
class FuzzyCandidate:
    """An indexed term accepted as a fuzzy expansion."""

    term: str
    similarity: float


class FuzzyMatcher:
    """Finds indexed terms similar to a query term through the n-gram tables."""

    def __init__(
        self,
        store: IndexStore,
        *,
        ngram_sizes: Sequence[int] = DEFAULT_NGRAM_SIZES,
        similarity_threshold: float = 0.5,
        max_candidates: int = 100,
        adaptive: bool = True,
    ) -> None:
        self.store = store
        self.ngram_sizes = tuple(ngram_sizes)
        self.similarity_threshold = similarity_threshold
        self.max_candidates = max_candidates
        self.adaptive = adaptive

    @classmethod
    def from_settings(cls, store: IndexStore, settings: Settings) -> FuzzyMatcher:
        return cls(
            store,
            ngram_sizes=settings.get_ngram_sizes(),
            similarity_threshold=settings.similarity_threshold,
            max_candidates=settings.max_fuzzy_candidates,
            adaptive=settings.adaptive_fuzzy_threshold,
        )

    def threshold_for(self, term: str) -> float:
        if self.adaptive:
            return adaptive_threshold(term, self.similarity_threshold)
        return self.similarity_threshold

    def find_candidates(
        self,
        index_handle: str,
        site_id: int,
        term: str,
        *,
        deadline: Deadline | None = None,
    ) -> list[FuzzyCandidate]:
        """Return indexed terms at or above the similarity threshold.

        Args:
            index_handle: Index to search
            site_id: Site scope
            term: Analyzed query term
            deadline: Optional time budget shared across the query

        Returns:
            Candidates sorted by similarity (desc) then term, capped at
            ``max_candidates``

        Raises:
            FuzzyTimeout: The deadline passed before expansion finished
        """
        query_ngrams = generate_ngrams(term, self.ngram_sizes)
        if not query_ngrams:
            return []
        self._check_deadline(term, deadline)

        overlaps = self.store.get_ngram_overlaps(index_handle, site_id, query_ngrams)
        threshold = self.threshold_for(term)
        query_count = len(query_ngrams)

        candidates: list[FuzzyCandidate] = []
        for checked, overlap in enumerate(overlaps, start=1):
            if checked % _DEADLINE_CHECK_INTERVAL == 0:
                self._check_deadline(term, deadline)
            if overlap.term == term:
                continue
            similarity = jaccard_from_counts(overlap.shared, query_count, overlap.ngram_count)
            if similarity >= threshold:
                candidates.append(FuzzyCandidate(overlap.term, similarity))

        self._check_deadline(term, deadline)
        candidates.sort(key=lambda candidate: (-candidate.similarity, candidate.term))
        accepted = candidates[: self.max_candidates]
        logger.debug(
            "Fuzzy expansion for %r: %d of %d overlapping terms accepted (threshold %.3f)",
            term,
            len(accepted),
            len(overlaps),
            threshold,
        )
        return accepted

    @staticmethod
    def _check_deadline(term: str, deadline: Deadline | None) -> None:
        if deadline is not None and deadline.expired():
            raise FuzzyTimeout(term, deadline.budget_ms)
