"""BM25 relevance scoring with title, exact-match and phrase boosts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from site_search.search.stats import bm25, calculate_idf


if TYPE_CHECKING:
    from site_search.config import Settings
    from site_search.search.storage import IndexStats


class MatchKind(str, Enum):
    """How an indexed term was reached from a query term."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    PREFIX = "prefix"


@dataclass(frozen=True, slots=True)
class TermMatch:
    """An indexed term standing in for a query term."""

    query_term: str
    term: str
    kind: MatchKind = MatchKind.EXACT
    similarity: float = 1.0


@dataclass(frozen=True, slots=True)
class ScoringParameters:
    k1: float = 1.5
    b: float = 0.75
    title_boost: float = 5.0
    exact_match_boost: float = 3.0
    phrase_boost: float = 4.0

    @classmethod
    def from_settings(cls, settings: Settings) -> ScoringParameters:
        return cls(
            k1=settings.bm25_k1,
            b=settings.bm25_b,
            title_boost=settings.title_boost,
            exact_match_boost=settings.exact_match_boost,
            phrase_boost=settings.phrase_boost,
        )


class BM25Scorer:
    """Computes per-term and per-phrase contributions for one corpus snapshot.

    The corpus statistics are fixed at construction so every document in a
    query is scored against the same ``N`` and average length.
    """

    def __init__(self, stats: IndexStats, params: ScoringParameters | None = None) -> None:
        self.stats = stats
        self.params = params or ScoringParameters()

    def idf(self, doc_freq: int) -> float:
        return calculate_idf(doc_freq, self.stats.doc_count)

    def term_weight(self, tf: int, doc_length: int, doc_freq: int) -> float:
        """Plain BM25: ``idf * tf(k1+1) / (tf + k1(1 - b + b*dl/avgdl))``."""
        return self.idf(doc_freq) * bm25(
            tf,
            doc_length,
            self.stats.average_length,
            k1=self.params.k1,
            b=self.params.b,
        )

    def score_match(
        self,
        match: TermMatch,
        *,
        tf: int,
        doc_length: int,
        doc_freq: int,
        in_title: bool,
        query_boost: float = 1.0,
    ) -> float:
        """Contribution of one matched term to one document.

        Title boost applies when the matched term is a title marker. Exact
        matches get the exact-match boost; fuzzy matches are scaled by their
        similarity instead.
        """
        score = self.term_weight(tf, doc_length, doc_freq)
        if in_title:
            score *= self.params.title_boost
        if match.kind is MatchKind.EXACT:
            score *= self.params.exact_match_boost
        elif match.kind is MatchKind.FUZZY:
            score *= match.similarity
        return score * query_boost

    def score_phrase(self, term_scores: list[float], *, adjacent: bool) -> float:
        """Combined phrase contribution, boosted when the terms are adjacent."""
        combined = sum(term_scores)
        if adjacent:
            combined *= self.params.phrase_boost
        return combined
