"""Unit tests for BM25 statistics, the boosted scorer and phrase adjacency."""

from __future__ import annotations

import math

import pytest

from site_search.search.phrase import contains_phrase, phrase_start_positions
from site_search.search.scorer import BM25Scorer, MatchKind, ScoringParameters, TermMatch
from site_search.search.stats import bm25, calculate_idf
from site_search.search.storage import IndexStats


pytestmark = pytest.mark.unit


def test_idf_formula() -> None:
    assert calculate_idf(doc_freq=1, total_docs=10) == pytest.approx(math.log((10 - 1 + 0.5) / 1.5 + 1))


def test_idf_stays_positive_for_ubiquitous_terms() -> None:
    assert calculate_idf(doc_freq=10, total_docs=10) > 0
    assert calculate_idf(doc_freq=1, total_docs=10) > calculate_idf(doc_freq=5, total_docs=10)


def test_idf_of_empty_corpus_is_zero() -> None:
    assert calculate_idf(doc_freq=0, total_docs=0) == 0.0


def test_bm25_formula() -> None:
    expected = (2 * 2.5) / (2 + 1.5 * (1 - 0.75 + 0.75 * (30 / 20)))

    assert bm25(2, 30, 20.0) == pytest.approx(expected)


@pytest.mark.parametrize("doc_length", [1, 10, 100, 1000])
def test_bm25_is_monotonic_in_term_frequency(doc_length: int) -> None:
    weights = [bm25(tf, doc_length, 50.0) for tf in range(0, 40)]

    assert all(later >= earlier for earlier, later in zip(weights, weights[1:]))


def test_bm25_penalizes_longer_documents() -> None:
    assert bm25(2, 10, 50.0) > bm25(2, 200, 50.0)


def test_bm25_without_average_length_skips_normalization() -> None:
    assert bm25(1, 500, 0.0) == pytest.approx(1.0)


class TestBM25Scorer:
    @pytest.fixture
    def scorer(self) -> BM25Scorer:
        return BM25Scorer(IndexStats(doc_count=10, total_length=100))

    def test_title_and_exact_boosts_multiply(self, scorer):
        match = TermMatch("shoes", "shoes")
        base = scorer.term_weight(1, 10, 2)

        assert scorer.score_match(match, tf=1, doc_length=10, doc_freq=2, in_title=False) == pytest.approx(base * 3)
        assert scorer.score_match(match, tf=1, doc_length=10, doc_freq=2, in_title=True) == pytest.approx(
            base * 3 * 5
        )

    def test_fuzzy_scaled_by_similarity(self, scorer):
        match = TermMatch("shoe", "shoes", MatchKind.FUZZY, similarity=0.5)
        base = scorer.term_weight(1, 10, 2)

        assert scorer.score_match(match, tf=1, doc_length=10, doc_freq=2, in_title=False) == pytest.approx(base * 0.5)

    def test_prefix_match_has_no_exact_boost(self, scorer):
        match = TermMatch("sho", "shoes", MatchKind.PREFIX)

        assert scorer.score_match(match, tf=1, doc_length=10, doc_freq=2, in_title=False) == pytest.approx(
            scorer.term_weight(1, 10, 2)
        )

    def test_query_boost(self, scorer):
        match = TermMatch("shoes", "shoes")
        plain = scorer.score_match(match, tf=1, doc_length=10, doc_freq=2, in_title=False)

        assert scorer.score_match(
            match, tf=1, doc_length=10, doc_freq=2, in_title=False, query_boost=2.0
        ) == pytest.approx(plain * 2)

    def test_phrase_boost_only_when_adjacent(self):
        scorer = BM25Scorer(IndexStats(1, 5), ScoringParameters(phrase_boost=4.0))

        assert scorer.score_phrase([1.0, 2.0], adjacent=True) == pytest.approx(12.0)
        assert scorer.score_phrase([1.0, 2.0], adjacent=False) == pytest.approx(3.0)


class TestPhrase:
    def test_adjacent_in_order(self):
        assert phrase_start_positions([[0, 4], [1, 7]]) == [0]
        assert contains_phrase([[3], [4], [5]])

    def test_out_of_order_or_gapped(self):
        assert not contains_phrase([[1], [0]])
        assert not contains_phrase([[0], [2]])

    def test_missing_term(self):
        assert phrase_start_positions([[0], []]) == []
        assert phrase_start_positions([]) == []

    def test_repeated_term(self):
        assert phrase_start_positions([[2, 3], [2, 3]]) == [2]
