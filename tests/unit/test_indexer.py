"""Tests for the indexing pipeline."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from site_search.config import Settings
from site_search.search.errors import IndexNotFoundError, StorageFailure
from site_search.search.extraction import FieldKind, FieldValue, RelatedItem
from site_search.search.indexer import LOCK_STRIPES, Indexer
from site_search.search.phrase import contains_phrase
from site_search.search.query_cache import CacheKey
from site_search.search.storage import IndexStats


pytestmark = pytest.mark.unit


def test_index_document_reports_stats(indexer) -> None:
    stats = indexer.index_document("products", 1, 1, "Red Shoes", "Comfortable red running shoes", "en")

    assert stats.element_id == 1
    assert stats.site_id == 1
    assert stats.language == "en"
    assert stats.doc_length == 6
    assert stats.unique_terms == 4
    assert stats.title_terms == 2
    assert stats.is_new is True
    assert stats.took_ms >= 0


def test_index_document_auto_creates_index(indexer) -> None:
    assert not indexer.store.index_exists("fresh")

    indexer.index_document("fresh", 1, 1, "Hello", "world")

    assert indexer.store.index_exists("fresh")


def test_unknown_index_without_auto_create_raises(store, analyzer, tmp_path) -> None:
    settings = Settings(storage_backend="memory", storage_path=tmp_path, auto_create_indices=False)
    strict = Indexer(store, analyzer, settings)

    with pytest.raises(IndexNotFoundError) as exc_info:
        strict.index_document("missing", 1, 1, "Title", "Body")

    assert exc_info.value.index_handle == "missing"
    assert not store.index_exists("missing")


def test_reindexing_identical_content_changes_nothing(products) -> None:
    store = products.store
    before = (store.get_stats("products", 1), store.get_postings("products", 1, ["red", "shoes", "running"]))

    stats = products.index_document("products", 1, 1, "Red Shoes", "Comfortable red running shoes", "en")

    assert stats.is_new is False
    assert (store.get_stats("products", 1), store.get_postings("products", 1, ["red", "shoes", "running"])) == before


def test_reindexing_replaces_previous_terms(products) -> None:
    products.index_document("products", 1, 1, "Green Boots", "Sturdy hiking boots", "en")

    store = products.store
    assert "comfortable" not in store.get_postings("products", 1, ["comfortable"])
    assert store.get_title_matches("products", 1, ["red", "green"]) == {"green": {1}}
    assert store.get_summaries("products", 1, [1])[1].title == "Green Boots"
    assert store.get_stats("products", 1) == IndexStats(3, 5 + 6 + 6)


def test_positions_skip_stop_words(indexer) -> None:
    indexer.index_document("products", 1, 7, "Guide", "The art of war", "en")

    postings = indexer.store.get_postings("products", 1, ["art", "war"])

    assert postings["art"][0].positions == (2,)
    assert postings["war"][0].positions == (3,)


def test_title_and_body_positions_are_not_adjacent(products) -> None:
    postings = products.store.get_postings("products", 1, ["red", "shoes", "comfortable"])
    by_term = {term: next(p for p in found if p.element_id == 1) for term, found in postings.items()}

    assert by_term["red"].positions == (0, 4)
    assert by_term["shoes"].positions == (1, 6)
    assert by_term["comfortable"].positions == (3,)
    assert not contains_phrase([by_term["shoes"].positions, by_term["comfortable"].positions])
    assert contains_phrase([by_term["red"].positions, by_term["shoes"].positions])


def test_stop_word_only_document_keeps_summary(indexer) -> None:
    stats = indexer.index_document("products", 1, 9, "The", "and of the", "en")

    assert stats.doc_length == 0
    assert indexer.store.get_stats("products", 1) == IndexStats(0, 0)
    assert indexer.store.element_footprint("products", 1, 9)["summaries"] == 1


def test_language_defaults_and_normalizes(indexer) -> None:
    assert indexer.index_document("products", 1, 1, "Rote Schuhe", "Bequem", None).language == "en"
    assert indexer.index_document("products", 1, 2, "Rote Schuhe", "Bequem", "DE_at").language == "de-at"


def test_search_text_is_normalized_title(indexer) -> None:
    indexer.index_document("products", 1, 1, "The Red-Shoes!", "", "en")

    summary = indexer.store.get_summaries("products", 1, [1])[1]

    assert summary.title == "The Red-Shoes!"
    assert summary.search_text == "the red shoes"


def test_remove_document(products) -> None:
    products.remove_document("products", 1, 1)

    store = products.store
    assert store.element_footprint("products", 1, 1) == {"postings": 0, "term_stats": 0, "titles": 0, "summaries": 0}
    assert store.get_stats("products", 1).doc_count == 2


def test_remove_missing_document_is_noop(products) -> None:
    products.remove_document("products", 1, 404)

    assert products.store.get_stats("products", 1).doc_count == 3


def test_remove_from_unknown_index_raises(indexer) -> None:
    with pytest.raises(IndexNotFoundError):
        indexer.remove_document("missing", 1, 1)


def test_clear_index(products) -> None:
    products.clear_index("products")

    assert products.store.index_exists("products")
    assert products.store.get_stats("products", 1) == IndexStats()
    with pytest.raises(IndexNotFoundError):
        products.clear_index("missing")


def test_rebuild_metadata(products) -> None:
    assert products.rebuild_metadata("products") == {1: IndexStats(3, 18)}
    with pytest.raises(IndexNotFoundError):
        products.rebuild_metadata("missing")


def test_index_fields_builds_body_from_typed_fields(indexer) -> None:
    fields = [
        FieldValue("summary", FieldKind.PLAIN_TEXT, "Trail runner"),
        FieldValue("description", FieldKind.RICH_TEXT, "<p>Grippy <b>outsole</b></p>"),
        FieldValue("tags", FieldKind.KEYWORDS, ["running", "outdoor"]),
        FieldValue("related", FieldKind.RELATIONS, [RelatedItem("Gaiters")]),
        FieldValue("image", FieldKind.PLAIN_TEXT, None),
    ]

    stats = indexer.index_fields("products", 1, 5, "Trail Shoe", fields, "en")

    postings = indexer.store.get_postings("products", 1, ["outsole", "outdoor", "gaiters", "p", "b"])
    assert set(postings) == {"outsole", "outdoor", "gaiters"}
    assert stats.doc_length == 9


def test_writes_invalidate_cached_results(products, cache) -> None:
    key = CacheKey("search", "products", 1, "shoes")
    cache.put(key, "cached")

    products.index_document("products", 1, 4, "Yellow Shoes", "", "en")

    assert cache.get(key) is None


def test_storage_failure_propagates(products, monkeypatch) -> None:
    def fail(document):
        raise StorageFailure("disk gone", operation="replace_document")

    monkeypatch.setattr(products.store, "replace_document", fail)

    with pytest.raises(StorageFailure):
        products.index_document("products", 1, 1, "Red Shoes", "", "en")


async def test_async_wrappers(products) -> None:
    stats = await products.aindex_document("products", 1, 8, "Wool Hat", "Warm winter hat", "en")
    assert stats.is_new

    await products.aremove_document("products", 1, 8)
    assert products.store.get_summaries("products", 1, [8]) == {}


class TestConcurrentWrites:
    INDEXED = {"postings": 4, "term_stats": 4, "titles": 2, "summaries": 1}
    REMOVED = {"postings": 0, "term_stats": 0, "titles": 0, "summaries": 0}

    def test_index_and_remove_of_one_document_serialize(self, indexer) -> None:
        indexer.create_index("products")

        def write(round_number: int) -> None:
            if round_number % 2:
                indexer.remove_document("products", 1, 1)
            else:
                indexer.index_document("products", 1, 1, "Red Shoes", "Comfortable red running shoes", "en")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(write, range(64)))

        outcome = (indexer.store.element_footprint("products", 1, 1), indexer.store.get_stats("products", 1))
        assert outcome in [(self.INDEXED, IndexStats(1, 6)), (self.REMOVED, IndexStats(0, 0))]

    def test_different_documents_index_in_parallel(self, indexer) -> None:
        indexer.create_index("products")

        def write(element_id: int) -> None:
            indexer.index_document("products", 1, element_id, "Red Shoes", "Comfortable red running shoes", "en")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(write, range(1, 33)))

        assert indexer.store.get_stats("products", 1) == IndexStats(32, 32 * 6)
        assert [p.element_id for p in indexer.store.get_postings("products", 1, ["shoes"])["shoes"]] == list(
            range(1, 33)
        )

    def test_lock_pool_does_not_grow_with_documents(self, indexer) -> None:
        for element_id in range(200):
            indexer.index_document("products", 1, element_id, "Wool Hat", "Warm winter hat", "en")
            indexer.remove_document("products", 1, element_id)

        assert len(indexer._locks) == LOCK_STRIPES
        assert indexer._lock_for(("products", 1, 7)) is indexer._lock_for(("products", 1, 7))
