"""Contract tests run against every storage medium."""

from __future__ import annotations

import logging
import sqlite3

import pytest

from site_search.config import Settings
from site_search.search.errors import StorageFailure
from site_search.search.file_storage import SNAPSHOT_SUFFIX, FileIndexStore
from site_search.search.ngrams import generate_ngrams
from site_search.search.sqlite_storage import SqliteIndexStore, _postings_query
from site_search.search.storage import DocumentWrite, IndexStats, MemoryIndexStore
from site_search.search.storage_factory import create_index_store


pytestmark = pytest.mark.unit


def _document(
    element_id: int, title: str, body_terms: list[str], *, site_id: int = 1, index_handle: str = "idx"
) -> DocumentWrite:
    terms = title.lower().split() + body_terms
    positions: dict[str, list[int]] = {}
    for position, term in enumerate(terms):
        positions.setdefault(term, []).append(position)
    return DocumentWrite(
        index_handle=index_handle,
        site_id=site_id,
        element_id=element_id,
        language="en",
        title=title,
        element_type="entry",
        search_text=title.lower(),
        term_positions={term: tuple(values) for term, values in positions.items()},
        title_terms=frozenset(title.lower().split()),
        term_ngrams={term: tuple(generate_ngrams(term)) for term in positions},
    )


def _has_ngram_rows(store, term: str, site_id: int = 1, index_handle: str = "idx") -> bool:
    overlaps = store.get_ngram_overlaps(index_handle, site_id, generate_ngrams(term))
    return any(overlap.term == term for overlap in overlaps)


@pytest.fixture
def populated(store):
    store.create_index("idx")
    store.replace_document(_document(1, "Red Shoes", ["comfortable", "red", "running", "shoes"]))
    store.replace_document(_document(2, "Running Socks", ["cotton", "socks", "shoes"]))
    return store


def test_create_index_is_idempotent(store) -> None:
    assert store.create_index("idx") is True
    assert store.create_index("idx") is False
    assert store.index_exists("idx")
    assert not store.index_exists("other")
    assert store.list_indices() == ["idx"]


def test_postings_and_term_statistics(populated) -> None:
    postings = populated.get_postings("idx", 1, ["shoes", "red", "missing"])

    assert set(postings) == {"shoes", "red"}
    assert [(posting.element_id, posting.frequency) for posting in postings["shoes"]] == [(1, 2), (2, 1)]
    assert postings["red"][0].positions == (0, 3)
    assert postings["red"][0].language == "en"


def test_metadata_tracks_documents(populated) -> None:
    stats = populated.get_stats("idx", 1)

    assert stats == IndexStats(doc_count=2, total_length=11)
    assert stats.average_length == pytest.approx(5.5)
    assert populated.get_document_lengths("idx", 1, [1, 2, 99]) == {1: 6, 2: 5}


def test_replace_is_idempotent(populated) -> None:
    before = populated.get_postings("idx", 1, ["red", "shoes", "comfortable"])

    change = populated.replace_document(_document(1, "Red Shoes", ["comfortable", "red", "running", "shoes"]))

    assert change.existed
    assert change.delta.doc_count == 0
    assert change.delta.total_length == 0
    assert populated.get_postings("idx", 1, ["red", "shoes", "comfortable"]) == before
    assert populated.get_stats("idx", 1) == IndexStats(2, 11)


def test_replace_swaps_terms_and_drops_orphaned_ngrams(populated) -> None:
    assert _has_ngram_rows(populated, "comfortable")

    populated.replace_document(_document(1, "Red Boots", ["leather"]))

    assert "comfortable" not in populated.get_postings("idx", 1, ["comfortable"])
    assert not _has_ngram_rows(populated, "comfortable")
    assert _has_ngram_rows(populated, "leather")
    # Still used by document 2
    assert _has_ngram_rows(populated, "shoes")
    assert populated.get_title_matches("idx", 1, ["shoes", "boots"]) == {"boots": {1}}
    assert populated.get_stats("idx", 1) == IndexStats(2, 8)


def test_delete_removes_every_row(populated) -> None:
    change = populated.delete_document("idx", 1, 1)

    assert change is not None
    assert change.delta.doc_count == -1
    assert populated.element_footprint("idx", 1, 1) == {"postings": 0, "term_stats": 0, "titles": 0, "summaries": 0}
    assert populated.get_summaries("idx", 1, [1]) == {}
    assert not _has_ngram_rows(populated, "comfortable")
    assert not _has_ngram_rows(populated, "red")
    assert populated.get_stats("idx", 1) == IndexStats(1, 5)


def test_delete_missing_document_is_noop(populated) -> None:
    assert populated.delete_document("idx", 1, 42) is None
    assert populated.delete_document("unknown", 1, 1) is None
    assert populated.get_stats("idx", 1) == IndexStats(2, 11)


def test_zero_term_document_keeps_summary_only(store) -> None:
    store.create_index("idx")
    empty = DocumentWrite(
        index_handle="idx",
        site_id=1,
        element_id=5,
        language="en",
        title="The",
        element_type="entry",
        search_text="the",
        term_positions={},
        title_terms=frozenset(),
        term_ngrams={},
    )

    store.replace_document(empty)

    assert store.element_footprint("idx", 1, 5) == {"postings": 0, "term_stats": 0, "titles": 0, "summaries": 1}
    assert store.get_stats("idx", 1) == IndexStats(0, 0)


def test_sites_are_isolated(populated) -> None:
    populated.replace_document(_document(1, "Rote Schuhe", ["schuhe"], site_id=2))

    assert populated.get_stats("idx", 2) == IndexStats(1, 3)
    assert populated.get_stats("idx", 1) == IndexStats(2, 11)
    assert "schuhe" not in populated.get_postings("idx", 1, ["schuhe"])
    assert populated.get_summaries("idx", 2, [1])[1].title == "Rote Schuhe"


def test_clear_index_keeps_registration(populated) -> None:
    populated.clear_index("idx")

    assert populated.index_exists("idx")
    assert populated.get_stats("idx", 1) == IndexStats()
    assert populated.get_postings("idx", 1, ["shoes"]) == {}
    assert not _has_ngram_rows(populated, "shoes")
    assert populated.titles_with_prefix("idx", 1, "red", 10) == []


def test_rebuild_metadata_recomputes_from_postings(populated) -> None:
    rebuilt = populated.rebuild_metadata("idx")

    assert rebuilt == {1: IndexStats(2, 11)}
    assert populated.get_stats("idx", 1) == IndexStats(2, 11)


def test_ngram_overlaps_report_shared_and_stored_counts(populated) -> None:
    query = generate_ngrams("shoe")
    overlaps = {overlap.term: overlap for overlap in populated.get_ngram_overlaps("idx", 1, query)}

    assert overlaps["shoes"].shared == 7
    assert overlaps["shoes"].ngram_count == 11


def test_terms_with_prefix_ordered_by_document_frequency(populated) -> None:
    assert populated.terms_with_prefix("idx", 1, "r", 10) == [("running", 2), ("red", 1)]
    assert populated.terms_with_prefix("idx", 1, "s", 1) == [("shoes", 2)]


def test_titles_with_prefix_ranks_whole_title_first(populated) -> None:
    populated.replace_document(_document(3, "Shoe Rack", ["rack"]))

    titles = [summary.title for summary in populated.titles_with_prefix("idx", 1, "sho", 10)]

    assert titles == ["Shoe Rack", "Red Shoes"]


def test_titles_with_prefix_treats_like_wildcards_literally(populated) -> None:
    assert populated.titles_with_prefix("idx", 1, "r%", 10) == []
    assert populated.titles_with_prefix("idx", 1, "r_d", 10) == []


class TestFileIndexStore:
    def test_snapshot_survives_reopen(self, tmp_path) -> None:
        store = FileIndexStore(tmp_path)
        store.create_index("shop/products")
        store.replace_document(_document(1, "Red Shoes", ["red"], index_handle="shop/products"))

        assert [path.name for path in tmp_path.glob(f"*{SNAPSHOT_SUFFIX}")] == [f"shop%2Fproducts{SNAPSHOT_SUFFIX}"]

        reopened = FileIndexStore(tmp_path)
        assert reopened.list_indices() == ["shop/products"]
        assert reopened.get_stats("shop/products", 1) == IndexStats(1, 3)
        assert reopened.get_postings("shop/products", 1, ["red"])["red"][0].positions == (0, 2)
        assert reopened.get_title_matches("shop/products", 1, ["shoes"]) == {"shoes": {1}}
        assert _has_ngram_rows(reopened, "shoes", index_handle="shop/products")

    def test_failed_snapshot_write_keeps_last_good_state(self, tmp_path, monkeypatch) -> None:
        store = FileIndexStore(tmp_path)
        store.create_index("idx")
        store.replace_document(_document(1, "Red Shoes", []))

        def fail_write(path, payload) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(store, "_atomic_write_json", fail_write)

        with pytest.raises(StorageFailure) as exc_info:
            store.replace_document(_document(2, "Blue Jacket", []))

        assert exc_info.value.operation == "write"
        assert store.get_summaries("idx", 1, [1, 2]).keys() == {1}
        assert store.get_stats("idx", 1) == IndexStats(1, 2)

    def test_corrupt_snapshot_fails_to_open(self, tmp_path) -> None:
        (tmp_path / f"idx{SNAPSHOT_SUFFIX}").write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageFailure, match="Failed to load index snapshots"):
            FileIndexStore(tmp_path)


class TestSqliteIndexStore:
    def test_data_survives_reopen(self, tmp_path) -> None:
        db_path = tmp_path / "nested" / "search.db"
        store = SqliteIndexStore(db_path)
        store.create_index("idx")
        store.replace_document(_document(1, "Red Shoes", ["red", "shoes"]))
        store.close()

        reopened = SqliteIndexStore(db_path)
        try:
            assert reopened.index_exists("idx")
            assert reopened.get_stats("idx", 1) == IndexStats(1, 4)
            assert reopened.get_postings("idx", 1, ["shoes"])["shoes"][0].positions == (1, 3)
        finally:
            reopened.close()

    def test_term_lookup_uses_inverted_primary_key(self, tmp_path) -> None:
        db_path = tmp_path / "search.db"
        store = SqliteIndexStore(db_path)
        store.create_index("idx")
        store.replace_document(_document(1, "Red Shoes", ["red", "shoes"]))
        store.close()

        with sqlite3.connect(db_path) as conn:
            plan = conn.execute(f"EXPLAIN QUERY PLAN {_postings_query(2)}", ("idx", 1, "red", "shoes")).fetchall()

        details = " ".join(row[-1] for row in plan)
        assert "search_terms USING PRIMARY KEY" in details
        assert "term=?" in details

    def test_drifted_metadata_is_clamped_then_rebuilt(self, tmp_path, caplog) -> None:
        db_path = tmp_path / "search.db"
        store = SqliteIndexStore(db_path)
        store.create_index("idx")
        store.replace_document(_document(1, "Red Shoes", []))

        with sqlite3.connect(db_path) as conn:
            conn.execute(
                "UPDATE search_metadata SET meta_value = '-4' WHERE index_handle = 'idx' AND meta_key = 'doc_count'"
            )

        try:
            with caplog.at_level(logging.WARNING, logger="site_search.search.storage"):
                assert store.get_stats("idx", 1).doc_count == 0
            assert "Metadata drift" in caplog.text

            assert store.rebuild_metadata("idx") == {1: IndexStats(1, 2)}
            assert store.get_stats("idx", 1) == IndexStats(1, 2)
        finally:
            store.close()


@pytest.mark.parametrize(
    ("backend", "expected_type"),
    [("memory", MemoryIndexStore), ("file", FileIndexStore), ("sqlite", SqliteIndexStore)],
)
def test_create_index_store_selects_backend(tmp_path, backend, expected_type) -> None:
    settings = Settings(storage_backend=backend, storage_path=tmp_path / "data")

    store = create_index_store(settings)
    try:
        assert type(store) is expected_type
    finally:
        store.close()


def test_sqlite_backend_uses_database_under_storage_path(tmp_path) -> None:
    settings = Settings(storage_backend="sqlite", storage_path=tmp_path / "data")

    store = create_index_store(settings)
    store.close()

    assert (tmp_path / "data" / "search.db").exists()
