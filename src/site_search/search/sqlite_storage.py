"""SQLite medium for the search index.

One database file holds every index handle. Layout follows the storage
contract in ``site_search.search.storage``:

- WAL journal so readers never block behind the single writer
- WITHOUT ROWID tables clustered on their lookup keys
- Term positions packed as ``array("I")`` blobs
- Thread-local reader connections in ``query_only`` mode
"""

from __future__ import annotations

from array import array
from collections import defaultdict
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
import logging
from pathlib import Path
import sqlite3
import threading
from typing import TypeVar

from site_search.search.errors import StorageFailure
from site_search.search.sqlite_pragmas import apply_connection_pragmas
from site_search.search.storage import (
    INDEX_SITE_ID,
    META_CREATED_AT,
    META_DOC_COUNT,
    META_SCHEMA_VERSION,
    META_TOTAL_LENGTH,
    SCHEMA_VERSION,
    DocumentChange,
    DocumentWrite,
    ElementSummary,
    IndexStats,
    IndexStore,
    MetadataDelta,
    NgramOverlap,
    Posting,
    clamp_metadata,
    compute_metadata_delta,
    rank_title_matches,
    utc_timestamp,
)


logger = logging.getLogger(__name__)

_T = TypeVar("_T")

# Keeps IN (...) lists under SQLite's host parameter limit
_MAX_IN_PARAMS = 500

# Sorts after any UTF-8 continuation of a prefix
_PREFIX_UPPER_BOUND = "\U0010ffff"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS search_documents (
    index_handle TEXT NOT NULL,
    site_id INTEGER NOT NULL,
    element_id INTEGER NOT NULL,
    term TEXT NOT NULL,
    frequency INTEGER NOT NULL,
    language TEXT NOT NULL,
    positions BLOB,
    PRIMARY KEY (index_handle, site_id, element_id, term)
) WITHOUT ROWID;

CREATE TABLE IF NOT EXISTS search_terms (
    index_handle TEXT NOT NULL,
    term TEXT NOT NULL,
    site_id INTEGER NOT NULL,
    element_id INTEGER NOT NULL,
    frequency INTEGER NOT NULL,
    language TEXT NOT NULL,
    positions BLOB,
    PRIMARY KEY (index_handle, site_id, term, element_id)
) WITHOUT ROWID;

CREATE INDEX IF NOT EXISTS idx_search_terms_element ON search_terms (index_handle, site_id, element_id);

CREATE TABLE IF NOT EXISTS search_titles (
    index_handle TEXT NOT NULL,
    site_id INTEGER NOT NULL,
    element_id INTEGER NOT NULL,
    term TEXT NOT NULL,
    PRIMARY KEY (index_handle, site_id, element_id, term)
) WITHOUT ROWID;

CREATE INDEX IF NOT EXISTS idx_search_titles_term ON search_titles (index_handle, site_id, term);

CREATE TABLE IF NOT EXISTS search_ngrams (
    index_handle TEXT NOT NULL,
    ngram TEXT NOT NULL,
    term TEXT NOT NULL,
    site_id INTEGER NOT NULL,
    PRIMARY KEY (index_handle, site_id, ngram, term)
) WITHOUT ROWID;

CREATE INDEX IF NOT EXISTS idx_search_ngrams_term ON search_ngrams (index_handle, site_id, term);

CREATE TABLE IF NOT EXISTS search_ngram_counts (
    index_handle TEXT NOT NULL,
    term TEXT NOT NULL,
    site_id INTEGER NOT NULL,
    ngram_count INTEGER NOT NULL,
    PRIMARY KEY (index_handle, site_id, term)
) WITHOUT ROWID;

CREATE TABLE IF NOT EXISTS search_metadata (
    index_handle TEXT NOT NULL,
    site_id INTEGER NOT NULL,
    meta_key TEXT NOT NULL,
    meta_value TEXT NOT NULL,
    PRIMARY KEY (index_handle, site_id, meta_key)
) WITHOUT ROWID;

CREATE TABLE IF NOT EXISTS search_elements (
    index_handle TEXT NOT NULL,
    site_id INTEGER NOT NULL,
    element_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    element_type TEXT NOT NULL,
    search_text TEXT NOT NULL,
    PRIMARY KEY (index_handle, site_id, element_id)
) WITHOUT ROWID;

CREATE INDEX IF NOT EXISTS idx_search_elements_text ON search_elements (index_handle, site_id, search_text);
"""

# Tables with one or more rows per (index_handle, site_id, element_id)
_ELEMENT_TABLES = ("search_documents", "search_terms", "search_titles", "search_elements")


def _chunked(items: Sequence[_T], size: int = _MAX_IN_PARAMS) -> Iterator[Sequence[_T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def _postings_query(term_count: int) -> str:
    """Term lookup served by the search_terms primary key."""
    return (
        "SELECT term, element_id, frequency, language, positions FROM search_terms "
        f"WHERE index_handle = ? AND site_id = ? AND term IN ({_placeholders(term_count)}) "
        "ORDER BY term, element_id"
    )


def _encode_positions(positions: Sequence[int]) -> bytes:
    return array("I", positions).tobytes()


def _decode_positions(blob: bytes | None) -> tuple[int, ...]:
    positions = array("I")
    if blob:
        positions.frombytes(blob)
    return tuple(positions)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteConnectionPool:
    """Thread-local reader connections."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get this thread's reader connection, creating it on first use."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = self._create_connection()
        yield self._local.connection

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        apply_connection_pragmas(conn, read_only=True)
        with self._lock:
            self._connections.append(conn)
        return conn

    def close_all(self) -> None:
        """Close every reader connection handed out by this pool."""
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as exc:
                logger.warning("Failed to close SQLite reader for %s: %s", self.db_path, exc)
        self._local = threading.local()


class SqliteIndexStore(IndexStore):
    """Relational medium: all indices in one SQLite database.

    Writes go through one connection guarded by a lock; each document
    replacement or removal is a single ``BEGIN IMMEDIATE`` transaction.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()
        try:
            self._writer = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            apply_connection_pragmas(self._writer, read_only=False)
            self._writer.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StorageFailure(f"Failed to open SQLite index at {self.db_path}: {exc}", operation="open") from exc
        self._readers = SQLiteConnectionPool(self.db_path)

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._write_lock:
            conn = self._writer
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise StorageFailure(f"SQLite {operation} failed: {exc}", operation=operation) from exc
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    @contextmanager
    def _reader(self, operation: str) -> Iterator[sqlite3.Connection]:
        try:
            with self._readers.get_connection() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageFailure(f"SQLite {operation} failed: {exc}", operation=operation) from exc

    # Index lifecycle

    def create_index(self, index_handle: str) -> bool:
        with self._transaction("create_index") as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO search_metadata VALUES (?, ?, ?, ?)",
                (index_handle, INDEX_SITE_ID, META_SCHEMA_VERSION, SCHEMA_VERSION),
            )
            created = cursor.rowcount > 0
            if created:
                conn.execute(
                    "INSERT OR REPLACE INTO search_metadata VALUES (?, ?, ?, ?)",
                    (index_handle, INDEX_SITE_ID, META_CREATED_AT, utc_timestamp()),
                )
        return created

    def index_exists(self, index_handle: str) -> bool:
        with self._reader("index_exists") as conn:
            row = conn.execute(
                "SELECT 1 FROM search_metadata WHERE index_handle = ? AND site_id = ? AND meta_key = ?",
                (index_handle, INDEX_SITE_ID, META_SCHEMA_VERSION),
            ).fetchone()
        return row is not None

    def list_indices(self) -> list[str]:
        with self._reader("list_indices") as conn:
            rows = conn.execute(
                "SELECT index_handle FROM search_metadata WHERE site_id = ? AND meta_key = ? ORDER BY index_handle",
                (INDEX_SITE_ID, META_SCHEMA_VERSION),
            ).fetchall()
        return [row[0] for row in rows]

    # Writes

    def _remove_rows(
        self, conn: sqlite3.Connection, index_handle: str, site_id: int, element_id: int
    ) -> tuple[bool, int, set[str]]:
        key = (index_handle, site_id, element_id)
        existed = (
            conn.execute(
                "SELECT 1 FROM search_elements WHERE index_handle = ? AND site_id = ? AND element_id = ?", key
            ).fetchone()
            is not None
        )
        old_rows = conn.execute(
            "SELECT term, frequency FROM search_documents WHERE index_handle = ? AND site_id = ? AND element_id = ?",
            key,
        ).fetchall()
        for table in _ELEMENT_TABLES:
            conn.execute(f"DELETE FROM {table} WHERE index_handle = ? AND site_id = ? AND element_id = ?", key)
        previous_length = sum(int(frequency) for _term, frequency in old_rows)
        return existed, previous_length, {term for term, _frequency in old_rows}

    def _drop_orphaned_ngrams(
        self, conn: sqlite3.Connection, index_handle: str, site_id: int, terms: Iterable[str]
    ) -> None:
        for term in terms:
            still_used = conn.execute(
                "SELECT 1 FROM search_terms WHERE index_handle = ? AND site_id = ? AND term = ? LIMIT 1",
                (index_handle, site_id, term),
            ).fetchone()
            if still_used:
                continue
            conn.execute(
                "DELETE FROM search_ngrams WHERE index_handle = ? AND site_id = ? AND term = ?",
                (index_handle, site_id, term),
            )
            conn.execute(
                "DELETE FROM search_ngram_counts WHERE index_handle = ? AND site_id = ? AND term = ?",
                (index_handle, site_id, term),
            )

    def _read_site_stats(self, conn: sqlite3.Connection, index_handle: str, site_id: int) -> tuple[int, int]:
        rows = conn.execute(
            "SELECT meta_key, meta_value FROM search_metadata "
            "WHERE index_handle = ? AND site_id = ? AND meta_key IN (?, ?)",
            (index_handle, site_id, META_DOC_COUNT, META_TOTAL_LENGTH),
        ).fetchall()
        values = {key: int(value) for key, value in rows}
        return values.get(META_DOC_COUNT, 0), values.get(META_TOTAL_LENGTH, 0)

    def _write_site_stats(
        self, conn: sqlite3.Connection, index_handle: str, site_id: int, doc_count: int, total_length: int
    ) -> None:
        conn.executemany(
            "INSERT OR REPLACE INTO search_metadata VALUES (?, ?, ?, ?)",
            [
                (index_handle, site_id, META_DOC_COUNT, str(doc_count)),
                (index_handle, site_id, META_TOTAL_LENGTH, str(total_length)),
            ],
        )

    def _apply_delta(self, conn: sqlite3.Connection, index_handle: str, site_id: int, delta: MetadataDelta) -> None:
        doc_count, total_length = self._read_site_stats(conn, index_handle, site_id)
        self._write_site_stats(
            conn,
            index_handle,
            site_id,
            clamp_metadata(index_handle, site_id, META_DOC_COUNT, doc_count + delta.doc_count),
            clamp_metadata(index_handle, site_id, META_TOTAL_LENGTH, total_length + delta.total_length),
        )

    def replace_document(self, document: DocumentWrite) -> DocumentChange:
        index_handle, site_id, element_id = document.index_handle, document.site_id, document.element_id
        postings = document.postings()
        with self._transaction("replace_document") as conn:
            existed, previous_length, old_terms = self._remove_rows(conn, index_handle, site_id, element_id)

            conn.executemany(
                "INSERT INTO search_documents VALUES (?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        index_handle,
                        site_id,
                        element_id,
                        term,
                        posting.frequency,
                        posting.language,
                        _encode_positions(posting.positions),
                    )
                    for term, posting in postings.items()
                ],
            )
            conn.executemany(
                "INSERT INTO search_terms VALUES (?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        index_handle,
                        term,
                        site_id,
                        element_id,
                        posting.frequency,
                        posting.language,
                        _encode_positions(posting.positions),
                    )
                    for term, posting in postings.items()
                ],
            )
            conn.executemany(
                "INSERT INTO search_titles VALUES (?, ?, ?, ?)",
                [(index_handle, site_id, element_id, term) for term in sorted(document.title_terms)],
            )
            ngram_rows = []
            count_rows = []
            for term, grams in document.term_ngrams.items():
                if term not in postings:
                    continue
                count_rows.append((index_handle, term, site_id, len(grams)))
                ngram_rows.extend((index_handle, gram, term, site_id) for gram in grams)
            conn.executemany("INSERT OR IGNORE INTO search_ngrams VALUES (?, ?, ?, ?)", ngram_rows)
            conn.executemany("INSERT OR REPLACE INTO search_ngram_counts VALUES (?, ?, ?, ?)", count_rows)
            conn.execute(
                "INSERT INTO search_elements VALUES (?, ?, ?, ?, ?, ?)",
                (index_handle, site_id, element_id, document.title, document.element_type, document.search_text),
            )

            self._drop_orphaned_ngrams(conn, index_handle, site_id, old_terms - set(postings))
            delta = compute_metadata_delta(previous_length, document.doc_length)
            self._apply_delta(conn, index_handle, site_id, delta)
        return DocumentChange(existed, previous_length, document.doc_length, delta)

    def delete_document(self, index_handle: str, site_id: int, element_id: int) -> DocumentChange | None:
        with self._transaction("delete_document") as conn:
            existed, previous_length, old_terms = self._remove_rows(conn, index_handle, site_id, element_id)
            if not existed and not old_terms:
                return None
            self._drop_orphaned_ngrams(conn, index_handle, site_id, old_terms)
            delta = compute_metadata_delta(previous_length, None)
            self._apply_delta(conn, index_handle, site_id, delta)
        return DocumentChange(existed, previous_length, 0, delta)

    def clear_index(self, index_handle: str) -> None:
        with self._transaction("clear_index") as conn:
            for table in (*_ELEMENT_TABLES, "search_ngrams", "search_ngram_counts"):
                conn.execute(f"DELETE FROM {table} WHERE index_handle = ?", (index_handle,))
            conn.execute(
                "DELETE FROM search_metadata WHERE index_handle = ? AND site_id != ?", (index_handle, INDEX_SITE_ID)
            )

    def rebuild_metadata(self, index_handle: str) -> dict[int, IndexStats]:
        with self._transaction("rebuild_metadata") as conn:
            sites = {
                row[0]
                for row in conn.execute(
                    "SELECT DISTINCT site_id FROM search_metadata WHERE index_handle = ? AND site_id != ?",
                    (index_handle, INDEX_SITE_ID),
                )
            }
            totals = {site_id: IndexStats() for site_id in sites}
            rows = conn.execute(
                "SELECT site_id, COUNT(*), SUM(doc_length) FROM ("
                "  SELECT site_id, element_id, SUM(frequency) AS doc_length FROM search_documents"
                "  WHERE index_handle = ? GROUP BY site_id, element_id"
                ") WHERE doc_length > 0 GROUP BY site_id",
                (index_handle,),
            ).fetchall()
            for site_id, doc_count, total_length in rows:
                totals[site_id] = IndexStats(int(doc_count), int(total_length or 0))
            for site_id, stats in totals.items():
                self._write_site_stats(conn, index_handle, site_id, stats.doc_count, stats.total_length)
        return totals

    # Reads

    def get_stats(self, index_handle: str, site_id: int) -> IndexStats:
        with self._reader("get_stats") as conn:
            doc_count, total_length = self._read_site_stats(conn, index_handle, site_id)
        return IndexStats(
            clamp_metadata(index_handle, site_id, META_DOC_COUNT, doc_count),
            clamp_metadata(index_handle, site_id, META_TOTAL_LENGTH, total_length),
        )

    def get_postings(self, index_handle: str, site_id: int, terms: Iterable[str]) -> dict[str, list[Posting]]:
        unique_terms = sorted(set(terms))
        result: dict[str, list[Posting]] = defaultdict(list)
        with self._reader("get_postings") as conn:
            for chunk in _chunked(unique_terms):
                cursor = conn.execute(_postings_query(len(chunk)), (index_handle, site_id, *chunk))
                for term, element_id, frequency, language, blob in cursor:
                    result[term].append(Posting(element_id, int(frequency), language, _decode_positions(blob)))
        return dict(result)

    def get_document_lengths(self, index_handle: str, site_id: int, element_ids: Iterable[int]) -> dict[int, int]:
        ids = sorted(set(element_ids))
        lengths: dict[int, int] = {}
        with self._reader("get_document_lengths") as conn:
            for chunk in _chunked(ids):
                cursor = conn.execute(
                    "SELECT element_id, SUM(frequency) FROM search_documents "
                    f"WHERE index_handle = ? AND site_id = ? AND element_id IN ({_placeholders(len(chunk))}) "
                    "GROUP BY element_id",
                    (index_handle, site_id, *chunk),
                )
                lengths.update((element_id, int(total)) for element_id, total in cursor)
        return lengths

    def get_title_matches(self, index_handle: str, site_id: int, terms: Iterable[str]) -> dict[str, set[int]]:
        wanted = sorted(set(terms))
        matches: dict[str, set[int]] = defaultdict(set)
        with self._reader("get_title_matches") as conn:
            for chunk in _chunked(wanted):
                cursor = conn.execute(
                    "SELECT term, element_id FROM search_titles "
                    f"WHERE index_handle = ? AND site_id = ? AND term IN ({_placeholders(len(chunk))})",
                    (index_handle, site_id, *chunk),
                )
                for term, element_id in cursor:
                    matches[term].add(element_id)
        return dict(matches)

    def get_ngram_overlaps(self, index_handle: str, site_id: int, ngrams: Iterable[str]) -> list[NgramOverlap]:
        grams = sorted(set(ngrams))
        if not grams:
            return []
        shared: dict[str, int] = defaultdict(int)
        counts: dict[str, int] = {}
        with self._reader("get_ngram_overlaps") as conn:
            for chunk in _chunked(grams):
                cursor = conn.execute(
                    "SELECT n.term, COUNT(*), c.ngram_count FROM search_ngrams n "
                    "JOIN search_ngram_counts c "
                    "  ON c.index_handle = n.index_handle AND c.site_id = n.site_id AND c.term = n.term "
                    f"WHERE n.index_handle = ? AND n.site_id = ? AND n.ngram IN ({_placeholders(len(chunk))}) "
                    "GROUP BY n.term, c.ngram_count",
                    (index_handle, site_id, *chunk),
                )
                for term, count, ngram_count in cursor:
                    shared[term] += int(count)
                    counts[term] = int(ngram_count)
        return [NgramOverlap(term, shared[term], counts[term]) for term in sorted(shared)]

    def terms_with_prefix(self, index_handle: str, site_id: int, prefix: str, limit: int) -> list[tuple[str, int]]:
        with self._reader("terms_with_prefix") as conn:
            rows = conn.execute(
                "SELECT term, COUNT(*) AS df FROM search_terms "
                "WHERE index_handle = ? AND site_id = ? AND term >= ? AND term < ? "
                "GROUP BY term ORDER BY df DESC, term LIMIT ?",
                (index_handle, site_id, prefix, prefix + _PREFIX_UPPER_BOUND, limit),
            ).fetchall()
        return [(term, int(df)) for term, df in rows]

    def get_summaries(
        self, index_handle: str, site_id: int, element_ids: Iterable[int]
    ) -> dict[int, ElementSummary]:
        ids = sorted(set(element_ids))
        summaries: dict[int, ElementSummary] = {}
        with self._reader("get_summaries") as conn:
            for chunk in _chunked(ids):
                cursor = conn.execute(
                    "SELECT element_id, title, element_type, search_text FROM search_elements "
                    f"WHERE index_handle = ? AND site_id = ? AND element_id IN ({_placeholders(len(chunk))})",
                    (index_handle, site_id, *chunk),
                )
                for element_id, title, element_type, search_text in cursor:
                    summaries[element_id] = ElementSummary(element_id, title, element_type, search_text)
        return summaries

    def titles_with_prefix(self, index_handle: str, site_id: int, prefix: str, limit: int) -> list[ElementSummary]:
        with self._reader("titles_with_prefix") as conn:
            rows = conn.execute(
                "SELECT element_id, title, element_type, search_text FROM search_elements "
                "WHERE index_handle = ? AND site_id = ? "
                "AND ((search_text >= ? AND search_text < ?) OR (' ' || search_text) LIKE ? ESCAPE '\\')",
                (index_handle, site_id, prefix, prefix + _PREFIX_UPPER_BOUND, f"% {_escape_like(prefix)}%"),
            ).fetchall()
        return rank_title_matches((ElementSummary(*row) for row in rows), prefix, limit)

    def element_footprint(self, index_handle: str, site_id: int, element_id: int) -> dict[str, int]:
        key = (index_handle, site_id, element_id)
        footprint = {}
        with self._reader("element_footprint") as conn:
            for name, table in (
                ("postings", "search_documents"),
                ("term_stats", "search_terms"),
                ("titles", "search_titles"),
                ("summaries", "search_elements"),
            ):
                row = conn.execute(
                    f"SELECT COUNT(*) FROM {table} WHERE index_handle = ? AND site_id = ? AND element_id = ?", key
                ).fetchone()
                footprint[name] = int(row[0])
        return footprint

    def close(self) -> None:
        self._readers.close_all()
        with self._write_lock:
            try:
                self._writer.close()
            except sqlite3.Error as exc:
                logger.warning("Failed to close SQLite writer for %s: %s", self.db_path, exc)
