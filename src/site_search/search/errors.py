"""Error taxonomy for indexing and query failures."""

from __future__ import annotations


class SearchEngineError(Exception):
    """Base class for every error raised by the search engine."""


class IndexingError(SearchEngineError):
    """Raised when a document cannot be written to or removed from an index."""


class QueryError(SearchEngineError):
    """Raised when a query cannot be answered."""


class IndexNotFoundError(IndexingError, QueryError):
    """Raised when an index handle has never been registered."""

    def __init__(self, index_handle: str) -> None:
        super().__init__(f"Index not found: {index_handle!r}")
        self.index_handle = index_handle


class StorageFailure(IndexingError, QueryError):
    """Raised when the storage medium rejects an operation.

    The engine never retries; callers decide whether to retry.
    """

    retryable = True

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class InvalidQuery(QueryError):
    """Raised by the query parser for malformed syntax it recovers from locally."""


class FuzzyTimeout(QueryError):
    """Raised when fuzzy expansion exceeds its time budget."""

    def __init__(self, term: str, budget_ms: float) -> None:
        super().__init__(f"Fuzzy expansion for {term!r} exceeded {budget_ms:.0f}ms")
        self.term = term
        self.budget_ms = budget_ms
