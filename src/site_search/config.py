"""Centralized configuration for site-search using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from site_search.observability.logging import resolve_level


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every component receives a ``Settings`` instance explicitly at
    construction time; nothing reads configuration from module globals.
    Variables use the ``SEARCH_ENGINE_`` prefix, e.g. ``SEARCH_ENGINE_BM25_K1``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage
    storage_backend: Literal["sqlite", "file", "memory"] = Field(
        default="sqlite", description="Index storage medium selected at construction time"
    )
    storage_path: Path = Field(
        default=Path("search-data"),
        description="Directory holding the SQLite database or the per-index JSON snapshots",
    )
    auto_create_indices: bool = Field(
        default=True, description="Register unknown index handles on first write instead of raising"
    )

    # Defaults for callers that do not pass scope explicitly
    default_site_id: int = Field(default=1, ge=0, description="Site used when a call does not name one")
    default_language: str = Field(default="en", description="Language used when a call does not name one")

    # Analyzer
    min_word_length: int = Field(default=1, ge=1, description="Terms shorter than this are dropped")
    enable_stop_words: bool = Field(default=True, description="Drop language stop words when analyzing")
    stopwords_dir: Path | None = Field(
        default=None,
        description="Directory with <lang>.txt stop-word overrides, searched before the bundled lists",
    )
    ngram_sizes: str = Field(default="2,3", description="Comma-separated n-gram sizes used for fuzzy lookup")

    # Fuzzy matching
    enable_fuzzy: bool = Field(default=True, description="Expand unmatched query terms through n-gram similarity")
    similarity_threshold: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Minimum Jaccard similarity accepted for a fuzzy candidate"
    )
    adaptive_fuzzy_threshold: bool = Field(
        default=True, description="Lower the similarity threshold for query terms of four characters or fewer"
    )
    max_fuzzy_candidates: int = Field(
        default=100, ge=10, le=1000, description="Upper bound on fuzzy expansions per query term"
    )
    fuzzy_timeout_ms: int = Field(
        default=250, ge=1, description="Budget for fuzzy expansion before falling back to exact matches"
    )

    # Scoring
    bm25_k1: float = Field(default=1.5, gt=0.0, description="BM25 term-frequency saturation")
    bm25_b: float = Field(default=0.75, ge=0.0, le=1.0, description="BM25 length normalization")
    title_boost: float = Field(default=5.0, ge=1.0, description="Multiplier when a matched term is in the title")
    exact_match_boost: float = Field(default=3.0, ge=1.0, description="Multiplier for exact (non-fuzzy) matches")
    phrase_boost: float = Field(default=4.0, ge=1.0, description="Multiplier for adjacent phrase matches")

    # Highlighting
    highlight_tag: str = Field(default="mark", pattern=r"^[a-z][a-z0-9]*$", description="Element wrapping matches")
    highlight_class: str = Field(default="search-highlight", description="CSS class on highlight elements")
    snippet_length: int = Field(default=200, ge=50, le=1000, description="Characters per snippet window")
    max_snippets: int = Field(default=3, ge=1, le=10, description="Maximum snippets returned per text")

    # Autocomplete
    autocomplete_min_length: int = Field(default=2, ge=1, description="Shortest prefix that yields suggestions")
    autocomplete_limit: int = Field(default=10, ge=1, le=100, description="Default number of suggestions")

    # Caching
    enable_cache: bool = Field(default=True, description="Cache search and suggest results")
    cache_ttl_seconds: int = Field(default=3600, ge=0, description="Seconds before a cached result expires")
    cache_max_entries: int = Field(default=1000, ge=1, description="Cached results kept before evicting oldest")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        resolve_level(value)
        return value.strip().lower()

    @model_validator(mode="after")
    def _check_ngram_sizes(self) -> Settings:
        sizes = self.get_ngram_sizes()
        if not sizes:
            raise ValueError("SEARCH_ENGINE_NGRAM_SIZES must name at least one n-gram size (e.g. '2,3')")
        if any(size < 1 for size in sizes):
            raise ValueError("SEARCH_ENGINE_NGRAM_SIZES entries must be positive integers")
        return self

    def get_ngram_sizes(self) -> tuple[int, ...]:
        """Get the configured n-gram sizes (comma-separated), sorted and unique.

        Returns:
            Tuple of n-gram sizes, e.g. ``(2, 3)``
        """
        sizes: set[int] = set()
        for part in self.ngram_sizes.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                sizes.add(int(part))
            except ValueError as exc:
                raise ValueError(f"Invalid n-gram size {part!r} in SEARCH_ENGINE_NGRAM_SIZES") from exc
        return tuple(sorted(sizes))

    def sqlite_path(self) -> Path:
        """Path of the SQLite database file for the sqlite backend."""
        return self.storage_path / "search.db"
