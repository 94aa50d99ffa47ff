"""Domain models for search requests and results.

Value objects are immutable (frozen=True) and carry no infrastructure
dependencies; the engine and CLI both speak in these types.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SearchOptions(BaseModel):
    """Per-call options for ``SearchEngine.search``.

    ``site_id`` and ``language`` fall back to the configured defaults.
    ``filters`` accepts ``language``, ``element_type`` and ``title``.
    """

    model_config = ConfigDict(frozen=True)

    site_id: int | None = Field(default=None, ge=0)
    limit: int = Field(default=20, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
    filters: dict[str, str] = Field(default_factory=dict)
    language: str | None = None
    timeout_ms: int | None = Field(default=None, ge=1, description="Fuzzy expansion budget for this call")
    sort: Literal["score", "date"] = "score"
    fuzzy: bool = True


class SearchHit(BaseModel):
    """One ranked document."""

    model_config = ConfigDict(frozen=True)

    element_id: int
    score: float
    language: str
    title: str | None = None
    element_type: str | None = None


class SearchResult(BaseModel):
    """A page of ranked hits plus the total number of matches."""

    model_config = ConfigDict(frozen=True)

    query: str
    hits: list[SearchHit] = Field(default_factory=list)
    total_count: int = 0
    terms: list[str] = Field(default_factory=list, description="Indexed terms that matched, for highlighting")
    took_ms: float = 0.0
    degraded: bool = Field(default=False, description="Fuzzy expansion was dropped after its time budget ran out")


class SuggestOptions(BaseModel):
    """Per-call options for ``SearchEngine.suggest``."""

    model_config = ConfigDict(frozen=True)

    site_id: int | None = Field(default=None, ge=0)
    limit: int | None = Field(default=None, ge=1, le=100)
    language: str | None = None
    fuzzy: bool = False


class HighlightOptions(BaseModel):
    """Markup and windowing for highlights and snippets."""

    model_config = ConfigDict(frozen=True)

    tag: str = Field(default="mark", pattern=r"^[a-z][a-z0-9]*$")
    css_class: str | None = "search-highlight"
    snippet_length: int = Field(default=200, ge=50, le=1000)
    max_snippets: int = Field(default=3, ge=1, le=10)
    strip_tags: bool = Field(default=False, description="Drop markup and collapse whitespace before highlighting")


class DocStats(BaseModel):
    """Outcome of indexing one document."""

    model_config = ConfigDict(frozen=True)

    element_id: int
    site_id: int
    language: str
    doc_length: int = Field(ge=0, description="Number of analyzed terms, duplicates included")
    unique_terms: int = Field(ge=0)
    title_terms: int = Field(ge=0)
    is_new: bool
    took_ms: float = 0.0
