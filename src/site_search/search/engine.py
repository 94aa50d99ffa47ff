"""Query pipeline: raw query to ranked, paginated hits.

A parsed query becomes a list of clauses: one per required term, wildcard
and phrase. Each clause resolves to indexed terms (exact postings first,
n-gram fuzzy expansion when a required term has none, prefix expansion for
wildcards) and to the set of documents holding them. Clauses combine with
AND (intersection) or OR (union); filters and exclusions prune the
candidates; BM25 with boosts orders what is left.

Smart Defaults:
- AND across clauses unless the query says ``OR``
- A clause scores with its best-matching expansion
- Fuzzy expansion stops after 250ms and the query answers exact-only
- Ties keep discovery order; ``sort="date"`` breaks them newest first
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
import logging
import time
from typing import TYPE_CHECKING

import orjson

from site_search.config import Settings
from site_search.domain.search import HighlightOptions, SearchHit, SearchOptions, SearchResult, SuggestOptions
from site_search.observability.metrics import FUZZY_TIMEOUTS, SEARCH_LATENCY, track_latency
from site_search.observability.tracing import create_span, set_span_attributes
from site_search.search.errors import FuzzyTimeout, IndexNotFoundError
from site_search.search.fuzzy import Deadline, FuzzyMatcher
from site_search.search.highlighter import Highlighter
from site_search.search.phrase import contains_phrase
from site_search.search.query_cache import CacheKey
from site_search.search.query_parser import FIELD_LANGUAGE, FIELD_TITLE, OPERATOR_OR, ParsedQuery, QueryParser
from site_search.search.scorer import BM25Scorer, MatchKind, ScoringParameters, TermMatch
from site_search.search.stopwords import generic_language, normalize_language


if TYPE_CHECKING:
    from site_search.search.analyzers import TextAnalyzer
    from site_search.search.query_cache import QueryCache
    from site_search.search.storage import IndexStore, Posting


logger = logging.getLogger(__name__)

# (site_id, element_id) -> POSIX timestamp, None when unknown
DateResolver = Callable[[int, int], float | None]

SUPPORTED_FILTERS = frozenset({"language", "element_type", "title"})

_PostingMap = dict[str, dict[int, "Posting"]]


@dataclass
class _Clause:
    """One unit of the boolean match: a required term, a wildcard or a phrase."""

    label: str
    matches: list[TermMatch] = field(default_factory=list)
    phrase: tuple[str, ...] = ()
    query_boost: float = 1.0


@dataclass
class _Resolution:
    clauses: list[_Clause]
    postings: _PostingMap
    degraded: bool = False


def _ordered_union(groups: Iterable[Iterable[int]]) -> dict[int, None]:
    merged: dict[int, None] = {}
    for group in groups:
        for element_id in group:
            merged.setdefault(element_id, None)
    return merged


def _language_matches(document_language: str, wanted: set[str]) -> bool:
    language = normalize_language(document_language)
    return language in wanted or generic_language(language) in wanted


class SearchEngine:
    """Answers searches, suggestions and highlight requests for every index in a store."""

    def __init__(
        self,
        store: IndexStore,
        analyzer: TextAnalyzer,
        settings: Settings | None = None,
        cache: QueryCache | None = None,
        date_resolver: DateResolver | None = None,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.settings = settings or Settings()
        self.cache = cache
        self.date_resolver = date_resolver
        self.parser = QueryParser(analyzer, default_language=self.settings.default_language)
        self.fuzzy = FuzzyMatcher.from_settings(store, self.settings)
        self.scoring = ScoringParameters.from_settings(self.settings)
        self.highlight_options = HighlightOptions(
            tag=self.settings.highlight_tag,
            css_class=self.settings.highlight_class or None,
            snippet_length=self.settings.snippet_length,
            max_snippets=self.settings.max_snippets,
        )

    def _require_index(self, index_handle: str) -> None:
        if not self.store.index_exists(index_handle):
            raise IndexNotFoundError(index_handle)

    def _cache_key(self, kind: str, index_handle: str, site_id: int, query: str, payload: dict) -> CacheKey:
        fingerprint = orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)
        return CacheKey(kind, index_handle, site_id, " ".join(query.split()), fingerprint)

    # Search

    def search(self, index_handle: str, query: str, options: SearchOptions | None = None) -> SearchResult:
        """Rank the documents of one site against ``query``.

        Malformed syntax never fails; an empty or stop-word-only query gives
        an empty result. A fuzzy timeout gives exact-only results with
        ``degraded`` set.

        Raises:
            IndexNotFoundError: The index was never registered
            StorageFailure: The medium failed while reading
        """
        options = options or SearchOptions()
        site_id = self.settings.default_site_id if options.site_id is None else options.site_id
        language = normalize_language(options.language or self.settings.default_language)
        started = time.perf_counter()

        with create_span("query", index_handle, site_id=site_id, query=query) as span, track_latency(
            SEARCH_LATENCY, index=index_handle, operation="search"
        ):
            self._require_index(index_handle)

            cache_key = None
            if self.cache is not None:
                payload = options.model_dump(exclude={"site_id", "language"})
                payload["language"] = language
                cache_key = self._cache_key("search", index_handle, site_id, query, payload)
                cached = self.cache.get(cache_key)
                if cached is not None:
                    set_span_attributes(span, cached=True, hits=cached.total_count)
                    return cached.model_copy(update={"took_ms": self._elapsed_ms(started)})

            parsed = self.parser.parse(query, language)
            if parsed.is_empty:
                logger.debug("Query %r has no searchable terms", query)
                return SearchResult(query=query, took_ms=self._elapsed_ms(started))

            result = self._execute(index_handle, site_id, parsed, options, language, started)
            set_span_attributes(span, hits=result.total_count, degraded=result.degraded)

        if cache_key is not None and not result.degraded:
            self.cache.put(cache_key, result)
        logger.debug(
            "Search %r on %s/%s: %d hits in %.1fms",
            query,
            index_handle,
            site_id,
            result.total_count,
            result.took_ms,
        )
        return result

    async def asearch(self, index_handle: str, query: str, options: SearchOptions | None = None) -> SearchResult:
        return await asyncio.to_thread(self.search, index_handle, query, options)

    def _execute(
        self,
        index_handle: str,
        site_id: int,
        parsed: ParsedQuery,
        options: SearchOptions,
        language: str,
        started: float,
    ) -> SearchResult:
        resolution = self._resolve(index_handle, site_id, parsed, options)
        postings = resolution.postings

        candidates = self._combine(resolution.clauses, postings, parsed.operator)
        doc_languages = {
            element_id: posting.language
            for by_element in postings.values()
            for element_id, posting in by_element.items()
        }

        title_terms = set(parsed.field_filters.get(FIELD_TITLE, ()))
        if options.filters.get("title"):
            title_terms.update(self.analyzer.terms(options.filters["title"], language))
        matched_terms = list(dict.fromkeys(match.term for clause in resolution.clauses for match in clause.matches))
        title_matches = self.store.get_title_matches(index_handle, site_id, set(matched_terms) | title_terms)

        candidates = self._apply_filters(
            index_handle, site_id, candidates, parsed, options, doc_languages, title_terms, title_matches
        )
        candidates = self._apply_exclusions(candidates, parsed, postings)

        lengths = self.store.get_document_lengths(index_handle, site_id, candidates)
        scorer = BM25Scorer(self.store.get_stats(index_handle, site_id), self.scoring)
        scores = {
            element_id: sum(
                self._score_clause(scorer, clause, element_id, postings, lengths, title_matches)
                for clause in resolution.clauses
            )
            for element_id in candidates
        }
        ranked = self._rank(site_id, scores, options)

        page = ranked[options.offset : options.offset + options.limit]
        summaries = self.store.get_summaries(index_handle, site_id, [element_id for element_id, _ in page])
        hits = []
        for element_id, score in page:
            summary = summaries.get(element_id)
            hits.append(
                SearchHit(
                    element_id=element_id,
                    score=score,
                    language=doc_languages.get(element_id, language),
                    title=summary.title if summary is not None else None,
                    element_type=summary.element_type if summary is not None else None,
                )
            )
        return SearchResult(
            query=parsed.original,
            hits=hits,
            total_count=len(ranked),
            terms=[term for term in matched_terms if term in postings],
            took_ms=self._elapsed_ms(started),
            degraded=resolution.degraded,
        )

    def _fetch(self, index_handle: str, site_id: int, terms: Iterable[str]) -> _PostingMap:
        wanted = set(terms)
        if not wanted:
            return {}
        raw = self.store.get_postings(index_handle, site_id, wanted)
        return {term: {posting.element_id: posting for posting in postings} for term, postings in raw.items()}

    def _resolve(
        self,
        index_handle: str,
        site_id: int,
        parsed: ParsedQuery,
        options: SearchOptions,
    ) -> _Resolution:
        """Map every clause to indexed terms and load their postings."""
        lookup = set(parsed.all_positive_terms()) | set(parsed.excluded)
        for phrase in parsed.excluded_phrases:
            lookup.update(phrase)
        postings = self._fetch(index_handle, site_id, lookup)

        missing = [term for term in parsed.terms if term not in postings]
        fuzzy_matches: dict[str, list[TermMatch]] = {}
        degraded = False
        if missing and self.settings.enable_fuzzy and options.fuzzy:
            budget_ms = options.timeout_ms or self.settings.fuzzy_timeout_ms
            deadline = Deadline.after_ms(budget_ms)
            try:
                for term in missing:
                    fuzzy_matches[term] = [
                        TermMatch(term, candidate.term, MatchKind.FUZZY, candidate.similarity)
                        for candidate in self.fuzzy.find_candidates(index_handle, site_id, term, deadline=deadline)
                    ]
            except FuzzyTimeout as exc:
                logger.warning(
                    "%s; answering %s with exact matches only",
                    exc,
                    index_handle,
                    extra={"index_handle": index_handle, "fuzzy_budget_ms": budget_ms},
                )
                FUZZY_TIMEOUTS.labels(index=index_handle).inc()
                fuzzy_matches = {}
                degraded = True

        wildcard_matches = {
            prefix: [
                TermMatch(prefix, term, MatchKind.PREFIX)
                for term, _doc_freq in self.store.terms_with_prefix(
                    index_handle, site_id, prefix, self.settings.max_fuzzy_candidates
                )
            ]
            for prefix in parsed.wildcards
        }

        expansions = {
            match.term for matches in (*fuzzy_matches.values(), *wildcard_matches.values()) for match in matches
        }
        postings.update(self._fetch(index_handle, site_id, expansions - postings.keys()))

        clauses = []
        for term in parsed.terms:
            matches = [TermMatch(term, term)] if term in postings else fuzzy_matches.get(term, [])
            clauses.append(_Clause(term, matches, query_boost=parsed.boosts.get(term, 1.0)))
        for prefix, matches in wildcard_matches.items():
            clauses.append(_Clause(f"{prefix}*", matches))
        for phrase in parsed.phrases:
            matches = [TermMatch(term, term) for term in dict.fromkeys(phrase)]
            clauses.append(_Clause(" ".join(phrase), matches, phrase=phrase))
        return _Resolution(clauses, postings, degraded)

    @staticmethod
    def _clause_documents(clause: _Clause, postings: _PostingMap) -> dict[int, None]:
        if clause.phrase:
            per_term = [postings.get(term, {}) for term in clause.phrase]
            if not all(per_term):
                return {}
            return {
                element_id: None
                for element_id in per_term[0]
                if all(element_id in by_element for by_element in per_term[1:])
            }
        return _ordered_union(postings.get(match.term, {}) for match in clause.matches)

    def _combine(self, clauses: list[_Clause], postings: _PostingMap, operator: str) -> dict[int, None]:
        clause_documents = [self._clause_documents(clause, postings) for clause in clauses]
        if not clause_documents:
            return {}
        if operator == OPERATOR_OR:
            return _ordered_union(clause_documents)
        first, rest = clause_documents[0], clause_documents[1:]
        return {element_id: None for element_id in first if all(element_id in docs for docs in rest)}

    def _apply_filters(
        self,
        index_handle: str,
        site_id: int,
        candidates: dict[int, None],
        parsed: ParsedQuery,
        options: SearchOptions,
        doc_languages: Mapping[int, str],
        title_terms: set[str],
        title_matches: Mapping[str, set[int]],
    ) -> dict[int, None]:
        unknown = set(options.filters) - SUPPORTED_FILTERS
        if unknown:
            logger.debug("Ignoring unsupported search filters: %s", ", ".join(sorted(unknown)))

        language_constraints = []
        if parsed.field_filters.get(FIELD_LANGUAGE):
            language_constraints.append(set(parsed.field_filters[FIELD_LANGUAGE]))
        if options.filters.get("language"):
            language_constraints.append({normalize_language(options.filters["language"])})
        if language_constraints:
            candidates = {
                element_id: None
                for element_id in candidates
                if all(_language_matches(doc_languages.get(element_id, ""), wanted) for wanted in language_constraints)
            }

        for term in title_terms:
            holders = title_matches.get(term, set())
            candidates = {element_id: None for element_id in candidates if element_id in holders}

        element_type = options.filters.get("element_type")
        if element_type and candidates:
            summaries = self.store.get_summaries(index_handle, site_id, candidates)
            candidates = {
                element_id: None
                for element_id in candidates
                if element_id in summaries and summaries[element_id].element_type == element_type
            }
        return candidates

    @staticmethod
    def _apply_exclusions(candidates: dict[int, None], parsed: ParsedQuery, postings: _PostingMap) -> dict[int, None]:
        excluded: set[int] = set()
        for term in parsed.excluded:
            excluded.update(postings.get(term, {}))
        for phrase in parsed.excluded_phrases:
            per_term = [postings.get(term, {}) for term in phrase]
            if not all(per_term):
                continue
            for element_id in per_term[0]:
                if all(element_id in by_element for by_element in per_term[1:]) and contains_phrase(
                    [by_element[element_id].positions for by_element in per_term]
                ):
                    excluded.add(element_id)
        if not excluded:
            return candidates
        return {element_id: None for element_id in candidates if element_id not in excluded}

    @staticmethod
    def _score_clause(
        scorer: BM25Scorer,
        clause: _Clause,
        element_id: int,
        postings: _PostingMap,
        lengths: Mapping[int, int],
        title_matches: Mapping[str, set[int]],
    ) -> float:
        contributions = []
        for match in clause.matches:
            by_element = postings.get(match.term, {})
            posting = by_element.get(element_id)
            if posting is None:
                continue
            contributions.append(
                scorer.score_match(
                    match,
                    tf=posting.frequency,
                    doc_length=lengths.get(element_id, posting.frequency),
                    doc_freq=len(by_element),
                    in_title=element_id in title_matches.get(match.term, ()),
                    query_boost=clause.query_boost,
                )
            )
        if not contributions:
            return 0.0
        if clause.phrase:
            per_term = [postings.get(term, {}).get(element_id) for term in clause.phrase]
            adjacent = all(per_term) and contains_phrase([posting.positions for posting in per_term if posting])
            return scorer.score_phrase(contributions, adjacent=adjacent)
        return max(contributions)

    def _rank(self, site_id: int, scores: Mapping[int, float], options: SearchOptions) -> list[tuple[int, float]]:
        ranked = sorted(scores.items(), key=lambda item: -item[1])
        if options.sort != "date":
            return ranked
        if self.date_resolver is None:
            logger.warning("Date sort requested but no date resolver is configured; ranking by score only")
            return ranked
        dates = {element_id: self.date_resolver(site_id, element_id) for element_id, _ in ranked}

        def newest_first(item: tuple[int, float]) -> tuple[float, float]:
            timestamp = dates.get(item[0])
            return (-item[1], -timestamp if timestamp is not None else float("inf"))

        return sorted(ranked, key=newest_first)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 3)

    # Autocomplete

    def suggest(self, prefix: str, index_handle: str, options: SuggestOptions | None = None) -> list[str]:
        """Complete ``prefix`` from document titles, then from indexed terms.

        Titles starting with the prefix come first, then titles with a word
        starting with it, then terms ordered by document frequency.
        """
        options = options or SuggestOptions()
        site_id = self.settings.default_site_id if options.site_id is None else options.site_id
        limit = options.limit or self.settings.autocomplete_limit
        words = self.analyzer.normalize(prefix)
        normalized = " ".join(words)
        if len(normalized) < self.settings.autocomplete_min_length:
            return []

        with create_span("suggest", index_handle, site_id=site_id, prefix=normalized) as span, track_latency(
            SEARCH_LATENCY, index=index_handle, operation="suggest"
        ):
            self._require_index(index_handle)

            cache_key = None
            if self.cache is not None:
                payload = {"limit": limit, "fuzzy": options.fuzzy, "language": options.language}
                cache_key = self._cache_key("suggest", index_handle, site_id, normalized, payload)
                cached = self.cache.get(cache_key)
                if cached is not None:
                    set_span_attributes(span, cached=True, suggestions=len(cached))
                    return list(cached)

            suggestions = self._collect_suggestions(index_handle, site_id, words, limit, options)
            set_span_attributes(span, suggestions=len(suggestions))

        if cache_key is not None:
            self.cache.put(cache_key, tuple(suggestions))
        return suggestions

    def _collect_suggestions(
        self,
        index_handle: str,
        site_id: int,
        words: list[str],
        limit: int,
        options: SuggestOptions,
    ) -> list[str]:
        normalized = " ".join(words)
        seen: dict[str, str] = {}

        def add(suggestion: str) -> None:
            key = suggestion.casefold()
            if key not in seen and len(seen) < limit:
                seen[key] = suggestion

        for summary in self.store.titles_with_prefix(index_handle, site_id, normalized, limit):
            add(summary.title)

        head, tail = words[:-1], words[-1]
        if len(seen) < limit:
            for term, _doc_freq in self.store.terms_with_prefix(index_handle, site_id, tail, limit):
                add(" ".join([*head, term]))

        if len(seen) < limit and options.fuzzy and self.settings.enable_fuzzy:
            language = normalize_language(options.language or self.settings.default_language)
            for term in self.analyzer.terms(tail, language)[:1]:
                deadline = Deadline.after_ms(self.settings.fuzzy_timeout_ms)
                try:
                    candidates = self.fuzzy.find_candidates(index_handle, site_id, term, deadline=deadline)
                except FuzzyTimeout as exc:
                    logger.warning("%s; returning suggestions without fuzzy completions", exc)
                    FUZZY_TIMEOUTS.labels(index=index_handle).inc()
                    break
                for candidate in candidates:
                    add(" ".join([*head, candidate.term]))
        return list(seen.values())

    # Highlighting

    def highlight(self, text: str, terms: Iterable[str], options: HighlightOptions | None = None) -> str:
        return Highlighter(options or self.highlight_options).highlight(text, list(terms))

    def snippets(self, text: str, terms: Iterable[str], options: HighlightOptions | None = None) -> list[str]:
        return Highlighter(options or self.highlight_options).snippets(text, list(terms))

    def query_terms(self, query: str, language: str | None = None) -> list[str]:
        """Analyzed positive terms of ``query``, for highlighting without a search."""
        return list(self.parser.parse(query, language).all_positive_terms())
