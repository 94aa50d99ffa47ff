"""Query parsing: raw user input to a structured ``ParsedQuery``.

Supported syntax::

    red shoes              required terms (AND by default)
    red OR blue            any-term matching
    "red shoes"            phrase: adjacent terms, boosted
    -spam  NOT spam        excluded term (also -"exact phrase")
    title:shoes            field filter (title, language/lang)
    sho*                   prefix wildcard
    shoes^2                per-term boost

Boolean operators are recognized in English plus the query language
(``UND``/``ODER``/``NICHT``, ``ET``/``OU``/``SAUF``, ``Y``/``O``/``NO``,
Arabic ``و``/``أو``/``ليس``) and only when written in capitals, so ordinary
words such as "or" stay search terms. Parsing never fails: malformed pieces
degrade to plain text.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
import math
import re
from typing import TYPE_CHECKING

from site_search.search.errors import InvalidQuery
from site_search.search.stopwords import generic_language, normalize_language


if TYPE_CHECKING:
    from site_search.search.analyzers import TextAnalyzer


logger = logging.getLogger(__name__)

OPERATOR_AND = "AND"
OPERATOR_OR = "OR"

FIELD_TITLE = "title"
FIELD_LANGUAGE = "language"
_FIELD_ALIASES = {"title": FIELD_TITLE, "language": FIELD_LANGUAGE, "lang": FIELD_LANGUAGE}

LOCALIZED_OPERATORS: dict[str, dict[str, tuple[str, ...]]] = {
    "en": {"and": ("AND",), "or": ("OR",), "not": ("NOT",)},
    "de": {"and": ("UND",), "or": ("ODER",), "not": ("NICHT",)},
    "fr": {"and": ("ET",), "or": ("OU",), "not": ("SAUF",)},
    "es": {"and": ("Y",), "or": ("O",), "not": ("NO",)},
    # Spelling variants: hamza/no hamza for "or", formal/common for "not"
    "ar": {"and": ("و",), "or": ("أو", "او"), "not": ("ليس", "لا")},
}

_PHRASE_PATTERN = re.compile(r'(?:(?<=\s)|^)(-?)"([^"]*)"')
_FIELD_PATTERN = re.compile(r"^(\w+):(\S+)$")
_WILDCARD_PATTERN = re.compile(r"^(\w+)\*$")
_BOOST_PATTERN = re.compile(r"^(.+)\^([^\^]*)$")


@dataclass(frozen=True, slots=True)
class ParsedQuery:
    """Structured form of a user query, with every term already analyzed."""

    original: str = ""
    terms: tuple[str, ...] = ()
    excluded: tuple[str, ...] = ()
    phrases: tuple[tuple[str, ...], ...] = ()
    excluded_phrases: tuple[tuple[str, ...], ...] = ()
    field_filters: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    wildcards: tuple[str, ...] = ()
    boosts: Mapping[str, float] = field(default_factory=dict)
    operator: str = OPERATOR_AND

    @property
    def is_empty(self) -> bool:
        """True when nothing positive is left to match."""
        return not (self.terms or self.phrases or self.wildcards)

    def all_positive_terms(self) -> tuple[str, ...]:
        """Required terms followed by phrase terms, each once, in query order."""
        seen: dict[str, None] = dict.fromkeys(self.terms)
        for phrase in self.phrases:
            for term in phrase:
                seen.setdefault(term, None)
        return tuple(seen)


@dataclass
class _ParseState:
    terms: list[str] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)
    phrases: list[tuple[str, ...]] = field(default_factory=list)
    excluded_phrases: list[tuple[str, ...]] = field(default_factory=list)
    field_filters: dict[str, list[str]] = field(default_factory=dict)
    wildcards: list[str] = field(default_factory=list)
    boosts: dict[str, float] = field(default_factory=dict)
    operator: str = OPERATOR_AND


def _unique(items: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


class QueryParser:
    """Parses queries with the same analyzer used at index time."""

    def __init__(self, analyzer: TextAnalyzer, *, default_language: str = "en") -> None:
        self.analyzer = analyzer
        self.default_language = default_language

    def operators_for(self, language: str) -> dict[str, frozenset[str]]:
        """English operators plus the localized ones for ``language``."""
        merged = {kind: set(words) for kind, words in LOCALIZED_OPERATORS["en"].items()}
        for kind, words in LOCALIZED_OPERATORS.get(generic_language(language), {}).items():
            merged[kind].update(words)
        return {kind: frozenset(words) for kind, words in merged.items()}

    def parse(self, query: str, language: str | None = None) -> ParsedQuery:
        """Parse ``query``; never raises for malformed syntax."""
        language = normalize_language(language or self.default_language)
        text = (query or "").strip()
        if not text:
            return ParsedQuery(original=query or "")

        state = _ParseState()
        text = self._extract_phrases(text, language, state)
        self._parse_tokens(text.split(), language, state)

        parsed = ParsedQuery(
            original=query,
            terms=_unique(state.terms),
            excluded=_unique(state.excluded),
            phrases=tuple(dict.fromkeys(state.phrases)),
            excluded_phrases=tuple(dict.fromkeys(state.excluded_phrases)),
            field_filters={name: _unique(values) for name, values in state.field_filters.items() if values},
            wildcards=_unique(state.wildcards),
            boosts=dict(state.boosts),
            operator=state.operator,
        )
        logger.debug("Parsed query %r", query, extra={"parsed_terms": parsed.terms, "operator": parsed.operator})
        return parsed

    def _extract_phrases(self, text: str, language: str, state: _ParseState) -> str:
        def replace(match: re.Match[str]) -> str:
            negated, body = match.group(1), match.group(2)
            terms = tuple(self.analyzer.terms(body, language))
            if negated:
                if len(terms) > 1:
                    state.excluded_phrases.append(terms)
                else:
                    state.excluded.extend(terms)
            elif len(terms) > 1:
                state.phrases.append(terms)
            else:
                state.terms.extend(terms)
            return " "

        # Unmatched quotes survive as literal characters; the tokenizer drops them
        return _PHRASE_PATTERN.sub(replace, text)

    def _parse_tokens(self, tokens: list[str], language: str, state: _ParseState) -> None:
        operators = self.operators_for(language)
        index = 0
        while index < len(tokens):
            token = tokens[index]
            index += 1

            if token in operators["not"]:
                if index < len(tokens):
                    state.excluded.extend(self.analyzer.terms(tokens[index], language))
                    index += 1
                continue
            if token in operators["or"]:
                state.operator = OPERATOR_OR
                continue
            if token in operators["and"]:
                continue
            if token.startswith("-") and len(token) > 1:
                state.excluded.extend(self.analyzer.terms(token[1:], language))
                continue

            try:
                if self._parse_special(token, language, state):
                    continue
            except InvalidQuery as exc:
                logger.debug("Treating %r as plain text: %s", token, exc)

            state.terms.extend(self.analyzer.terms(token, language))

    def _parse_special(self, token: str, language: str, state: _ParseState) -> bool:
        """Handle field filters, wildcards and boosts; False for plain tokens."""
        if match := _FIELD_PATTERN.match(token):
            self._parse_field_filter(match.group(1), match.group(2), language, state)
            return True

        if match := _WILDCARD_PATTERN.match(token):
            prefix = "".join(self.analyzer.normalize(match.group(1)))
            if prefix:
                state.wildcards.append(prefix)
            return True

        if match := _BOOST_PATTERN.match(token):
            factor = self._parse_boost(match.group(2))
            terms = self.analyzer.terms(match.group(1), language)
            state.terms.extend(terms)
            for term in terms:
                state.boosts[term] = factor
            return True

        return False

    def _parse_field_filter(self, name: str, value: str, language: str, state: _ParseState) -> None:
        field_name = _FIELD_ALIASES.get(name.lower())
        if field_name is None:
            raise InvalidQuery(f"Unknown field filter {name!r}")

        values = [part for part in value.split(",") if part]
        if field_name == FIELD_LANGUAGE:
            codes = [normalize_language(part) for part in values]
            state.field_filters.setdefault(FIELD_LANGUAGE, []).extend(code for code in codes if code)
            return

        # Title filter terms are also scored as required terms
        bucket = state.field_filters.setdefault(FIELD_TITLE, [])
        for part in values:
            if boosted := _BOOST_PATTERN.match(part):
                part = boosted.group(1)
            terms = self.analyzer.terms(part, language)
            bucket.extend(terms)
            state.terms.extend(terms)

    @staticmethod
    def _parse_boost(raw: str) -> float:
        try:
            factor = float(raw)
        except ValueError as exc:
            raise InvalidQuery(f"Invalid boost factor {raw!r}") from exc
        if not math.isfinite(factor) or factor <= 0:
            raise InvalidQuery(f"Boost factor must be a positive number, got {raw!r}")
        return factor
