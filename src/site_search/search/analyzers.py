"""Analyzer utilities shared by indexing and querying.

Text flows through a composable tokenizer/filter pipeline: Unicode word
tokenization, lowercasing, a minimum-length filter and a per-language
stop-word filter. The same ``TextAnalyzer`` instance must be used on both the
index and query side so terms line up.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, MutableMapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
import re
import threading
from typing import TYPE_CHECKING, Any, Protocol

from site_search.search.stopwords import load_stopwords, normalize_language


if TYPE_CHECKING:
    from site_search.config import Settings


@dataclass
class Token:
    """Represents a token emitted by analyzers."""

    text: str
    position: int
    start_char: int
    end_char: int
    attributes: MutableMapping[str, Any] = field(default_factory=dict)

    def copy_with(self, **updates: Any) -> Token:
        data = {
            "text": self.text,
            "position": self.position,
            "start_char": self.start_char,
            "end_char": self.end_char,
            "attributes": dict(self.attributes),
        }
        data.update(updates)
        return Token(**data)


class Tokenizer(Protocol):
    """Protocol implemented by tokenizers."""

    def __call__(self, text: str) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    """Protocol implemented by token filters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class RegexTokenizer:
    """Regex-based tokenizer that yields word tokens.

    The default pattern keeps runs of Unicode letters and digits; everything
    else, underscore included, separates tokens.
    """

    def __init__(self, pattern: str = r"[^\W_]+", flags: int = re.UNICODE) -> None:
        self.pattern = re.compile(pattern, flags)

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            yield Token(
                text=match.group(0),
                position=position,
                start_char=match.start(),
                end_char=match.end(),
            )


class LowercaseFilter:
    """Filter that lowercases token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.islower():
                yield token
            else:
                yield token.copy_with(text=token.text.lower())


class MinLengthFilter:
    """Drops tokens shorter than ``min_length`` characters."""

    def __init__(self, min_length: int = 1) -> None:
        self.min_length = min_length

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if len(token.text) >= self.min_length:
                yield token


class StopFilter:
    """Removes stopwords from the stream."""

    def __init__(self, stopwords: Iterable[str]) -> None:
        self.stopwords = {word.lower() for word in stopwords}

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text not in self.stopwords:
                yield token


class AnalyzerPipeline:
    """Composable analyzer pipeline (tokenizer + filters)."""

    def __init__(self, tokenizer: Tokenizer, filters: Sequence[TokenFilter] | None = None) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters or [])

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        tokens = list(stream)
        for idx, token in enumerate(tokens):  # normalize positions post-filtering
            token.position = idx
        return tokens


class TextAnalyzer:
    """Language-aware analyzer configured from ``Settings``.

    Pipelines are built lazily per language and reused; building one loads
    that language's stop words.
    """

    def __init__(
        self,
        *,
        min_word_length: int = 1,
        enable_stop_words: bool = True,
        stopwords_dir: Path | None = None,
    ) -> None:
        self.min_word_length = min_word_length
        self.enable_stop_words = enable_stop_words
        self.stopwords_dir = stopwords_dir
        self._tokenizer = RegexTokenizer()
        self._normalizer = AnalyzerPipeline(self._tokenizer, [LowercaseFilter()])
        self._pipelines: dict[str, AnalyzerPipeline] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> TextAnalyzer:
        return cls(
            min_word_length=settings.min_word_length,
            enable_stop_words=settings.enable_stop_words,
            stopwords_dir=settings.stopwords_dir,
        )

    def _pipeline(self, language: str) -> AnalyzerPipeline:
        key = normalize_language(language)
        pipeline = self._pipelines.get(key)
        if pipeline is not None:
            return pipeline
        with self._lock:
            pipeline = self._pipelines.get(key)
            if pipeline is None:
                filters: list[TokenFilter] = [LowercaseFilter(), MinLengthFilter(self.min_word_length)]
                if self.enable_stop_words:
                    filters.append(StopFilter(load_stopwords(key, self.stopwords_dir)))
                pipeline = AnalyzerPipeline(self._tokenizer, filters)
                self._pipelines[key] = pipeline
        return pipeline

    def analyze(self, text: str, language: str) -> list[Token]:
        """Run the full pipeline for ``language`` over ``text``."""
        if not text:
            return []
        return self._pipeline(language)(text)

    def terms(self, text: str, language: str) -> list[str]:
        """Analyzed term stream, in order, duplicates kept."""
        return [token.text for token in self.analyze(text, language)]

    def normalize(self, text: str) -> list[str]:
        """Tokenize and lowercase only; no length or stop-word filtering."""
        if not text:
            return []
        return [token.text for token in self._normalizer(text)]
