"""Highlighting and snippet extraction.

The highlighter treats its input as plain text: everything is HTML-escaped
and whole-word, case-insensitive matches are wrapped in the configured tag.
Input that already carries the highlighter's own markup is unwrapped and
decoded first, so highlighting twice never double-wraps and
``strip_highlight(highlight(text))`` gives back ``text`` unchanged. Markup
removal with ``strip_markup`` only happens when ``strip_tags`` is set.

Smart Defaults:
- ``<mark class="search-highlight">`` around matches
- Terms shorter than 2 characters are never highlighted
- Snippet windows of 200 characters centered on matches, at most 3
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
import html
import re

from site_search.domain.search import HighlightOptions


MIN_HIGHLIGHT_TERM_LENGTH = 2
ELLIPSIS = "..."

_TAG_PATTERN = re.compile(r"</?([A-Za-z][A-Za-z0-9]*)\b[^<>]*>")
_WHITESPACE_PATTERN = re.compile(r"\s+")

# Removed without leaving a gap; every other tag separates words
INLINE_TAGS = frozenset({"a", "abbr", "b", "code", "em", "i", "mark", "small", "span", "strong", "sub", "sup", "u"})


def strip_markup(text: str, *, inline_tags: frozenset[str] = INLINE_TAGS) -> str:
    """Remove tags, decode entities and collapse whitespace."""
    if not text:
        return ""

    def replace(match: re.Match[str]) -> str:
        return "" if match.group(1).lower() in inline_tags else " "

    without_tags = _TAG_PATTERN.sub(replace, text)
    return _WHITESPACE_PATTERN.sub(" ", html.unescape(without_tags)).strip()


def strip_highlight(highlighted: str, tag: str = "mark") -> str:
    """Undo ``highlight``: drop the highlight elements and decode entities."""
    pattern = re.compile(rf"</?{re.escape(tag)}(?:\s[^<>]*)?>")
    return html.unescape(pattern.sub("", highlighted))


def build_term_pattern(terms: Iterable[str]) -> re.Pattern[str] | None:
    """Compile one alternation over ``terms``, longest first; None when empty."""
    usable = {term.strip().lower() for term in terms if len(term.strip()) >= MIN_HIGHLIGHT_TERM_LENGTH}
    if not usable:
        return None
    alternatives = "|".join(re.escape(term) for term in sorted(usable, key=lambda t: (-len(t), t)))
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class _Window:
    start: int
    end: int


class Highlighter:
    """Wraps query terms in markup and cuts snippets around them."""

    def __init__(self, options: HighlightOptions | None = None) -> None:
        self.options = options or HighlightOptions()

    @property
    def open_tag(self) -> str:
        if self.options.css_class:
            return f'<{self.options.tag} class="{html.escape(self.options.css_class)}">'
        return f"<{self.options.tag}>"

    @property
    def close_tag(self) -> str:
        return f"</{self.options.tag}>"

    def highlight(self, text: str, terms: Sequence[str]) -> str:
        """Return escaped text with every whole-word match wrapped."""
        plain = self._plain_text(text)
        pattern = build_term_pattern(terms)
        if pattern is None:
            return html.escape(plain)
        spans = [(match.start(), match.end()) for match in pattern.finditer(plain)]
        return self._render(plain, 0, len(plain), spans)

    def snippets(self, text: str, terms: Sequence[str]) -> list[str]:
        """Return up to ``max_snippets`` highlighted windows in document order.

        Windows are ``snippet_length`` characters centered on each match;
        overlapping windows are merged. No matches yields an empty list.
        """
        plain = self._plain_text(text)
        pattern = build_term_pattern(terms)
        if pattern is None:
            return []
        spans = [(match.start(), match.end()) for match in pattern.finditer(plain)]
        if not spans:
            return []

        windows: list[_Window] = []
        for start, end in spans:
            window = self._window_around(plain, start, end)
            if windows and window.start <= windows[-1].end:
                windows[-1] = _Window(windows[-1].start, max(windows[-1].end, window.end))
            else:
                windows.append(window)

        snippets = []
        for window in windows[: self.options.max_snippets]:
            inside = [(start, end) for start, end in spans if start >= window.start and end <= window.end]
            body = self._render(plain, window.start, window.end, inside)
            prefix = ELLIPSIS if window.start > 0 else ""
            suffix = ELLIPSIS if window.end < len(plain) else ""
            snippets.append(f"{prefix}{body}{suffix}")
        return snippets

    def _plain_text(self, text: str) -> str:
        if self.options.strip_tags:
            return strip_markup(text, inline_tags=INLINE_TAGS | {self.options.tag})
        if self.open_tag in text:
            # Output of an earlier highlight: unwrap and decode back to the source text
            return strip_highlight(text, self.options.tag)
        return text

    def _window_around(self, text: str, start: int, end: int) -> _Window:
        length = self.options.snippet_length
        center = (start + end) // 2
        window_start = max(0, center - length // 2)
        window_end = min(len(text), window_start + length)
        window_start = max(0, window_end - length)

        # Snap outward edges to word boundaries without cutting the match
        if window_start > 0:
            boundary = text.find(" ", window_start, start)
            if boundary != -1:
                window_start = boundary + 1
        if window_end < len(text):
            boundary = text.rfind(" ", end, window_end)
            if boundary != -1:
                window_end = boundary
        return _Window(window_start, max(window_end, end))

    def _render(self, text: str, start: int, end: int, spans: Sequence[tuple[int, int]]) -> str:
        parts = []
        cursor = start
        for span_start, span_end in spans:
            parts.append(html.escape(text[cursor:span_start]))
            parts.append(f"{self.open_tag}{html.escape(text[span_start:span_end])}{self.close_tag}")
            cursor = span_end
        parts.append(html.escape(text[cursor:end]))
        return "".join(parts)
