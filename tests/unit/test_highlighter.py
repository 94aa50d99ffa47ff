"""Tests for highlighting and snippet extraction."""

from __future__ import annotations

import pytest

from site_search.domain.search import HighlightOptions
from site_search.search.highlighter import Highlighter, build_term_pattern, strip_highlight, strip_markup


pytestmark = pytest.mark.unit

MARK = '<mark class="search-highlight">'


@pytest.fixture
def highlighter() -> Highlighter:
    return Highlighter()


class TestHighlight:
    def test_wraps_whole_words_case_insensitively(self, highlighter: Highlighter) -> None:
        result = highlighter.highlight("Red shoes, RED socks", ["red"])

        assert result == f"{MARK}Red</mark> shoes, {MARK}RED</mark> socks"

    def test_partial_words_are_not_highlighted(self, highlighter: Highlighter) -> None:
        assert highlighter.highlight("shoeshine shoes", ["shoes"]) == f"shoeshine {MARK}shoes</mark>"

    def test_short_terms_are_ignored(self, highlighter: Highlighter) -> None:
        assert highlighter.highlight("a b c", ["a", "b"]) == "a b c"

    def test_longest_term_wins(self, highlighter: Highlighter) -> None:
        assert highlighter.highlight("running", ["run", "running"]) == f"{MARK}running</mark>"

    def test_escapes_text_outside_matches(self, highlighter: Highlighter) -> None:
        result = highlighter.highlight("<b>Tom</b> & Jerry shoes", ["shoes"])

        assert result == f"&lt;b&gt;Tom&lt;/b&gt; &amp; Jerry {MARK}shoes</mark>"

    def test_strip_tags_option_drops_markup(self) -> None:
        highlighter = Highlighter(HighlightOptions(strip_tags=True))

        result = highlighter.highlight("<p>Tom &amp; <b>Jerry</b>\n shoes</p>", ["shoes"])

        assert result == f"Tom &amp; Jerry {MARK}shoes</mark>"

    def test_regex_characters_in_terms(self, highlighter: Highlighter) -> None:
        assert highlighter.highlight("c++ rocks", ["c++"]) == f"{MARK}c++</mark> rocks"
        assert highlighter.highlight("price (net)", ["net"]) == f"price ({MARK}net</mark>)"

    def test_is_idempotent(self, highlighter: Highlighter) -> None:
        once = highlighter.highlight("Red shoes & socks", ["shoes", "socks"])

        assert highlighter.highlight(once, ["shoes", "socks"]) == once

    def test_strip_highlight_restores_plain_text(self, highlighter: Highlighter) -> None:
        text = 'Tom & Jerry say "shoes"'

        assert strip_highlight(highlighter.highlight(text, ["shoes", "jerry"])) == text

    @pytest.mark.parametrize(
        "text",
        [
            "Red shoes\nfor  running",
            "a <b> tag: x<y>z shoes",
            "  shoes  ",
            "\tshoes &amp; socks\r\n",
            "plain text without a match",
        ],
    )
    def test_round_trip_preserves_text_exactly(self, highlighter: Highlighter, text: str) -> None:
        assert strip_highlight(highlighter.highlight(text, ["shoes"])) == text

    def test_rehighlighting_keeps_whitespace(self, highlighter: Highlighter) -> None:
        once = highlighter.highlight("Red shoes\n\nfor  running", ["shoes", "running"])

        assert once == f"Red {MARK}shoes</mark>\n\nfor  {MARK}running</mark>"
        assert highlighter.highlight(once, ["shoes", "running"]) == once

    def test_custom_tag_without_class(self) -> None:
        highlighter = Highlighter(HighlightOptions(tag="strong", css_class=None))

        assert highlighter.highlight("red shoes", ["shoes"]) == "red <strong>shoes</strong>"

    def test_no_usable_terms(self, highlighter: Highlighter) -> None:
        assert highlighter.highlight("x < y", []) == "x &lt; y"
        assert build_term_pattern(["", " ", "a"]) is None


class TestSnippets:
    @pytest.fixture
    def highlighter(self) -> Highlighter:
        return Highlighter(HighlightOptions(snippet_length=50, max_snippets=2))

    def test_no_match_gives_no_snippets(self, highlighter: Highlighter) -> None:
        assert highlighter.snippets("plain text without hits", ["shoes"]) == []
        assert highlighter.snippets("", ["shoes"]) == []

    def test_short_text_is_one_snippet_without_ellipsis(self, highlighter: Highlighter) -> None:
        assert highlighter.snippets("Red shoes", ["shoes"]) == [f"Red {MARK}shoes</mark>"]

    def test_distant_matches_get_separate_windows(self, highlighter: Highlighter) -> None:
        text = "alpha " * 20 + "needle " + "beta " * 30 + "needle " + "gamma " * 20

        snippets = highlighter.snippets(text, ["needle"])

        assert len(snippets) == 2
        for snippet in snippets:
            assert snippet.startswith("...")
            assert snippet.endswith("...")
            assert snippet.count(MARK) == 1

    def test_close_matches_merge(self, highlighter: Highlighter) -> None:
        text = "alpha " * 20 + "needle haystack needle " + "gamma " * 20

        snippets = highlighter.snippets(text, ["needle"])

        assert len(snippets) == 1
        assert snippets[0].count(MARK) == 2

    def test_snippet_count_is_capped(self, highlighter: Highlighter) -> None:
        text = ("needle " + "filler " * 30) * 4

        assert len(highlighter.snippets(text, ["needle"])) == 2

    def test_windows_do_not_cut_words(self, highlighter: Highlighter) -> None:
        text = "alpha " * 20 + "needle " + "beta " * 20

        body = highlighter.snippets(text, ["needle"])[0].strip(".")

        assert strip_highlight(body, "mark").split()[0] in {"alpha", "needle"}
        assert strip_highlight(body, "mark").split()[-1] in {"beta", "needle"}


def test_strip_markup_separates_block_elements() -> None:
    assert strip_markup("<h1>Title</h1><p>Body&nbsp;text</p>") == "Title Body text"
    assert strip_markup("ru<em>nn</em>ing") == "running"
