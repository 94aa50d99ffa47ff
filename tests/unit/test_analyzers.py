"""Unit tests for the analyzer pipeline and stop-word lists."""

from __future__ import annotations

import pytest

from site_search.search.analyzers import (
    AnalyzerPipeline,
    LowercaseFilter,
    MinLengthFilter,
    RegexTokenizer,
    StopFilter,
    TextAnalyzer,
)
from site_search.search.stopwords import generic_language, load_stopwords, normalize_language


pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def clear_stopword_cache():
    load_stopwords.cache_clear()
    yield
    load_stopwords.cache_clear()


class TestPipeline:
    def test_tokenizer_splits_on_punctuation_and_underscore(self):
        tokens = list(RegexTokenizer()("snake_case, kebab-case! x2"))

        assert [token.text for token in tokens] == ["snake", "case", "kebab", "case", "x2"]
        assert tokens[0].start_char == 0
        assert tokens[0].end_char == 5

    def test_positions_are_renumbered_after_filtering(self):
        pipeline = AnalyzerPipeline(RegexTokenizer(), [LowercaseFilter(), StopFilter({"the"})])

        tokens = pipeline("Red THE Shoes")

        assert [(token.text, token.position) for token in tokens] == [("red", 0), ("shoes", 1)]

    def test_min_length_filter(self):
        pipeline = AnalyzerPipeline(RegexTokenizer(), [MinLengthFilter(3)])

        assert [token.text for token in pipeline("go far away")] == ["far", "away"]


class TestTextAnalyzer:
    def test_lowercases_unicode(self):
        analyzer = TextAnalyzer()

        assert analyzer.terms("Äpfel ÜBER Straße", "de") == ["äpfel", "straße"]

    def test_drops_stop_words_and_short_terms(self):
        analyzer = TextAnalyzer(min_word_length=3)

        assert analyzer.terms("The red shoes of an ox", "en") == ["red", "shoes"]

    def test_stop_words_can_be_disabled(self):
        analyzer = TextAnalyzer(enable_stop_words=False)

        assert analyzer.terms("the red shoes", "en") == ["the", "red", "shoes"]

    def test_stop_word_only_text_yields_nothing(self):
        analyzer = TextAnalyzer(min_word_length=2)

        assert analyzer.terms("the and of a I", "en") == []

    def test_normalize_keeps_stop_words(self):
        analyzer = TextAnalyzer()

        assert analyzer.normalize("The Red-Shoes") == ["the", "red", "shoes"]

    def test_regional_language_uses_generic_list(self):
        analyzer = TextAnalyzer()

        assert analyzer.terms("le chat et la souris", "fr_CA") == ["chat", "souris"]
        assert analyzer.terms("LE Chat", "fr-ca") == ["chat"]

    def test_unknown_language_disables_filtering(self, caplog):
        analyzer = TextAnalyzer()

        with caplog.at_level("WARNING"):
            assert analyzer.terms("the cat", "xx") == ["the", "cat"]

        assert "No stop words available" in caplog.text

    def test_from_settings(self, settings):
        analyzer = TextAnalyzer.from_settings(settings.model_copy(update={"min_word_length": 4}))

        assert analyzer.terms("red shoes", "en") == ["shoes"]


class TestStopwords:
    def test_language_code_normalization(self):
        assert normalize_language(" de_AT ") == "de-at"
        assert generic_language("ar-SA") == "ar"
        assert normalize_language(None) == ""

    def test_bundled_lists_cover_supported_languages(self):
        for language, word in (("en", "the"), ("de", "und"), ("fr", "les"), ("es", "los"), ("ar", "في")):
            assert word in load_stopwords(language)

    def test_override_file_wins(self, tmp_path):
        (tmp_path / "en.txt").write_text("# custom list\nShoes\n\nred\n", encoding="utf-8")

        assert load_stopwords("en", tmp_path) == frozenset({"shoes", "red"})

    def test_regional_override_before_generic(self, tmp_path):
        (tmp_path / "de-at.txt").write_text("servus\n", encoding="utf-8")

        assert load_stopwords("de-AT", tmp_path) == frozenset({"servus"})
        assert "und" in load_stopwords("de-DE", tmp_path)
