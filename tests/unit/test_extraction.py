"""Tests for typed field extraction."""

from __future__ import annotations

import pytest

from site_search.search.extraction import (
    FieldKind,
    FieldValue,
    RelatedItem,
    build_body,
    extract_keywords,
    extract_plain_text,
    extract_relations,
    extract_rich_text,
    extract_table,
)


pytestmark = pytest.mark.unit


def test_plain_text_collapses_whitespace() -> None:
    assert extract_plain_text("  red\n\tshoes  ") == "red shoes"
    assert extract_plain_text("   ") is None
    assert extract_plain_text(42) is None


def test_rich_text_drops_markup_and_decodes_entities() -> None:
    assert extract_rich_text("<h2>Care</h2><p>Wash &amp; dry</p>") == "Care Wash & dry"
    assert extract_rich_text("<br/>") is None


def test_keywords_accept_strings_and_sequences() -> None:
    assert extract_keywords("red, running,shoes") == "red running shoes"
    assert extract_keywords(["red", None, " ", "shoes"]) == "red shoes"
    assert extract_keywords([]) is None
    assert extract_keywords(3.5) is None


def test_relations_index_related_titles_only() -> None:
    value = [RelatedItem("Running Socks"), {"title": "ignored"}, RelatedItem("  ")]

    assert extract_relations(value) == "Running Socks"
    assert extract_relations("Running Socks") is None
    assert extract_relations([]) is None


def test_table_accepts_mapping_and_sequence_rows() -> None:
    rows = [
        {"size": "small", "stock": 3},
        ["medium", "large"],
        "not a row",
    ]

    assert extract_table(rows) == "small medium large"
    assert extract_table([[1, 2]]) is None


def test_build_body_keeps_field_order_and_reports_skipped() -> None:
    extracted = build_body(
        [
            FieldValue("intro", FieldKind.PLAIN_TEXT, "Warm"),
            FieldValue("image", FieldKind.PLAIN_TEXT, None),
            FieldValue("details", FieldKind.RICH_TEXT, "<em>wool</em> hat"),
            FieldValue("related", FieldKind.RELATIONS, "oops"),
        ]
    )

    assert extracted.texts == ("Warm", "wool hat")
    assert extracted.skipped == ("image", "related")
    assert extracted.body == "Warm wool hat"


def test_build_body_of_nothing_is_empty() -> None:
    assert build_body([]).body == ""
