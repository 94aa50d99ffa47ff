"""Field extraction: typed content fields to indexable body text.

Each ``FieldKind`` has one extraction function returning the field's text or
``None`` when the value has nothing indexable. Unsupported value shapes are
reported back as skipped fields rather than raised.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any

from site_search.search.highlighter import strip_markup


logger = logging.getLogger(__name__)


class FieldKind(str, Enum):
    PLAIN_TEXT = "plain_text"
    RICH_TEXT = "rich_text"
    KEYWORDS = "keywords"
    RELATIONS = "relations"
    TABLE = "table"


@dataclass(frozen=True, slots=True)
class FieldValue:
    """One content field handed over by the host system."""

    name: str
    kind: FieldKind
    value: Any


@dataclass(frozen=True, slots=True)
class RelatedItem:
    """A related entry; only its title is indexed."""

    title: str


@dataclass(frozen=True, slots=True)
class ExtractedBody:
    texts: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()

    @property
    def body(self) -> str:
        return " ".join(self.texts)


def _clean(text: str) -> str | None:
    cleaned = " ".join(text.split())
    return cleaned or None


def extract_plain_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return _clean(value)


def extract_rich_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return _clean(strip_markup(value))


def extract_keywords(value: Any) -> str | None:
    if isinstance(value, str):
        return _clean(value.replace(",", " "))
    if isinstance(value, Iterable):
        words = [str(item).strip() for item in value if item is not None and str(item).strip()]
        return " ".join(words) or None
    return None


def extract_relations(value: Any) -> str | None:
    if isinstance(value, str) or not isinstance(value, Iterable):
        return None
    titles = [item.title for item in value if isinstance(item, RelatedItem) and item.title.strip()]
    return _clean(" ".join(titles)) if titles else None


def extract_table(value: Any) -> str | None:
    """Rows are mappings (column -> cell) or sequences of cells; non-string cells are skipped."""
    if isinstance(value, str) or not isinstance(value, Iterable):
        return None
    cells: list[str] = []
    for row in value:
        if isinstance(row, Mapping):
            row_cells: Iterable[Any] = row.values()
        elif isinstance(row, Sequence) and not isinstance(row, str):
            row_cells = row
        else:
            continue
        cells.extend(cell for cell in row_cells if isinstance(cell, str) and cell.strip())
    return _clean(" ".join(cells)) if cells else None


EXTRACTORS: dict[FieldKind, Callable[[Any], str | None]] = {
    FieldKind.PLAIN_TEXT: extract_plain_text,
    FieldKind.RICH_TEXT: extract_rich_text,
    FieldKind.KEYWORDS: extract_keywords,
    FieldKind.RELATIONS: extract_relations,
    FieldKind.TABLE: extract_table,
}


@dataclass
class _Collector:
    texts: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def build_body(fields: Iterable[FieldValue]) -> ExtractedBody:
    """Collect the text of every field, in order, and the names of fields that yielded none."""
    collector = _Collector()
    for item in fields:
        text = EXTRACTORS[item.kind](item.value)
        if text is None:
            collector.skipped.append(item.name)
            continue
        collector.texts.append(text)
    if collector.skipped:
        logger.debug("Skipped fields without indexable text: %s", ", ".join(collector.skipped))
    return ExtractedBody(tuple(collector.texts), tuple(collector.skipped))
