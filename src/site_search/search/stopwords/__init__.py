"""Per-language stop-word lists with user overrides and regional fallback.

Lookup order for a language code such as ``de-AT``:

1. ``<stopwords_dir>/de-at.txt`` (user override, one word per line)
2. bundled list for ``de-at``
3. ``<stopwords_dir>/de.txt``
4. bundled list for ``de``
5. empty set (no filtering), logged once per language
"""

from __future__ import annotations

from functools import lru_cache
import logging
from pathlib import Path

from site_search.search.stopwords import ar, de, en, es, fr


logger = logging.getLogger(__name__)

BUNDLED_STOPWORDS: dict[str, frozenset[str]] = {
    "ar": ar.STOPWORDS,
    "de": de.STOPWORDS,
    "en": en.STOPWORDS,
    "es": es.STOPWORDS,
    "fr": fr.STOPWORDS,
}


def normalize_language(language: str | None) -> str:
    """Lowercase a language code and use ``-`` as the region separator."""
    if not language:
        return ""
    return language.strip().lower().replace("_", "-")


def generic_language(language: str | None) -> str:
    """Return the language without its region: ``ar-SA`` -> ``ar``."""
    return normalize_language(language).split("-", 1)[0]


def _candidates(language: str) -> list[str]:
    normalized = normalize_language(language)
    generic = generic_language(normalized)
    if generic and generic != normalized:
        return [normalized, generic]
    return [normalized] if normalized else []


def _read_override(path: Path) -> frozenset[str]:
    words = set()
    for line in path.read_text(encoding="utf-8").splitlines():
        word = line.strip().lower()
        if word and not word.startswith("#"):
            words.add(word)
    return frozenset(words)


@lru_cache(maxsize=64)
def load_stopwords(language: str, stopwords_dir: Path | None = None) -> frozenset[str]:
    """Resolve the stop-word set for ``language``.

    Args:
        language: Language code, optionally with region (``fr``, ``fr-CA``)
        stopwords_dir: Optional directory of ``<lang>.txt`` override files

    Returns:
        Lowercased stop words; empty when no list exists for the language
    """
    for candidate in _candidates(language):
        if stopwords_dir is not None:
            override = stopwords_dir / f"{candidate}.txt"
            if override.is_file():
                logger.debug("Loaded stop-word override %s", override)
                return _read_override(override)
        bundled = BUNDLED_STOPWORDS.get(candidate)
        if bundled is not None:
            return bundled

    logger.warning("No stop words available for language %r; stop-word filtering disabled", language)
    return frozenset()


__all__ = ["BUNDLED_STOPWORDS", "generic_language", "load_stopwords", "normalize_language"]
