"""Character n-grams used for typo-tolerant lookup.

Terms are padded with one space on each side before windows are taken, so
word boundaries carry signal: " sh" only appears at the start of a term.
Windows made only of whitespace are skipped and the result is deduplicated.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence


DEFAULT_NGRAM_SIZES: tuple[int, ...] = (2, 3)


def generate_ngrams(term: str, sizes: Sequence[int] = DEFAULT_NGRAM_SIZES) -> list[str]:
    """Return the unique padded n-grams of ``term`` in first-seen order.

    Examples:
        >>> generate_ngrams("red", (2,))
        [' r', 're', 'ed', 'd ']
    """
    if not term or not sizes:
        return []

    padded = f" {term} "
    seen: dict[str, None] = {}
    for size in sizes:
        if size < 1:
            continue
        for start in range(len(padded) - size + 1):
            gram = padded[start : start + size]
            if gram.strip():
                seen.setdefault(gram, None)
    return list(seen)


def jaccard_similarity(first: Collection[str], second: Collection[str]) -> float:
    """|intersection| / |union| of two n-gram sets; 0.0 when either is empty."""
    if not first or not second:
        return 0.0
    a, b = set(first), set(second)
    return len(a & b) / len(a | b)


def jaccard_from_counts(shared: int, query_count: int, candidate_count: int) -> float:
    """Jaccard similarity from set sizes, as stored in the n-gram count table."""
    union = query_count + candidate_count - shared
    if union <= 0:
        return 0.0
    return shared / union


def term_similarity(first: str, second: str, sizes: Sequence[int] = DEFAULT_NGRAM_SIZES) -> float:
    return jaccard_similarity(generate_ngrams(first, sizes), generate_ngrams(second, sizes))


def adaptive_threshold(term: str, base_threshold: float) -> float:
    """Scale the similarity threshold down for short terms.

    Short terms have few n-grams, so a single differing character costs a
    large share of the union.

    Args:
        term: Query term being expanded
        base_threshold: Configured similarity threshold

    Returns:
        Threshold to apply for this term
    """
    length = len(term)
    if length <= 2:
        return max(0.1, base_threshold * 0.4)
    if length == 3:
        return max(0.15, base_threshold * 0.6)
    if length == 4:
        return max(0.2, base_threshold * 0.8)
    return base_threshold
