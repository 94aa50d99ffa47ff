"""Positional phrase matching.

Positions are token offsets after analysis (stop words removed and positions
renumbered), so ``"red the shoes"`` and ``"red shoes"`` both match a
document containing ``red shoes``.
"""

from __future__ import annotations

from collections.abc import Sequence


def phrase_start_positions(term_positions: Sequence[Sequence[int]]) -> list[int]:
    """Return every position where the terms occur adjacently, in order.

    Args:
        term_positions: Positions of each phrase term, in phrase order.

    Returns:
        Sorted start positions of complete phrase occurrences.

    Examples:
        >>> phrase_start_positions([[0, 4], [1, 7]])
        [0]
    """
    if not term_positions or any(not positions for positions in term_positions):
        return []

    starts = set(term_positions[0])
    for offset, positions in enumerate(term_positions[1:], start=1):
        present = set(positions)
        starts = {start for start in starts if start + offset in present}
        if not starts:
            return []
    return sorted(starts)


def contains_phrase(term_positions: Sequence[Sequence[int]]) -> bool:
    return bool(phrase_start_positions(term_positions))
