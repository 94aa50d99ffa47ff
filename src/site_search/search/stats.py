"""Statistical helpers for BM25 scoring.

The functions here stay independent of any storage backend; the scorer feeds
them corpus statistics read from the index store.
"""

from __future__ import annotations

import math


def calculate_idf(doc_freq: int, total_docs: int) -> float:
    """Return the BM25 inverse document frequency.

    ``ln((N - df + 0.5) / (df + 0.5) + 1)``; the ``+ 1`` keeps the value
    positive even for terms present in every document.
    """
    if total_docs <= 0:
        return 0.0
    df = max(0, min(doc_freq, total_docs))
    return math.log((total_docs - df + 0.5) / (df + 0.5) + 1.0)


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.5, b: float = 0.75) -> float:
    """Compute the BM25 term weight without IDF.

    ``tf * (k1 + 1) / (tf + k1 * (1 - b + b * dl / avgdl))``. An empty
    corpus (``avgdl == 0``) disables length normalization.
    """
    if tf <= 0:
        return 0.0
    length_ratio = doc_length / avg_doc_length if avg_doc_length > 0 else 1.0
    denominator = tf + k1 * (1 - b + b * length_ratio)
    return (tf * (k1 + 1)) / denominator
