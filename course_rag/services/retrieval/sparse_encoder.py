"""Hashed lexical sparse vectors for the sparse branch of hybrid search.

Each content term (lower-cased, stopwords removed) maps to a stable index
``crc32(term) mod 2**20`` with weight ``1 + ln(tf)``.  Query and document
vectors come from the same encoder, so their dot product rewards shared
rare-ish terms without needing a global vocabulary.  Hash collisions sum
their weights.
"""

from __future__ import annotations

import math
import zlib
from collections import Counter

from course_rag.models.rag import SparseVector
from course_rag.utils.text_analysis import content_terms

_INDEX_SPACE = 2**20


class SparseEncoder:
    """Stateless term-frequency sparse encoder."""

    def __init__(self, index_space: int = _INDEX_SPACE, min_term_length: int = 2) -> None:
        self._index_space = index_space
        self._min_term_length = min_term_length

    def encode(self, text: str) -> SparseVector:
        counts = Counter(content_terms(text, min_length=self._min_term_length))
        weights: dict[int, float] = {}
        for term, tf in counts.items():
            idx = zlib.crc32(term.encode("utf-8")) % self._index_space
            weights[idx] = weights.get(idx, 0.0) + 1.0 + math.log(tf)
        indices = sorted(weights)
        return SparseVector(indices=indices, values=[weights[i] for i in indices])

    def encode_many(self, texts: list[str]) -> list[SparseVector]:
        return [self.encode(t) for t in texts]
