"""BM25 lexical index over chunk text.

Terms come from the same tokenizer the TF-IDF code uses (lower-cased word
tokens, multilingual stopwords removed), so keyword hits and coherence
scores agree on what a "term" is.  The ``BM25Okapi`` model is rebuilt
lazily on the first search after a mutation.

A document matches a query when it shares at least one query term; matches
are ranked by BM25 score.  Okapi IDF goes negative for terms present in more
than half of a tiny corpus, so term overlap (not score sign) decides
membership in the result set.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

import numpy as np
import structlog
from rank_bm25 import BM25Okapi

from course_rag.interfaces.vector_store_provider import PayloadFilter
from course_rag.models.rag import IndexEntry, SearchResult, SearchType
from course_rag.utils.text_analysis import content_terms

logger = structlog.get_logger(logger_name=__name__)


class KeywordIndex:
    """In-process BM25 index keyed by chunk id."""

    def __init__(self, tokenizer: Callable[[str], list[str]] = content_terms) -> None:
        self._tokenize = tokenizer
        self._entries: dict[str, tuple[list[str], dict[str, Any]]] = {}
        self._bm25: BM25Okapi | None = None
        self._order: list[str] = []
        self._dirty = False
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_populated(self) -> bool:
        return bool(self._entries)

    def add(self, entries: list[IndexEntry]) -> int:
        """Insert or replace *entries* by id; returns how many were indexed."""
        with self._lock:
            for entry in entries:
                self._entries[entry.id] = (self._tokenize(entry.text), dict(entry.payload))
            if entries:
                self._dirty = True
        logger.debug("keyword_index_updated", added=len(entries), size=len(self._entries))
        return len(entries)

    def delete(self, ids: list[str]) -> int:
        with self._lock:
            removed = sum(1 for i in ids if self._entries.pop(i, None) is not None)
            if removed:
                self._dirty = True
        return removed

    def delete_by_filter(self, payload_filter: PayloadFilter) -> int:
        with self._lock:
            doomed = [i for i, (_, payload) in self._entries.items() if payload_filter.matches(payload)]
        return self.delete(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._bm25 = None
            self._order = []
            self._dirty = False

    def search(
        self,
        query: str,
        top_k: int = 10,
        payload_filter: PayloadFilter | None = None,
    ) -> list[SearchResult]:
        """Return up to *top_k* keyword hits, best first."""
        query_terms = self._tokenize(query)
        if not query_terms or top_k <= 0:
            return []

        with self._lock:
            if not self._entries:
                return []
            if self._dirty or self._bm25 is None:
                self._rebuild()
            scores = self._bm25.get_scores(query_terms)
            wanted = set(query_terms)

            results: list[SearchResult] = []
            for idx in np.argsort(-scores, kind="stable"):
                doc_id = self._order[idx]
                tokens, payload = self._entries[doc_id]
                if wanted.isdisjoint(tokens):
                    continue
                if payload_filter is not None and not payload_filter.matches(payload):
                    continue
                results.append(
                    SearchResult(
                        id=doc_id,
                        score=float(scores[idx]),
                        text=str(payload.get("text", "")),
                        metadata={k: v for k, v in payload.items() if k != "text"},
                        search_type=SearchType.KEYWORD,
                    )
                )
                if len(results) >= top_k:
                    break

        logger.debug("keyword_search", terms=len(query_terms), hits=len(results))
        return results

    def _rebuild(self) -> None:
        self._order = list(self._entries)
        # BM25Okapi divides by the average document length.
        corpus = [self._entries[i][0] or [""] for i in self._order]
        self._bm25 = BM25Okapi(corpus)
        self._dirty = False
        logger.debug("keyword_index_rebuilt", documents=len(self._order))
