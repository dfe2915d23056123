"""Reciprocal Rank Fusion (RRF).

Each document scores ``weight / (k + rank)`` per ranked list it appears in
(``rank`` is 1-based), summed across lists.  Only ranks are used, so dense
cosine scores and BM25 / sparse dot-product scores never need to share a
scale.  Shared by the in-memory vector-store driver (fused dense+sparse
queries) and the hybrid retriever (vector + keyword index fusion).
"""

from __future__ import annotations

from typing import Sequence


def reciprocal_rank_fusion(
    runs: Sequence[Sequence[str]],
    k: int = 60,
    weights: Sequence[float] | None = None,
) -> list[tuple[str, float]]:
    """Fuse ranked lists of document ids.

    Parameters
    ----------
    runs:
        Ranked id lists, best first.  Empty lists are allowed and
        contribute nothing.
    k:
        RRF constant; larger values flatten the contribution of top ranks.
    weights:
        Optional per-run multipliers, same length as *runs*.

    Returns
    -------
    list[tuple[str, float]]
        ``(id, fused_score)`` sorted by descending score; ties keep the
        order in which ids were first seen.
    """
    if not runs:
        return []
    if weights is not None and len(weights) != len(runs):
        raise ValueError("Length of weights must match number of runs")
    if weights is None:
        weights = [1.0] * len(runs)

    scores: dict[str, float] = {}
    for run, weight in zip(runs, weights):
        seen: set[str] = set()
        for rank, doc_id in enumerate(run, start=1):
            # A duplicated id within one run only counts at its best rank.
            if doc_id in seen:
                continue
            seen.add(doc_id)
            scores[doc_id] = scores.get(doc_id, 0.0) + weight / (k + rank)
    return sorted(scores.items(), key=lambda item: item[1], reverse=True)
