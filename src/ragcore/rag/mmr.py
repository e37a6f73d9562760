"""Maximal Marginal Relevance reranking over retrieved snippets.

  mmr(c) = w_sim * similarity(c) - w_div * max_{s in selected} redundancy(c, s)

Redundancy is a positional heuristic rather than an embedding comparison:
snippets from the same document are redundant, more so when their chunks
are close together.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ragcore.config import MMRCfg
    from ragcore.rag.retriever import ContextSnippet


@dataclass(frozen=True)
class MMRWeights:
    """Weights for the MMR objective and the redundancy heuristic.

    Attributes:
        similarity: Weight of the candidate's own similarity to the query.
        diversity: Weight of the redundancy penalty.
        same_document: Redundancy added when both snippets share a document.
        near_chunk: Extra redundancy when chunk indices differ by <= near_distance.
        far_chunk: Extra redundancy when chunk indices differ by <= far_distance.
    """

    similarity: float = 0.7
    diversity: float = 0.3
    same_document: float = 0.5
    near_chunk: float = 0.3
    near_distance: int = 2
    far_chunk: float = 0.1
    far_distance: int = 5

    @classmethod
    def from_config(cls, cfg: MMRCfg) -> MMRWeights:
        return cls(
            similarity=cfg.similarity_weight,
            diversity=cfg.diversity_weight,
            same_document=cfg.same_document,
            near_chunk=cfg.near_chunk,
            near_distance=cfg.near_distance,
            far_chunk=cfg.far_chunk,
            far_distance=cfg.far_distance,
        )


def redundancy(a: ContextSnippet, b: ContextSnippet, weights: MMRWeights) -> float:
    if a.document_id != b.document_id:
        return 0.0
    score = weights.same_document
    gap = abs(a.chunk_index - b.chunk_index)
    if gap <= weights.near_distance:
        score += weights.near_chunk
    elif gap <= weights.far_distance:
        score += weights.far_chunk
    return score


def mmr_rerank(
    candidates: Sequence[ContextSnippet],
    k: int,
    weights: MMRWeights | None = None,
) -> list[ContextSnippet]:
    """Select up to *k* snippets from *candidates* in MMR order.

    *candidates* must be sorted by similarity, best first. The first pick is
    always the top candidate; ties in the MMR score go to the candidate
    ranked higher by raw similarity. Duplicate chunk ids are ignored.
    """
    weights = weights or MMRWeights()

    remaining: list[ContextSnippet] = []
    seen: set[str] = set()
    for c in candidates:
        if c.chunk_id not in seen:
            seen.add(c.chunk_id)
            remaining.append(c)

    if k <= 0 or not remaining:
        return []

    selected = [remaining.pop(0)]
    while len(selected) < k and remaining:
        best_index = 0
        best_score = float("-inf")
        for i, candidate in enumerate(remaining):
            penalty = max(redundancy(candidate, s, weights) for s in selected)
            score = weights.similarity * candidate.score - weights.diversity * penalty
            if score > best_score:
                best_score = score
                best_index = i
        selected.append(remaining.pop(best_index))

    return selected
