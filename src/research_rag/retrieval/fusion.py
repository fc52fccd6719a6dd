"""Reciprocal Rank Fusion over independent ranker outputs."""

from __future__ import annotations

from research_rag.config import RetrievalConfig
from research_rag.types import Passage, RankedChunk


def rrf_scores(route_results: dict[str, list[RankedChunk]], k: int = 60) -> dict[str, float]:
    """Sum `1 / (k + rank)` for every list a chunk appears in.

    Raw ranker scores are never consulted: dense similarities and bm25 values
    live on different scales, only their ordinal positions are comparable.
    """

    scores: dict[str, float] = {}
    for items in route_results.values():
        for item in items:
            scores[item.chunk_id] = scores.get(item.chunk_id, 0.0) + 1.0 / (k + item.rank)
    return scores


class FusionLayer:
    """Fuses route outputs into final passages with RRF.

    Route order matters for provenance only: when a chunk appears in several
    routes, the entry from the first route supplied (dense, by convention)
    provides text, span and provenance.
    """

    def __init__(self, config: RetrievalConfig | None = None) -> None:
        self.config = config or RetrievalConfig()

    def fuse(
        self,
        route_results: dict[str, list[RankedChunk]],
        *,
        top_k: int | None = None,
    ) -> list[Passage]:
        if not route_results:
            return []

        scores = rrf_scores(route_results, self.config.rrf_k)
        entries: dict[str, RankedChunk] = {}
        for items in route_results.values():
            for item in items:
                entries.setdefault(item.chunk_id, item)

        ordered = sorted(scores.items(), key=lambda pair: pair[1], reverse=True)
        limit = self.config.k_final if top_k is None else top_k
        passages: list[Passage] = []
        for chunk_id, score in ordered[:limit]:
            entry = entries[chunk_id]
            passages.append(
                Passage(
                    chunk_id=chunk_id,
                    document_id=entry.document_id,
                    text=entry.text,
                    span=entry.span,
                    fused_score=score,
                    provenance=dict(entry.provenance),
                )
            )
        return passages
