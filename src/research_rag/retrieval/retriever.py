"""Hybrid dense + lexical retriever fused by reciprocal rank."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from research_rag.config import RetrievalConfig
from research_rag.ingest.embedder import Embedder
from research_rag.retrieval.fusion import FusionLayer
from research_rag.retrieval.store import ChunkStore
from research_rag.types import Passage, RankedChunk

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetrieveQuery:
    text: str
    k_vec: int | None = None
    k_bm25: int | None = None
    k_final: int | None = None
    filters: dict[str, Any] | None = None


@dataclass(slots=True)
class RetrieveResult:
    passages: list[Passage] = field(default_factory=list)


def normalize_query(text: str) -> str:
    return " ".join(text.split())


class HybridRetriever:
    """Runs dense and lexical routes independently and fuses their ranks.

    Either route may be unavailable (store capability flag off, embedding
    service down, query error); it then contributes an empty list and the
    other route still answers.
    """

    def __init__(
        self,
        store: ChunkStore,
        embedder: Embedder,
        fusion_layer: FusionLayer | None = None,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.config = config or RetrievalConfig()
        self.fusion_layer = fusion_layer or FusionLayer(self.config)

    async def retrieve(self, query: RetrieveQuery) -> RetrieveResult:
        text = normalize_query(query.text)
        if not text:
            return RetrieveResult()

        k_vec = self.config.k_vec if query.k_vec is None else query.k_vec
        k_bm25 = self.config.k_bm25 if query.k_bm25 is None else query.k_bm25
        k_final = self.config.k_final if query.k_final is None else query.k_final
        if min(k_vec, k_bm25, k_final) < 1:
            raise ValueError("k_vec, k_bm25 and k_final must be positive")

        dense, lexical = await asyncio.gather(
            self._dense(text, k_vec, query.filters),
            self._lexical(text, k_bm25, query.filters),
            return_exceptions=True,
        )
        route_results = {
            "dense": _route_or_empty("dense", dense),
            "lexical": _route_or_empty("lexical", lexical),
        }
        passages = self.fusion_layer.fuse(route_results, top_k=k_final)
        logger.debug(
            "Retrieved %d passages (dense=%d, lexical=%d)",
            len(passages),
            len(route_results["dense"]),
            len(route_results["lexical"]),
        )
        return RetrieveResult(passages=passages)

    async def _dense(
        self, text: str, k: int, filters: dict[str, Any] | None
    ) -> list[RankedChunk]:
        if not self.store.vector_available:
            return []
        vector = await self.embedder.embed_query(text)
        if not vector:
            return []
        return self.store.vector_search(vector, k, filters)

    async def _lexical(
        self, text: str, k: int, filters: dict[str, Any] | None
    ) -> list[RankedChunk]:
        if not self.store.lexical_available:
            return []
        return self.store.lexical_search(text, k, filters)


def _route_or_empty(route: str, outcome: list[RankedChunk] | BaseException) -> list[RankedChunk]:
    if isinstance(outcome, Exception):
        logger.warning("%s retrieval route failed: %s", route, outcome)
        return []
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome
