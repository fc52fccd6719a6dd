"""Embedding gateway: external Ollama embeddings plus a deterministic baseline."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any

import httpx

from research_rag.types import EmbeddingError

logger = logging.getLogger(__name__)


class Embedder(ABC):
    """Embedder interface used by ingest and retrieval components.

    `embed_documents` is strict: it raises `EmbeddingError` so that an ingest
    can roll back. `embed_query` degrades to an empty vector, which the
    retriever treats as "dense route unavailable".
    """

    model: str = "unknown"

    @abstractmethod
    async def embed_documents(
        self, texts: list[str], *, model: str | None = None
    ) -> list[list[float]]:
        """Embed many documents in one call."""

    async def embed_query(self, text: str) -> list[float]:
        try:
            vectors = await self.embed_documents([text])
        except (EmbeddingError, httpx.HTTPError) as exc:
            logger.warning("Query embedding failed with %s: %s", self.model, exc)
            return []
        return vectors[0] if vectors else []


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    Used for local tests and offline deployments. In production, use
    `OllamaEmbedder` or another provider.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension
        self.model = f"hashing-{dimension}"

    async def embed_documents(
        self, texts: list[str], *, model: str | None = None
    ) -> list[list[float]]:
        del model  # hashing embeddings have no model variants.
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class OllamaEmbedder(Embedder):
    """Calls Ollama's batch `/api/embed` endpoint once per batch."""

    def __init__(
        self,
        *,
        base_url: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout_seconds: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def embed_documents(
        self, texts: list[str], *, model: str | None = None
    ) -> list[list[float]]:
        if not texts:
            return []
        payload = {"model": model or self.model, "input": texts}
        try:
            if self._client is not None:
                response = await self._client.post(f"{self.base_url}/api/embed", json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(f"{self.base_url}/api/embed", json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise EmbeddingError(f"embedding request failed: {exc}") from exc

        return validate_vectors(body.get("embeddings") if isinstance(body, dict) else None, len(texts))


def validate_vectors(raw: Any, expected: int) -> list[list[float]]:
    """Coerce an embedding payload into `expected` equal-length float vectors."""

    if not isinstance(raw, list) or len(raw) != expected:
        raise EmbeddingError(f"expected {expected} embeddings, got {_describe(raw)}")

    vectors: list[list[float]] = []
    for item in raw:
        if not isinstance(item, list) or not item:
            raise EmbeddingError("embedding payload contains an empty or non-list vector")
        try:
            vector = [float(value) for value in item]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError("embedding payload contains non-numeric values") from exc
        vectors.append([value if math.isfinite(value) else 0.0 for value in vector])

    dimensions = {len(vector) for vector in vectors}
    if len(dimensions) > 1:
        raise EmbeddingError(f"embedding dimensions differ within batch: {sorted(dimensions)}")
    return vectors


def _describe(raw: Any) -> str:
    if isinstance(raw, list):
        return f"{len(raw)} items"
    return type(raw).__name__
