"""Indexer: chunk -> embed (one batch) -> persist atomically."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from hashlib import sha256

from research_rag.ingest.chunker import FixedSizeChunker
from research_rag.ingest.embedder import Embedder
from research_rag.retrieval.store import ChunkStore
from research_rag.types import Chunk, Document, EmbeddingError, IngestError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestRequest:
    source: str
    raw_text: str
    title: str | None = None
    mime: str | None = None
    owner_id: str | None = None
    embedding_model: str | None = None
    lang: str | None = None


@dataclass(slots=True)
class IngestResult:
    document_id: str
    chunk_count: int


def document_id_for(content_hash: str) -> str:
    return f"doc-{content_hash[:16]}"


class Indexer:
    """Coordinates chunker/embedder/store for one document at a time.

    Embedding happens before any write, and every write for the document
    (document upsert, chunk rows, lexical index rows) runs in a single store
    transaction with no await inside it. A failure anywhere leaves the store
    unchanged and is re-raised to the caller.
    """

    def __init__(
        self,
        chunker: FixedSizeChunker,
        embedder: Embedder,
        store: ChunkStore,
    ) -> None:
        self._chunker = chunker
        self._embedder = embedder
        self._store = store

    async def ingest_document(self, request: IngestRequest) -> IngestResult:
        content_hash = sha256(request.raw_text.encode("utf-8")).hexdigest()
        document = Document(
            id=document_id_for(content_hash),
            source=request.source,
            content_hash=content_hash,
            title=request.title,
            mime=request.mime,
            owner_id=request.owner_id,
        )

        pieces = self._chunker.chunk(request.raw_text)
        model = request.embedding_model or self._embedder.model
        vectors = await self._embedder.embed_documents(
            [piece.text for piece in pieces], model=request.embedding_model
        )
        if len(vectors) != len(pieces):
            raise EmbeddingError(
                f"embedding service returned {len(vectors)} vectors for {len(pieces)} chunks"
            )

        chunks = [
            Chunk(
                id=f"{document.id}-chunk-{ordinal:04d}",
                document_id=document.id,
                text=piece.text,
                span=piece.span,
                embedding=vector,
                embedding_model=model,
                content_id=piece.id,
                lang=request.lang,
            )
            for ordinal, (piece, vector) in enumerate(zip(pieces, vectors, strict=True))
        ]

        try:
            self._store.write_document(document, chunks)
        except Exception as exc:
            logger.error("Ingest of %s rolled back: %s", request.source, exc)
            raise IngestError(f"failed to persist {request.source}: {exc}") from exc

        logger.info("Ingested %s as %s (%d chunks)", request.source, document.id, len(chunks))
        return IngestResult(document_id=document.id, chunk_count=len(chunks))
