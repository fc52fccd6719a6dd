"""Fixed-size, content-hashed character chunking."""

from __future__ import annotations

from hashlib import sha256

from research_rag.config import ChunkingConfig
from research_rag.types import TextChunk


def content_id(text: str) -> str:
    """Short content hash used as a chunk id."""
    return sha256(text.encode("utf-8")).hexdigest()[:16]


def chunk_text(text: str, max_len: int) -> list[TextChunk]:
    """Split text into contiguous, non-overlapping spans of at most `max_len`.

    Spans are half-open `[start, end)` character offsets into `text`, emitted
    in order, so joining the chunk texts reproduces the input exactly. Only
    the final span may be shorter than `max_len`. Identical chunk text always
    yields the identical id; duplicates are kept.
    """

    if max_len <= 0:
        raise ValueError("max_len must be positive")

    chunks: list[TextChunk] = []
    for start in range(0, len(text), max_len):
        end = min(len(text), start + max_len)
        piece = text[start:end]
        chunks.append(TextChunk(id=content_id(piece), text=piece, span=(start, end)))
    return chunks


class FixedSizeChunker:
    """Config-bound wrapper around `chunk_text` used by the indexer."""

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, text: str, max_len: int | None = None) -> list[TextChunk]:
        return chunk_text(text, self.config.max_chars if max_len is None else max_len)
