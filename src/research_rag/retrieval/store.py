"""Relational chunk store with vector and lexical ranking."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from datetime import datetime, timezone
from math import sqrt
from pathlib import Path
from typing import Any, Protocol

from research_rag.types import Chunk, Document, RankedChunk

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    source TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    title TEXT,
    mime TEXT,
    owner_id TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_documents_hash ON documents(content_hash);
CREATE TABLE IF NOT EXISTS chunks (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id),
    content_id TEXT NOT NULL,
    ordinal INTEGER NOT NULL,
    text TEXT NOT NULL,
    span_start INTEGER NOT NULL,
    span_end INTEGER NOT NULL,
    embedding TEXT NOT NULL,
    embedding_model TEXT NOT NULL,
    embedding_dim INTEGER NOT NULL,
    lang TEXT
);
CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id);
"""

_FTS_SCHEMA = "CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(chunk_id UNINDEXED, text)"

_FILTER_COLUMNS = {
    "owner_id": "d.owner_id",
    "lang": "c.lang",
    "document_id": "c.document_id",
}

_WORD = re.compile(r"\w+", flags=re.UNICODE)


class ChunkStore(Protocol):
    """Minimal store contract used by the indexer and retriever."""

    vector_available: bool
    lexical_available: bool

    def write_document(self, document: Document, chunks: list[Chunk]) -> str:
        """Upsert a document and insert its chunks atomically."""

    def vector_search(
        self, query_embedding: list[float], k: int, filters: dict[str, Any] | None = None
    ) -> list[RankedChunk]:
        """Rank chunks by vector similarity."""

    def lexical_search(
        self, query_text: str, k: int, filters: dict[str, Any] | None = None
    ) -> list[RankedChunk]:
        """Rank chunks by lexical relevance."""


class SQLiteStore:
    """SQLite-backed document/chunk store.

    Dense ranking is an exact cosine scan over stored vectors; lexical ranking
    uses FTS5 `bm25()`. `lexical_available` is false when the SQLite build
    lacks FTS5, in which case the lexical route contributes nothing.
    """

    def __init__(self, path: str | Path = ":memory:", *, enable_vector: bool = True) -> None:
        self.path = str(path)
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self.vector_available = enable_vector
        self.lexical_available = self._ensure_fts()

    def _ensure_fts(self) -> bool:
        try:
            self._conn.execute(_FTS_SCHEMA)
            self._conn.commit()
        except sqlite3.OperationalError as exc:
            logger.warning("FTS5 unavailable, lexical ranking disabled: %s", exc)
            return False
        return True

    def close(self) -> None:
        self._conn.close()

    def write_document(self, document: Document, chunks: list[Chunk]) -> str:
        with self._conn:
            cur = self._conn.cursor()
            self._upsert_document(cur, document)
            for ordinal, chunk in enumerate(chunks):
                self._insert_chunk(cur, chunk, ordinal)
        return document.id

    def _upsert_document(self, cur: sqlite3.Cursor, document: Document) -> None:
        cur.execute(
            "INSERT INTO documents (id, source, content_hash, title, mime, owner_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET title = COALESCE(excluded.title, documents.title)",
            (
                document.id,
                document.source,
                document.content_hash,
                document.title,
                document.mime,
                document.owner_id,
                datetime.now(timezone.utc).isoformat(),
            ),
        )

    def _insert_chunk(self, cur: sqlite3.Cursor, chunk: Chunk, ordinal: int) -> None:
        cur.execute(
            "INSERT INTO chunks (id, document_id, content_id, ordinal, text, span_start, span_end, "
            "embedding, embedding_model, embedding_dim, lang) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) ON CONFLICT(id) DO NOTHING",
            (
                chunk.id,
                chunk.document_id,
                chunk.content_id,
                ordinal,
                chunk.text,
                chunk.span[0],
                chunk.span[1],
                json.dumps(chunk.embedding),
                chunk.embedding_model,
                len(chunk.embedding),
                chunk.lang,
            ),
        )
        if cur.rowcount == 1 and self.lexical_available:
            cur.execute(
                "INSERT INTO chunks_fts (chunk_id, text) VALUES (?, ?)",
                (chunk.id, chunk.text),
            )

    def vector_search(
        self, query_embedding: list[float], k: int, filters: dict[str, Any] | None = None
    ) -> list[RankedChunk]:
        if not self.vector_available or not query_embedding:
            return []
        where, params = _filter_clause(filters)
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS}, c.embedding FROM chunks c "
            f"JOIN documents d ON d.id = c.document_id WHERE 1 = 1{where}",
            params,
        ).fetchall()

        scored = [
            (_cosine_similarity(query_embedding, json.loads(row["embedding"])), row)
            for row in rows
        ]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [
            _to_ranked(row, rank=i + 1, score=score, route="dense")
            for i, (score, row) in enumerate(scored[:k])
        ]

    def lexical_search(
        self, query_text: str, k: int, filters: dict[str, Any] | None = None
    ) -> list[RankedChunk]:
        if not self.lexical_available:
            return []
        expression = _match_expression(query_text)
        if not expression:
            return []
        where, params = _filter_clause(filters)
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS}, bm25(chunks_fts) AS score FROM chunks_fts "
            "JOIN chunks c ON c.id = chunks_fts.chunk_id "
            "JOIN documents d ON d.id = c.document_id "
            f"WHERE chunks_fts MATCH ?{where} ORDER BY score LIMIT ?",
            [expression, *params, k],
        ).fetchall()
        # bm25() is lower-is-better; negate so larger means more relevant.
        return [
            _to_ranked(row, rank=i + 1, score=-float(row["score"]), route="lexical")
            for i, row in enumerate(rows)
        ]

    def get_document(self, document_id: str) -> Document | None:
        row = self._conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        if row is None:
            return None
        return Document(
            id=row["id"],
            source=row["source"],
            content_hash=row["content_hash"],
            title=row["title"],
            mime=row["mime"],
            owner_id=row["owner_id"],
        )

    def get_chunks(self, document_id: str) -> list[Chunk]:
        rows = self._conn.execute(
            "SELECT * FROM chunks WHERE document_id = ? ORDER BY ordinal", (document_id,)
        ).fetchall()
        return [
            Chunk(
                id=row["id"],
                document_id=row["document_id"],
                text=row["text"],
                span=(row["span_start"], row["span_end"]),
                embedding=json.loads(row["embedding"]),
                embedding_model=row["embedding_model"],
                content_id=row["content_id"],
                lang=row["lang"],
            )
            for row in rows
        ]

    def document_count(self) -> int:
        return int(self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0])

    def chunk_count(self) -> int:
        return int(self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0])


_CHUNK_COLUMNS = (
    "c.id AS chunk_id, c.document_id, c.text, c.span_start, c.span_end, "
    "d.source, d.content_hash, d.title"
)


def _filter_clause(filters: dict[str, Any] | None) -> tuple[str, list[Any]]:
    if not filters:
        return "", []
    clauses: list[str] = []
    params: list[Any] = []
    for key, value in filters.items():
        column = _FILTER_COLUMNS.get(key)
        if column is None:
            raise ValueError(f"Unsupported retrieval filter: {key}")
        if value is None:
            continue
        clauses.append(f" AND {column} = ?")
        params.append(value)
    return "".join(clauses), params


def _match_expression(text: str) -> str:
    terms = dict.fromkeys(token.lower() for token in _WORD.findall(text))
    return " OR ".join(f'"{term}"' for term in terms)


def _to_ranked(row: sqlite3.Row, *, rank: int, score: float, route: str) -> RankedChunk:
    return RankedChunk(
        chunk_id=row["chunk_id"],
        document_id=row["document_id"],
        text=row["text"],
        span=(row["span_start"], row["span_end"]),
        rank=rank,
        score=score,
        route=route,
        provenance={
            "source": row["source"],
            "content_hash": row["content_hash"],
            "title": row["title"],
            "route": route,
        },
    )


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
