"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

T = TypeVar("T")

TaskType = Literal["transform", "reason", "generate", "retrieve", "compute"]
ModelName = Literal["mistral", "mixtral", "llama", "qwen", "api"]
Friction = Literal["policy", "vague", "scope", "evidence", "schema"]
Transform = Literal[
    "advice→research",
    "directive→options",
    "claim→evidence",
    "ask→tests",
    "nsfw→consent",
]
Domain = Literal["legal", "medical", "code", "general"]
Span = tuple[int, int]


class ResearchRagError(RuntimeError):
    """Base error for failures surfaced to callers."""


class IngestError(ResearchRagError):
    """Raised when a document could not be ingested atomically."""


class EmbeddingError(ResearchRagError):
    """Raised when the embedding service fails or returns malformed vectors."""


@dataclass(slots=True)
class Document:
    """A source document; identity is its content hash."""

    id: str
    source: str
    content_hash: str
    title: str | None = None
    mime: str | None = None
    owner_id: str | None = None


@dataclass(slots=True)
class TextChunk:
    """A chunker span before embedding."""

    id: str
    text: str
    span: Span


@dataclass(slots=True)
class Chunk:
    """A persisted, embedded span of a document."""

    id: str
    document_id: str
    text: str
    span: Span
    embedding: list[float]
    embedding_model: str
    content_id: str
    lang: str | None = None


@dataclass(slots=True)
class RankedChunk:
    """One entry of a single ranker's ordered result list."""

    chunk_id: str
    document_id: str
    text: str
    span: Span
    rank: int
    score: float
    route: str
    provenance: dict[str, Any]


@dataclass(slots=True)
class Passage:
    """A fused retrieval result with provenance. Never persisted."""

    chunk_id: str
    document_id: str
    text: str
    span: Span
    fused_score: float
    provenance: dict[str, Any]


@dataclass(slots=True)
class Task:
    id: str
    type: TaskType
    input: dict[str, Any]


@dataclass(slots=True)
class Plan:
    tasks: list[Task]
    goal: str


@dataclass(slots=True)
class Budget:
    """Advisory latency/cost expectation for one model call."""

    latency_ms: int
    usd: float


@dataclass(slots=True)
class RouterDecision:
    model: ModelName
    budget: Budget


@dataclass(slots=True)
class TunnelerOutput:
    transformed: str
    transform: Transform
    friction: list[Friction]
    rationale: str
    require_citations: int


@dataclass(slots=True)
class CETOutput:
    """Claims/Evidence/Tests contract a governed reply must satisfy."""

    claims: list[str] = field(default_factory=list)
    evidence: list[str] = field(default_factory=list)
    tests: list[str] = field(default_factory=list)
    sections: dict[str, str] | None = None

    @property
    def ok(self) -> bool:
        return bool(self.claims and self.evidence and self.tests)


@dataclass(slots=True)
class Job(Generic[T]):
    """A queued unit of work; `id` is the caller's idempotency key."""

    id: str
    payload: T
    attempts: int = 0


@dataclass(slots=True)
class ArtifactRef:
    id: str
    content_hash: str
    type: str
    path: str
    lineage: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CandidateAnswer:
    model: str
    response: str
    error: str | None = None


@dataclass(slots=True)
class MemoryEntry:
    """One append-only session log record."""

    id: str
    timestamp: str
    user_id: str
    session_id: str
    mode: str
    prompt: str
    response: str
    model: str | None = None
    candidates: list[dict[str, Any]] | None = None
    governance_notes: dict[str, Any] | None = None
