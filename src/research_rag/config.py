"""Configuration models for the research RAG system."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field


class ChunkingConfig(BaseModel):
    """Configures fixed-size character chunking."""

    max_chars: int = Field(default=1000, ge=1)


class RetrievalConfig(BaseModel):
    """Configures hybrid retrieval candidate depth and rank fusion."""

    k_vec: int = Field(default=50, ge=1)
    k_bm25: int = Field(default=50, ge=1)
    k_final: int = Field(default=12, ge=1)
    rrf_k: int = Field(default=60, ge=1)


class QueueConfig(BaseModel):
    """Configures job retry ceiling and default backoff."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_ms: int = Field(default=1000, ge=0)


class GovernanceConfig(BaseModel):
    """Configures the verify/critique/refine loop and candidate voting."""

    enabled: bool = True
    require_citations: int = Field(default=2, ge=0)
    vote_k: int = Field(default=3, ge=1)


class GenerationConfig(BaseModel):
    """Configures the external generation and embedding services."""

    base_url: str = "http://localhost:11434"
    timeout_seconds: float = Field(default=120.0, gt=0.0)
    embedding_model: str = "nomic-embed-text"
    model_tags: dict[str, str] = Field(
        default_factory=lambda: {
            "mistral": "mistral:latest",
            "mixtral": "mixtral:latest",
            "llama": "llama3.1:latest",
            "qwen": "qwen2.5:latest",
        }
    )
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"

    def resolve_tag(self, model: str) -> str:
        return self.model_tags.get(model, model)


class Settings(BaseModel):
    """Top-level settings aggregated from the component configs."""

    data_dir: Path = Path("data")
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    governance: GovernanceConfig = Field(default_factory=GovernanceConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        generation = GenerationConfig(
            base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            embedding_model=os.getenv("EMBEDDING_MODEL", "nomic-embed-text"),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        )
        return cls(
            data_dir=Path(os.getenv("RESEARCH_RAG_DATA_DIR", "data")),
            generation=generation,
        )
