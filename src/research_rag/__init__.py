"""Research RAG package."""

from .config import ChunkingConfig, GovernanceConfig, RetrievalConfig, Settings

__all__ = ["ChunkingConfig", "GovernanceConfig", "RetrievalConfig", "Settings"]
