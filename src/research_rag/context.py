"""Application context: every stateful collaborator, built once and injected."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from research_rag.agent.generation import (
    GenerationClient,
    LangChainGenerationClient,
    OllamaGenerationClient,
)
from research_rag.agent.orchestrator import QueryOrchestrator
from research_rag.config import Settings
from research_rag.control.artifacts import LocalArtifactStore
from research_rag.control.queue import InMemoryQueue
from research_rag.ingest.chunker import FixedSizeChunker
from research_rag.ingest.embedder import Embedder, HashingEmbedder, OllamaEmbedder
from research_rag.ingest.pipeline import Indexer, IngestRequest
from research_rag.memory.store import MemoryStore
from research_rag.obs.tracing import TraceStore
from research_rag.retrieval.fusion import FusionLayer
from research_rag.retrieval.retriever import HybridRetriever
from research_rag.retrieval.store import SQLiteStore

logger = logging.getLogger(__name__)


def create_llm(settings: Settings) -> Any:
    api_key = settings.generation.openai_api_key
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(model=settings.generation.openai_model, api_key=api_key, temperature=0)


def create_generation_client(settings: Settings) -> GenerationClient:
    llm = create_llm(settings)
    if llm is not None:
        return LangChainGenerationClient(llm)
    return OllamaGenerationClient(
        base_url=settings.generation.base_url,
        timeout_seconds=settings.generation.timeout_seconds,
        model_tags=settings.generation.model_tags,
    )


@dataclass(slots=True)
class AppContext:
    settings: Settings
    store: SQLiteStore
    embedder: Embedder
    indexer: Indexer
    retriever: HybridRetriever
    client: GenerationClient
    artifacts: LocalArtifactStore
    memory: MemoryStore
    queue: InMemoryQueue[IngestRequest]
    trace_store: TraceStore
    orchestrator: QueryOrchestrator

    def close(self) -> None:
        self.store.close()


def build_context(
    settings: Settings | None = None,
    *,
    client: GenerationClient | None = None,
    embedder: Embedder | None = None,
    offline: bool = False,
) -> AppContext:
    """Wire stores, gateways and the orchestrator under `settings.data_dir`.

    `offline=True` swaps the embedding service for the deterministic hashing
    embedder; explicit `client`/`embedder` arguments win over both.
    """

    settings = settings or Settings.from_env()
    data_dir = settings.data_dir
    data_dir.mkdir(parents=True, exist_ok=True)

    store = SQLiteStore(data_dir / "research_rag.db")
    if embedder is None:
        embedder = (
            HashingEmbedder()
            if offline
            else OllamaEmbedder(
                base_url=settings.generation.base_url,
                model=settings.generation.embedding_model,
                timeout_seconds=settings.generation.timeout_seconds,
            )
        )
    client = client or create_generation_client(settings)

    indexer = Indexer(FixedSizeChunker(settings.chunking), embedder, store)
    retriever = HybridRetriever(
        store, embedder, FusionLayer(settings.retrieval), settings.retrieval
    )
    artifacts = LocalArtifactStore(data_dir / "artifacts")
    memory = MemoryStore(data_dir)
    trace_store = TraceStore()
    orchestrator = QueryOrchestrator(
        client=client,
        retriever=retriever,
        memory=memory,
        trace_store=trace_store,
        artifacts=artifacts,
        config=settings.governance,
    )
    logger.info(
        "Context ready at %s (vector=%s, lexical=%s)",
        data_dir,
        store.vector_available,
        store.lexical_available,
    )
    return AppContext(
        settings=settings,
        store=store,
        embedder=embedder,
        indexer=indexer,
        retriever=retriever,
        client=client,
        artifacts=artifacts,
        memory=memory,
        queue=InMemoryQueue(max_attempts=settings.queue.max_attempts),
        trace_store=trace_store,
        orchestrator=orchestrator,
    )
