"""FastAPI entrypoint for ingest, retrieval, tunneling, governance and query endpoints."""

from __future__ import annotations

from dataclasses import asdict
from hashlib import sha256
from typing import Any, Literal

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from research_rag.agent.orchestrator import QueryRequest as OrchestratorRequest
from research_rag.agent.planner import plan_tasks
from research_rag.agent.router import route_model
from research_rag.agent.tunneler import TunnelerInput, generate_tunneled_variants, tunnel
from research_rag.context import AppContext, build_context
from research_rag.governance.loop import critique, refine, verify
from research_rag.governance.validators import run_property_tests, validate_cet
from research_rag.ingest.pipeline import IngestRequest as IndexerRequest
from research_rag.memory.distiller import extract_distilled
from research_rag.retrieval.retriever import RetrieveQuery
from research_rag.types import Domain, ResearchRagError, TaskType

DEFAULT_MODEL = "mixtral"


class IngestRequest(BaseModel):
    source: str = Field(min_length=1)
    raw_text: str = Field(min_length=1)
    title: str | None = None
    mime: str | None = None
    owner_id: str | None = None
    embedding_model: str | None = None
    lang: str | None = None
    idempotency_key: str | None = None

    def to_indexer(self) -> IndexerRequest:
        return IndexerRequest(**self.model_dump(exclude={"idempotency_key"}))


class RetrieveRequest(BaseModel):
    query: str = Field(min_length=1)
    k_vec: int | None = Field(default=None, ge=1)
    k_bm25: int | None = Field(default=None, ge=1)
    k_final: int | None = Field(default=None, ge=1)
    filters: dict[str, Any] | None = None


class PromptRequest(BaseModel):
    prompt: str = Field(min_length=1)


class RouteRequest(BaseModel):
    task_type: TaskType
    text: str = ""


class TunnelRequest(BaseModel):
    text: str = Field(min_length=1)
    role: Literal["user", "research"] = "user"
    domain: Domain | None = None
    locale: str | None = None
    require_citations: int | None = Field(default=None, ge=0)
    cet: dict[str, Any] = Field(default_factory=dict)


class GovernanceRequest(BaseModel):
    draft: str
    model: str = DEFAULT_MODEL
    verification: str = ""
    critique: str = ""


class CETRequest(BaseModel):
    claims: list[str] = Field(default_factory=list)
    evidence: list[str] = Field(default_factory=list)
    tests: list[str] = Field(default_factory=list)


class TextRequest(BaseModel):
    text: str


class SummaryRequest(BaseModel):
    summary: str


class QueryRequest(BaseModel):
    prompt: str = Field(min_length=1)
    user_id: str = "anonymous"
    session_id: str = "default"
    domain: Domain | None = None
    locale: str | None = None
    tunnel: bool = False
    use_retrieval: bool = False
    govern: bool | None = None
    candidates: list[str] = Field(default_factory=list)
    k_final: int | None = Field(default=None, ge=1)


def create_app(context: AppContext | None = None) -> FastAPI:
    """Build the HTTP app around one explicit context (built from env if absent)."""

    ctx = context or build_context()
    app = FastAPI(title="Research RAG", version="0.1.0")
    app.state.context = ctx

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "vector_available": ctx.store.vector_available,
            "lexical_available": ctx.store.lexical_available,
            "documents": ctx.store.document_count(),
            "chunks": ctx.store.chunk_count(),
            "pending_jobs": len(ctx.queue),
            "trace_count": len(ctx.trace_store.list_recent(limit=1000)),
        }

    @app.post("/ingest")
    async def ingest(request: IngestRequest) -> dict[str, Any]:
        try:
            result = await ctx.indexer.ingest_document(request.to_indexer())
        except (ResearchRagError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return asdict(result)

    @app.post("/ingest/jobs")
    def enqueue_ingest(request: IngestRequest) -> dict[str, Any]:
        key = request.idempotency_key or sha256(request.raw_text.encode("utf-8")).hexdigest()
        accepted = ctx.queue.enqueue(key, request.to_indexer())
        return {"job_id": key, "accepted": accepted, "pending": len(ctx.queue)}

    @app.post("/jobs/process")
    async def process_job() -> dict[str, Any]:
        outcome = await ctx.queue.process_next(
            ctx.indexer.ingest_document, backoff_ms=ctx.settings.queue.backoff_ms
        )
        status = {None: "empty", True: "done", False: "failed"}[outcome]
        return {
            "status": status,
            "pending": len(ctx.queue),
            "dead_letters": [job.id for job in ctx.queue.dead_letters],
        }

    @app.post("/retrieve")
    async def retrieve(request: RetrieveRequest) -> dict[str, Any]:
        result = await ctx.retriever.retrieve(
            RetrieveQuery(
                text=request.query,
                k_vec=request.k_vec,
                k_bm25=request.k_bm25,
                k_final=request.k_final,
                filters=request.filters,
            )
        )
        return {"items": [asdict(passage) for passage in result.passages]}

    @app.post("/plan")
    def plan(request: PromptRequest) -> dict[str, Any]:
        return asdict(plan_tasks(request.prompt))

    @app.post("/route")
    def route(request: RouteRequest) -> dict[str, Any]:
        return asdict(route_model(request.task_type, request.text))

    @app.post("/tunnel")
    def tunnel_request(request: TunnelRequest) -> dict[str, Any]:
        output = tunnel(TunnelerInput(**request.model_dump()))
        symbols = [entry.pattern for entry in ctx.memory.load_symbol_dictionary()]
        return {**asdict(output), "variants": generate_tunneled_variants(request.text, symbols)}

    @app.post("/governance/verify")
    async def governance_verify(request: GovernanceRequest) -> dict[str, str]:
        return {"verification": await verify(ctx.client, request.model, request.draft)}

    @app.post("/governance/critique")
    async def governance_critique(request: GovernanceRequest) -> dict[str, str]:
        text = await critique(ctx.client, request.model, request.draft, request.verification)
        return {"critique": text}

    @app.post("/governance/refine")
    async def governance_refine(request: GovernanceRequest) -> dict[str, str]:
        text = await refine(
            ctx.client, request.model, request.draft, request.verification, request.critique
        )
        return {"refined": text}

    @app.post("/validate/cet")
    def cet(request: CETRequest) -> dict[str, Any]:
        return asdict(validate_cet(request.model_dump()))

    @app.post("/property-tests")
    def property_tests(request: TextRequest) -> dict[str, Any]:
        return asdict(run_property_tests(request.text))

    @app.get("/sessions/{session_id}/distilled")
    def distilled(session_id: str) -> dict[str, Any]:
        return asdict(extract_distilled(ctx.memory, session_id))

    @app.get("/sessions/{session_id}/summary")
    def get_summary(session_id: str) -> dict[str, str]:
        return {"summary": ctx.memory.get_session_summary(session_id)}

    @app.put("/sessions/{session_id}/summary")
    def put_summary(session_id: str, request: SummaryRequest) -> dict[str, str]:
        ctx.memory.set_session_summary(session_id, request.summary)
        return {"summary": request.summary}

    @app.post("/query")
    async def query(request: QueryRequest) -> dict[str, Any]:
        try:
            return await ctx.orchestrator.invoke(OrchestratorRequest(**request.model_dump()))
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        records = [asdict(record) for record in ctx.trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = ctx.trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return ctx.trace_store.summary()

    return app


def __getattr__(name: str) -> Any:
    # `uvicorn research_rag.api.main:app` builds the env-configured app on first access.
    if name == "app":
        globals()["app"] = create_app()
        return globals()["app"]
    raise AttributeError(name)
