"""Request orchestrator: plan, route, tunnel, retrieve, generate, govern, persist."""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from research_rag.agent.generation import GenerationClient
from research_rag.agent.planner import plan_tasks
from research_rag.agent.router import route_model
from research_rag.agent.tunneler import (
    TunnelerInput,
    diagnose,
    generate_tunneled_variants,
    tunnel,
)
from research_rag.config import GovernanceConfig
from research_rag.control.artifacts import LocalArtifactStore
from research_rag.governance.judge import arbitrate
from research_rag.governance.loop import GovernanceLoop
from research_rag.memory.distiller import extract_distilled
from research_rag.memory.store import MemoryStore, SymbolEntry, mine_symbols
from research_rag.obs.tracing import Timer, TraceStore, emit, estimate_token_count
from research_rag.retrieval.retriever import HybridRetriever, RetrieveQuery
from research_rag.types import Domain, MemoryEntry, Passage

logger = logging.getLogger(__name__)

SUMMARY_CHARS = 500
MAX_SYMBOLS = 50


@dataclass(slots=True)
class QueryRequest:
    prompt: str
    user_id: str = "anonymous"
    session_id: str = "default"
    domain: Domain | None = None
    locale: str | None = None
    tunnel: bool = False
    use_retrieval: bool = False
    govern: bool | None = None
    candidates: list[str] = field(default_factory=list)
    k_final: int | None = None


def format_passages(passages: list[Passage]) -> str:
    return "\n\n".join(
        f"[{index}] ({passage.chunk_id}) {passage.text}"
        for index, passage in enumerate(passages, start=1)
    )


def build_prompt(
    body: str,
    *,
    header: str = "",
    summary: str = "",
    passages: list[Passage] | None = None,
) -> str:
    """Assemble context sections ahead of the request body."""
    sections: list[str] = []
    if header:
        sections.append(header)
    if summary:
        sections.append(f"Session summary:\n{summary}")
    if passages:
        sections.append(f"Sources:\n{format_passages(passages)}")
    sections.append(body)
    return "\n\n".join(sections)


def summarize_reply(reply: str, limit: int = SUMMARY_CHARS) -> str:
    return " ".join(reply.split())[:limit]


def merge_symbols(existing: list[SymbolEntry], mined: list[SymbolEntry]) -> list[SymbolEntry]:
    counts: dict[str, SymbolEntry] = {entry.pattern: entry for entry in existing}
    for entry in mined:
        current = counts.get(entry.pattern)
        if current is None:
            counts[entry.pattern] = SymbolEntry(entry.pattern, entry.occurrences)
        else:
            current.occurrences += entry.occurrences
    merged = sorted(counts.values(), key=lambda entry: entry.occurrences, reverse=True)
    return merged[:MAX_SYMBOLS]


class QueryOrchestrator:
    """Runs one request end to end against explicitly injected collaborators."""

    def __init__(
        self,
        *,
        client: GenerationClient,
        retriever: HybridRetriever,
        memory: MemoryStore,
        trace_store: TraceStore,
        artifacts: LocalArtifactStore | None = None,
        config: GovernanceConfig | None = None,
    ) -> None:
        self.client = client
        self.retriever = retriever
        self.memory = memory
        self.trace_store = trace_store
        self.artifacts = artifacts
        self.config = config or GovernanceConfig()

    async def invoke(self, request: QueryRequest) -> dict[str, Any]:
        """Answer one request and persist session memory and a trace record.

        Returns:
            A payload with the reply, task type, routed model and budget, the
            tunnel result and passages when used, governance notes or the vote,
            and trace id, latency and budget report.
        """

        try:
            with Timer() as timer:
                payload = await self._run(request)
        except Exception as exc:
            emit("error", session_id=request.session_id, error=str(exc))
            raise

        record = self.trace_store.create_record(
            prompt=request.prompt,
            reply=payload["reply"],
            task_type=payload["task_type"],
            model=payload["model"],
            budget=payload.pop("_budget"),
            input_tokens=estimate_token_count(payload.pop("_prompt")),
            output_tokens=estimate_token_count(payload["reply"]),
            latency_ms=timer.elapsed_ms,
        )
        payload["trace_id"] = record.trace_id
        payload["latency_ms"] = record.latency_ms
        payload["budget_report"] = record.budget_report.as_dict()
        emit(
            "output",
            trace_id=record.trace_id,
            latency_ms=round(record.latency_ms, 2),
            latency_over=record.budget_report.latency_over,
        )
        return payload

    async def _run(self, request: QueryRequest) -> dict[str, Any]:
        plan = plan_tasks(request.prompt)
        task = plan.tasks[0]
        emit("plan", task_id=task.id, task_type=task.type)

        decision = route_model(task.type, request.prompt)
        emit("route", model=decision.model, budget=asdict(decision.budget))

        body = request.prompt
        tunnel_payload: dict[str, Any] | None = None
        if request.tunnel or "policy" in diagnose(request.prompt):
            tunneled = tunnel(
                TunnelerInput(
                    text=request.prompt,
                    domain=request.domain,
                    locale=request.locale,
                    require_citations=self.config.require_citations,
                )
            )
            body = tunneled.transformed
            symbols = [entry.pattern for entry in self.memory.load_symbol_dictionary()]
            tunnel_payload = {
                **asdict(tunneled),
                "variants": generate_tunneled_variants(request.prompt, symbols),
            }

        passages: list[Passage] = []
        if task.type == "retrieve" or request.use_retrieval:
            result = await self.retriever.retrieve(
                RetrieveQuery(text=request.prompt, k_final=request.k_final)
            )
            passages = result.passages
            emit("tool", name="retrieve", passages=len(passages))

        distilled = extract_distilled(self.memory, request.session_id)
        prompt = build_prompt(
            body,
            header=distilled.as_header(),
            summary=self.memory.get_session_summary(request.session_id),
            passages=passages,
        )

        payload: dict[str, Any] = {
            "task_type": task.type,
            "model": decision.model,
            "budget": asdict(decision.budget),
            "tunnel": tunnel_payload,
            "passages": [asdict(passage) for passage in passages],
            "governance": None,
            "vote": None,
        }

        candidates: list[dict[str, Any]] | None = None
        governance_notes: dict[str, Any] | None = None
        if request.candidates:
            arbitration = await arbitrate(
                self.client, prompt, request.candidates, k=self.config.vote_k
            )
            reply = arbitration.vote.winner
            candidates = [asdict(candidate) for candidate in arbitration.candidates]
            payload["vote"] = {"tally": arbitration.vote.tally, "candidates": candidates}
            mode = "arbitrate"
        else:
            reply = await self.client.generate(decision.model, prompt)
            emit("model", model=decision.model, chars=len(reply))
            govern = self.config.enabled if request.govern is None else request.govern
            if govern:
                governed = await GovernanceLoop(self.client, self.artifacts).run(
                    reply, decision.model
                )
                reply = governed.reply
                governance_notes = governed.notes()
                payload["governance"] = governance_notes
                mode = "governed"
            else:
                mode = "direct"

        self._persist(request, reply, decision.model, mode, candidates, governance_notes)
        payload["reply"] = reply
        payload["_budget"] = decision.budget
        payload["_prompt"] = prompt
        return payload

    def _persist(
        self,
        request: QueryRequest,
        reply: str,
        model: str,
        mode: str,
        candidates: list[dict[str, Any]] | None,
        governance_notes: dict[str, Any] | None,
    ) -> None:
        entry = MemoryEntry(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            user_id=request.user_id,
            session_id=request.session_id,
            mode=mode,
            prompt=request.prompt,
            response=reply,
            model=model,
            candidates=candidates,
            governance_notes=governance_notes,
        )
        self.memory.save_entry(entry)
        self.memory.set_session_summary(request.session_id, summarize_reply(reply))

        mined = mine_symbols(f"{request.prompt}\n{reply}")
        if mined:
            self.memory.save_symbol_dictionary(
                merge_symbols(self.memory.load_symbol_dictionary(), mined)
            )
        logger.debug("Persisted %s entry %s for session %s", mode, entry.id, request.session_id)
