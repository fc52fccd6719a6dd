"""Telemetry events, cost accounting, and budget comparison."""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from research_rag.types import Budget

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)

telemetry_logger = logging.getLogger("research_rag.telemetry")

EventKind = Literal["plan", "route", "model", "tool", "govern", "output", "error"]


def emit(kind: EventKind, **detail: Any) -> None:
    """Log one telemetry event as a single JSON line."""
    event = {"ts": datetime.now(timezone.utc).isoformat(), "kind": kind, "detail": detail}
    telemetry_logger.info(json.dumps(event, ensure_ascii=False, default=str))


@dataclass(slots=True)
class BudgetReport:
    """Expected-vs-actual comparison; advisory, never enforced."""

    expected_latency_ms: int
    actual_latency_ms: float
    expected_usd: float
    actual_usd: float

    @property
    def latency_over(self) -> bool:
        return self.actual_latency_ms > self.expected_latency_ms

    @property
    def cost_over(self) -> bool:
        return self.actual_usd > self.expected_usd

    def as_dict(self) -> dict[str, Any]:
        return {
            "expected_latency_ms": self.expected_latency_ms,
            "actual_latency_ms": self.actual_latency_ms,
            "expected_usd": self.expected_usd,
            "actual_usd": self.actual_usd,
            "latency_over": self.latency_over,
            "cost_over": self.cost_over,
        }


def compare_budget(budget: Budget, actual_latency_ms: float, actual_usd: float) -> BudgetReport:
    return BudgetReport(
        expected_latency_ms=budget.latency_ms,
        actual_latency_ms=actual_latency_ms,
        expected_usd=budget.usd,
        actual_usd=actual_usd,
    )


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    prompt: str
    reply: str
    task_type: str
    model: str
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    latency_ms: float
    budget_report: BudgetReport


@dataclass(slots=True)
class CostModel:
    """Simple token pricing model (USD per 1K tokens)."""

    input_per_1k: float = 0.0005
    output_per_1k: float = 0.0015

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens / 1000.0) * self.input_per_1k + (
            output_tokens / 1000.0
        ) * self.output_per_1k


class TraceStore:
    """In-memory trace storage for API-level observability."""

    def __init__(self, *, cost_model: CostModel | None = None) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._cost_model = cost_model or CostModel()

    def create_record(
        self,
        *,
        prompt: str,
        reply: str,
        task_type: str,
        model: str,
        budget: Budget,
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
    ) -> TraceRecord:
        cost = self._cost_model.estimate_cost(input_tokens, output_tokens)
        record = TraceRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            prompt=prompt,
            reply=reply,
            task_type=task_type,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=cost,
            latency_ms=latency_ms,
            budget_report=compare_budget(budget, latency_ms, cost),
        )
        self._records[record.trace_id] = record
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate request, latency, cost and budget-overrun metrics."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "total_input_tokens": 0,
                "total_output_tokens": 0,
                "total_estimated_cost_usd": 0.0,
                "latency_budget_overruns": 0,
                "cost_budget_overruns": 0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        return {
            "total_requests": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "total_input_tokens": sum(record.input_tokens for record in records),
            "total_output_tokens": sum(record.output_tokens for record in records),
            "total_estimated_cost_usd": sum(record.estimated_cost_usd for record in records),
            "latency_budget_overruns": sum(
                1 for record in records if record.budget_report.latency_over
            ),
            "cost_budget_overruns": sum(1 for record in records if record.budget_report.cost_over),
        }


class Timer:
    """Simple context timer used by the orchestrator."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
