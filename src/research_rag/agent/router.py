"""Task-type to model routing with advisory budgets."""

from __future__ import annotations

import re

from research_rag.types import Budget, ModelName, RouterDecision, TaskType

# Hiragana/katakana, CJK extension A, CJK unified, CJK compatibility ideographs.
CJK_PATTERN = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")

_CJK_ROUTE: tuple[ModelName, Budget] = ("qwen", Budget(latency_ms=2000, usd=0.001))

_TASK_ROUTES: dict[TaskType, tuple[ModelName, Budget]] = {
    "transform": ("mistral", Budget(latency_ms=1000, usd=0.0005)),
    "reason": ("mixtral", Budget(latency_ms=3500, usd=0.002)),
    "compute": ("mistral", Budget(latency_ms=800, usd=0.0005)),
    "retrieve": ("mixtral", Budget(latency_ms=3000, usd=0.0015)),
    "generate": ("llama", Budget(latency_ms=2500, usd=0.001)),
}


def route_model(task_type: TaskType, text: str) -> RouterDecision:
    """Pick a model and budget; CJK script overrides the task table."""

    if CJK_PATTERN.search(text):
        model, budget = _CJK_ROUTE
    else:
        model, budget = _TASK_ROUTES.get(task_type, _TASK_ROUTES["generate"])
    return RouterDecision(
        model=model,
        budget=Budget(latency_ms=budget.latency_ms, usd=budget.usd),
    )
