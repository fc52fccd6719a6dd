"""Rule-ordered task classification."""

from __future__ import annotations

import re

from research_rag.types import Plan, Task, TaskType

_TASK_RULES: tuple[tuple[TaskType, re.Pattern[str]], ...] = (
    ("transform", re.compile(r"\b(json|format|parse|extract|transform)\b")),
    ("compute", re.compile(r"\b(calculate|sum|product|compute|solve)\b")),
    ("retrieve", re.compile(r"\b(search|find|look up|cite|source|reference)\b")),
    ("generate", re.compile(r"\b(write|generate|draft|compose)\b")),
)


def infer_task_type(prompt: str) -> TaskType:
    lowered = prompt.lower()
    for task_type, pattern in _TASK_RULES:
        if pattern.search(lowered):
            return task_type
    return "reason"


def plan_tasks(prompt: str) -> Plan:
    """Classify a request into exactly one task; first matching rule wins."""
    task = Task(id="t1", type=infer_task_type(prompt), input={"prompt": prompt})
    return Plan(tasks=[task], goal=prompt)
