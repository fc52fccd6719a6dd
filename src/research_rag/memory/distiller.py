"""Heuristic fact and entity extraction over a session's history."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from research_rag.memory.store import MemoryStore

HISTORY_WINDOW = 500
MAX_FACTS = 50
MAX_ENTITIES = 100

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_FACT_PATTERN = re.compile(
    r"(therefore|we (find|show|observe)|evidence|result|supports|thus)", re.IGNORECASE
)
_ENTITY_PATTERN = re.compile(
    r"[A-Z][a-zA-Z]{2,}(?:\s+[A-Z][a-zA-Z]{2,}){0,2}"
    r"|[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]+"
)


@dataclass(slots=True)
class DistilledContext:
    facts: list[str] = field(default_factory=list)
    entities: list[str] = field(default_factory=list)

    def as_header(self) -> str:
        """Render as a prompt header; empty when nothing was distilled."""
        parts: list[str] = []
        if self.facts:
            parts.append("Known facts:\n" + "\n".join(f"- {fact}" for fact in self.facts))
        if self.entities:
            parts.append("Entities: " + ", ".join(self.entities))
        return "\n\n".join(parts)


def _unique(items: list[str], limit: int) -> list[str]:
    seen: dict[str, None] = {}
    for item in items:
        if item not in seen:
            seen[item] = None
            if len(seen) >= limit:
                break
    return list(seen)


def distill_text(text: str) -> DistilledContext:
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]
    facts = [s for s in sentences if _FACT_PATTERN.search(s)][:MAX_FACTS]
    entities = _unique(_ENTITY_PATTERN.findall(text), MAX_ENTITIES)
    return DistilledContext(facts=facts, entities=entities)


def extract_distilled(memory: MemoryStore, session_id: str) -> DistilledContext:
    """Distill the responses of the newest entries of `session_id`."""
    entries = memory.session_entries(session_id, limit=HISTORY_WINDOW)
    corpus = "\n".join(entry.response for entry in entries)
    return distill_text(corpus)
