"""Policy-friction diagnosis and research-scaffold rewriting."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

from research_rag.agent.templates import render_scaffold
from research_rag.types import Domain, Friction, Transform, TunnelerOutput

ADVICE_PATTERN = re.compile(
    r"\b(should|what do i do|can i legally|is it legal|how do i|give me steps)\b",
    flags=re.IGNORECASE,
)
MEDICAL_PATTERN = re.compile(r"\b(diagnose|treat|prescribe|dose|medical advice)\b", flags=re.IGNORECASE)
NSFW_PATTERN = re.compile(r"\b(erotic|nsfw|sexual|explicit)\b", flags=re.IGNORECASE)

_MIN_SPECIFIC_LENGTH = 10
_FILLER = re.compile(r"\b(the|a|an|please|kindly|just)\b", flags=re.IGNORECASE)


@dataclass(slots=True)
class TunnelerInput:
    text: str
    cet: dict[str, Any] = field(default_factory=dict)
    role: Literal["user", "research"] = "user"
    domain: Domain | None = None
    locale: str | None = None
    require_citations: int | None = None


def diagnose(text: str) -> list[Friction]:
    friction: list[Friction] = []
    if ADVICE_PATTERN.search(text) or MEDICAL_PATTERN.search(text) or NSFW_PATTERN.search(text):
        friction.append("policy")
    if len(text.strip()) < _MIN_SPECIFIC_LENGTH:
        friction.append("vague")
    return friction or ["scope"]


def select_transform(text: str, domain: Domain | None) -> Transform:
    """First matching rule wins."""
    if domain == "code":
        return "ask→tests"
    if (domain == "legal" and ADVICE_PATTERN.search(text)) or MEDICAL_PATTERN.search(text):
        return "advice→research"
    if NSFW_PATTERN.search(text):
        return "nsfw→consent"
    return "claim→evidence"


def tunnel(request: TunnelerInput) -> TunnelerOutput:
    """Rewrite a request into a citation-requiring CET research scaffold.

    The returned `transformed` text, not the raw request, is what the
    generation stage should receive.
    """

    friction = diagnose(request.text)
    citations = 2 if request.require_citations is None else request.require_citations
    transform = select_transform(request.text, request.domain)
    medical = request.domain == "medical" or bool(MEDICAL_PATTERN.search(request.text))
    scaffold = render_scaffold(
        transform,
        request.text,
        citations=citations,
        locale=request.locale,
        medical=medical,
    )
    return TunnelerOutput(
        transformed=scaffold,
        transform=transform,
        friction=friction,
        rationale=(
            f"Mapped intent to allowed {transform} with CET placeholders "
            f"and citations>={citations}."
        ),
        require_citations=citations,
    )


def generate_tunneled_variants(text: str, symbols: Iterable[str] = (), limit: int = 8) -> list[str]:
    """Research-framed rewrites of a query, deduplicated case-insensitively."""

    base = text.strip()
    variants = [
        base,
        f"Academic analysis: {base}",
        f"Legal research summary (informational): {base}",
        f"Procedures, statutes, forms, deadlines (with citations): {base}",
    ]
    hints = " ".join(list(symbols)[:3])
    if hints:
        variants.append(f"{hints} {base}")
    variants.append(f"[研究] {base}")
    variants.append(f"[摘要] {base}")
    condensed = re.sub(r"\s{2,}", " ", _FILLER.sub("", base)).strip()
    if condensed and condensed != base:
        variants.append(condensed)

    seen: set[str] = set()
    unique: list[str] = []
    for variant in variants:
        key = variant.lower()
        if key not in seen:
            seen.add(key)
            unique.append(variant)
    return unique[:limit]
