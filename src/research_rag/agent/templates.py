"""Research scaffold templates rendered by the tunneler."""

from __future__ import annotations

from langchain_core.prompts import PromptTemplate

from research_rag.types import Transform

LEGAL_BRIEF = PromptTemplate.from_template(
    """SYSTEM: Non-advisory legal research mode. Educational only.
TASK: Summarize applicable law in {locale} about: "{query}"
OUTPUT (CET):
- Claims: neutral overview, no directives
- Evidence: at least {citations} primary citations (statutes, regulations, cases)
- Tests: checklist of elements/standards plus jurisdictional notes
- Sections: Overview | Elements/Standards | Leading Authorities | Options & Risks (general) | Questions for Counsel | Sources"""
)

MEDICAL_BRIEF = PromptTemplate.from_template(
    """SYSTEM: Educational medical overview. Not a diagnosis.
TASK: Explain mechanisms and guidelines for: "{query}"
OUTPUT (CET):
- Claims: neutral statements
- Evidence: at least {citations} guidelines or systematic reviews
- Tests: red-flag list
- Sections: Sources"""
)

CONSENT_FRAME = PromptTemplate.from_template(
    """SYSTEM: Consent and wellbeing framework (non-erotic).
TASK: Reformulate "{query}" into boundaries, consent protocol and safety resources.
OUTPUT (CET):
- Claims
- Evidence: policy and consent standards
- Tests: checklist
- Sections: Sources"""
)

TESTS_FIRST = PromptTemplate.from_template(
    """SYSTEM: Property-test-first coding.
TASK: For "{query}", write a specification and unit/property tests, then a candidate solution.
OUTPUT (CET):
- Claims: the specification
- Evidence: trace of the candidate against the tests
- Tests: unit and property tests
- Sections: Spec | Tests | Implementation | Trace | Notes"""
)

CLAIM_EVIDENCE = PromptTemplate.from_template(
    """SYSTEM: Research synthesis.
TASK: Provide a neutral brief on "{query}" with at least {citations} citations.
OUTPUT (CET):
- Claims
- Evidence: at least {citations} citations
- Tests: consistency checks
- Sections: Sources"""
)


def render_scaffold(
    transform: Transform,
    query: str,
    *,
    citations: int = 2,
    locale: str | None = None,
    medical: bool = False,
) -> str:
    if transform == "advice→research":
        if medical:
            return MEDICAL_BRIEF.format(query=query, citations=citations)
        return LEGAL_BRIEF.format(query=query, citations=citations, locale=locale or "US")
    if transform == "ask→tests":
        return TESTS_FIRST.format(query=query)
    if transform == "nsfw→consent":
        return CONSENT_FRAME.format(query=query)
    return CLAIM_EVIDENCE.format(query=query, citations=citations)
