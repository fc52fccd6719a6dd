import pytest

from research_rag.agent.templates import render_scaffold
from research_rag.governance.loop import REFINE_PROMPT, VERIFY_PROMPT
from research_rag.governance.validators import run_property_tests


@pytest.mark.parametrize(
    ("transform", "medical"),
    [
        ("advice→research", False),
        ("advice→research", True),
        ("ask→tests", False),
        ("nsfw→consent", False),
        ("claim→evidence", False),
    ],
)
def test_every_scaffold_demands_claims_evidence_tests(transform: str, medical: bool) -> None:
    scaffold = render_scaffold(transform, "deposit deadlines", medical=medical)

    assert "deposit deadlines" in scaffold
    assert "OUTPUT (CET)" in scaffold
    assert run_property_tests(scaffold).passed is True


def test_legal_scaffold_defaults_locale_and_stays_non_advisory() -> None:
    scaffold = render_scaffold("advice→research", "eviction notice", citations=3)

    assert "applicable law in US" in scaffold
    assert "at least 3 primary citations" in scaffold
    assert "Educational only" in scaffold


def test_governance_prompts_keep_structure_constraints() -> None:
    assert "Claims/Evidence/Tests" in VERIFY_PROMPT.format(draft="d")
    refine = REFINE_PROMPT.format(draft="d", verification="v", critique="c")
    assert '{"reply":' in refine
    assert "JSON only" in refine
