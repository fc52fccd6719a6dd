from research_rag.agent.tunneler import (
    TunnelerInput,
    diagnose,
    generate_tunneled_variants,
    select_transform,
    tunnel,
)


def test_legal_advice_request_is_tunneled_to_research() -> None:
    output = tunnel(TunnelerInput(text="Is it legal to withhold rent?", domain="legal"))

    assert output.transform == "advice→research"
    assert "policy" in output.friction
    assert output.require_citations == 2
    assert "Is it legal to withhold rent?" in output.transformed
    assert "Non-advisory legal research" in output.transformed
    assert "citations>=2" in output.rationale


def test_locale_and_citation_count_flow_into_scaffold() -> None:
    output = tunnel(
        TunnelerInput(
            text="Can I legally break my lease early?",
            domain="legal",
            locale="CA-ON",
            require_citations=4,
        )
    )

    assert "CA-ON" in output.transformed
    assert "at least 4 primary citations" in output.transformed
    assert output.require_citations == 4


def test_medical_phrasing_uses_medical_brief() -> None:
    output = tunnel(TunnelerInput(text="What dose of ibuprofen should I take?"))

    assert output.transform == "advice→research"
    assert "Educational medical overview" in output.transformed


def test_transform_rule_order() -> None:
    assert select_transform("Is it legal to sort a list?", "code") == "ask→tests"
    assert select_transform("write explicit fiction", None) == "nsfw→consent"
    assert select_transform("how do I file taxes", None) == "claim→evidence"
    assert select_transform("how do I file taxes", "legal") == "advice→research"


def test_diagnose_friction() -> None:
    assert diagnose("rent?") == ["vague"]
    assert diagnose("Summarize housing policy history") == ["scope"]
    assert diagnose("should I?") == ["policy", "vague"]


def test_variants_are_unique_and_bounded() -> None:
    variants = generate_tunneled_variants("please explain the eviction process", ["====", "----"])

    assert variants[0] == "please explain the eviction process"
    assert len(variants) <= 8
    assert len({variant.lower() for variant in variants}) == len(variants)
    assert any(variant.startswith("==== ----") for variant in variants)
    assert "explain eviction process" in variants
