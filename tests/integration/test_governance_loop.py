import asyncio
import json
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from research_rag.agent.generation import GenerationClient, GenerationFragment
from research_rag.control.artifacts import LocalArtifactStore
from research_rag.governance.loop import GovernanceLoop

DRAFT = "Deposits are returned eventually."


class StageClient(GenerationClient):
    def __init__(self, refined: str) -> None:
        self.refined = refined
        self.prompts: list[str] = []

    async def generate(self, model: str, prompt: str, options: dict[str, Any] | None = None) -> str:
        self.prompts.append(prompt)
        if prompt.startswith("You are a verifier"):
            return "No citations. No Tests section."
        if prompt.startswith("You are a critic"):
            return "Cite the statute and add tests."
        return self.refined

    async def stream(
        self, model: str, prompt: str, options: dict[str, Any] | None = None
    ) -> AsyncIterator[GenerationFragment]:
        yield GenerationFragment(response=await self.generate(model, prompt), done=True)


def test_structured_refine_replaces_draft_and_records_lineage(tmp_path: Path) -> None:
    refined = json.dumps(
        {
            "reply": "Claims: 21 days.\nEvidence: Civ. Code 1950.5\nTests: check the date.",
            "claims": ["Deposits are due within 21 days."],
            "evidence": ["Civ. Code 1950.5"],
            "tests": ["Was the deposit returned by day 21?"],
        }
    )
    client = StageClient(refined)
    artifacts = LocalArtifactStore(tmp_path)

    result = asyncio.run(GovernanceLoop(client, artifacts).run(DRAFT, "mixtral"))

    assert result.replaced is True
    assert result.reply.startswith("Claims: 21 days.")
    assert [stage.stage for stage in result.stages] == ["draft", "verify", "critique", "refine"]
    assert result.cet_validation.ok is True
    assert result.property_report.passed is True
    assert len(result.lineage) == 4
    assert artifacts.count() == 4

    verify_prompt, critique_prompt, refine_prompt = client.prompts
    assert DRAFT in verify_prompt
    assert "No citations. No Tests section." in critique_prompt
    assert "Cite the statute and add tests." in refine_prompt


def test_unstructured_refine_keeps_draft() -> None:
    result = asyncio.run(GovernanceLoop(StageClient("Here is a better answer.")).run(DRAFT, "mixtral"))

    assert result.replaced is False
    assert result.reply == DRAFT
    assert result.cet_validation.ok is False
    assert result.cet_validation.missing == ["claims", "evidence", "tests"]
    assert result.lineage == []
    assert result.notes()["replaced"] is False


def test_reply_only_json_is_scraped_for_cet_sections() -> None:
    refined = '```json\n{"reply": "Claims:\\n- a\\nEvidence:\\n- b\\nTests:\\n- c"}\n```'

    result = asyncio.run(GovernanceLoop(StageClient(refined)).run(DRAFT, "mixtral"))

    assert result.replaced is True
    assert result.cet.claims == ["a"]
    assert result.cet.evidence == ["b"]
    assert result.cet.tests == ["c"]
    assert result.notes()["cet"] == {"ok": True, "missing": []}


def test_malformed_cet_lists_do_not_block_reply_replacement() -> None:
    nulled = '{"reply": "Claims: x\\nEvidence: y\\nTests: z", "claims": null}'
    result = asyncio.run(GovernanceLoop(StageClient(nulled)).run(DRAFT, "mixtral"))

    assert result.replaced is True
    assert result.reply == "Claims: x\nEvidence: y\nTests: z"
    assert result.cet_validation.ok is True

    bare = asyncio.run(
        GovernanceLoop(StageClient('{"reply": "Final", "claims": "one claim"}')).run(DRAFT, "mixtral")
    )

    assert bare.replaced is True
    assert bare.reply == "Final"
    assert bare.cet.claims == ["one claim"]
