"""Verify -> critique -> refine governance loop over a draft reply."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from langchain_core.prompts import PromptTemplate

from research_rag.agent.generation import GenerationClient
from research_rag.control.artifacts import LocalArtifactStore
from research_rag.governance.parsing import Parsed, parse_cet, parse_refined
from research_rag.governance.validators import (
    CETValidation,
    PropertyReport,
    run_property_tests,
    validate_cet,
)
from research_rag.obs.tracing import emit
from research_rag.types import CETOutput

logger = logging.getLogger(__name__)

VERIFY_PROMPT = PromptTemplate.from_template(
    """You are a verifier. Check the draft below for unsupported claims, missing
citations, and missing Claims/Evidence/Tests sections. List each problem on
its own line. Do not rewrite the draft.

DRAFT:
{draft}"""
)

CRITIQUE_PROMPT = PromptTemplate.from_template(
    """You are a critic. Using the verification notes, state concretely how the
draft must change to be accurate, cited, and structured as Claims, Evidence
and Tests.

DRAFT:
{draft}

VERIFICATION:
{verification}"""
)

REFINE_PROMPT = PromptTemplate.from_template(
    """Rewrite the draft so that it addresses every point of the critique.
Respond with JSON only, in this shape:
{{"reply": "<final answer with Claims, Evidence and Tests sections>",
  "claims": ["..."], "evidence": ["..."], "tests": ["..."]}}

DRAFT:
{draft}

VERIFICATION:
{verification}

CRITIQUE:
{critique}"""
)


async def verify(client: GenerationClient, model: str, draft: str) -> str:
    return await client.generate(model, VERIFY_PROMPT.format(draft=draft))


async def critique(client: GenerationClient, model: str, draft: str, verification: str) -> str:
    return await client.generate(
        model, CRITIQUE_PROMPT.format(draft=draft, verification=verification)
    )


async def refine(
    client: GenerationClient,
    model: str,
    draft: str,
    verification: str,
    critique_text: str,
) -> str:
    return await client.generate(
        model,
        REFINE_PROMPT.format(draft=draft, verification=verification, critique=critique_text),
    )


@dataclass(slots=True)
class StageOutput:
    stage: str
    text: str
    artifact_id: str | None = None


@dataclass(slots=True)
class GovernanceResult:
    reply: str
    replaced: bool
    stages: list[StageOutput]
    cet: CETOutput
    cet_validation: CETValidation
    property_report: PropertyReport
    lineage: list[str] = field(default_factory=list)

    def notes(self) -> dict[str, Any]:
        """Compact summary stored alongside the session memory entry."""
        return {
            "replaced": self.replaced,
            "lineage": list(self.lineage),
            "cet": asdict(self.cet_validation),
            "properties": asdict(self.property_report),
        }


class GovernanceLoop:
    """Drives a draft through three strictly sequential generation stages.

    Each stage's raw output seeds the next prompt. Only a refine output that
    parses into a structure with a `reply` string replaces the draft;
    anything else keeps the draft. Property tests and CET validation are run
    on the final reply and reported, not enforced.
    """

    def __init__(
        self,
        client: GenerationClient,
        artifacts: LocalArtifactStore | None = None,
    ) -> None:
        self.client = client
        self.artifacts = artifacts

    async def run(self, draft: str, model: str) -> GovernanceResult:
        lineage: list[str] = []
        stages = [self._record("draft", draft, lineage)]

        verification = await verify(self.client, model, draft)
        stages.append(self._record("verify", verification, lineage))

        critique_text = await critique(self.client, model, draft, verification)
        stages.append(self._record("critique", critique_text, lineage))

        refined = await refine(self.client, model, draft, verification, critique_text)
        stages.append(self._record("refine", refined, lineage))

        parsed = parse_refined(refined)
        if isinstance(parsed, Parsed):
            reply = parsed.value.reply
            cet = CETOutput(
                claims=parsed.value.claims,
                evidence=parsed.value.evidence,
                tests=parsed.value.tests,
            )
            if not (cet.claims or cet.evidence or cet.tests):
                cet = parse_cet(reply)
            replaced = True
        else:
            logger.info("Refine output was not structured; keeping the draft")
            reply = draft
            cet = parse_cet(draft)
            replaced = False

        result = GovernanceResult(
            reply=reply,
            replaced=replaced,
            stages=stages,
            cet=cet,
            cet_validation=validate_cet(cet),
            property_report=run_property_tests(reply),
            lineage=list(lineage),
        )
        emit(
            "govern",
            model=model,
            replaced=replaced,
            cet_ok=result.cet_validation.ok,
            cet_missing=result.cet_validation.missing,
            property_failures=result.property_report.failures,
        )
        return result

    def _record(self, stage: str, text: str, lineage: list[str]) -> StageOutput:
        if self.artifacts is None:
            return StageOutput(stage=stage, text=text)
        ref = self.artifacts.save(stage, text, lineage=lineage)
        lineage.append(ref.id)
        return StageOutput(stage=stage, text=text, artifact_id=ref.id)
