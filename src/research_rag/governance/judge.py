"""Self-consistency voting and concurrent multi-candidate arbitration."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from research_rag.agent.generation import GenerationClient, is_generation_error
from research_rag.types import CandidateAnswer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Vote:
    winner: str
    tally: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class Arbitration:
    candidates: list[CandidateAnswer]
    vote: Vote


def self_consistency_vote(candidates: list[str], k: int = 3) -> Vote:
    """Most frequent string among the first `k`; ties keep the first seen."""

    tally: dict[str, int] = {}
    for candidate in candidates[:k]:
        tally[candidate] = tally.get(candidate, 0) + 1

    winner = candidates[0] if candidates else ""
    best = 0
    for candidate, count in tally.items():
        if count > best:
            best = count
            winner = candidate
    return Vote(winner=winner, tally=tally)


async def arbitrate(
    client: GenerationClient,
    prompt: str,
    models: list[str],
    *,
    k: int = 3,
) -> Arbitration:
    """Ask every model concurrently, then vote over the usable answers.

    Per-candidate failures, raised or returned as embedded error strings, are
    recorded on that candidate and excluded from the vote.
    """

    outcomes = await asyncio.gather(
        *(client.generate(model, prompt) for model in models),
        return_exceptions=True,
    )

    candidates: list[CandidateAnswer] = []
    for model, outcome in zip(models, outcomes, strict=True):
        if isinstance(outcome, Exception):
            logger.warning("Candidate %s failed: %s", model, outcome)
            candidates.append(CandidateAnswer(model=model, response="", error=str(outcome)))
        elif isinstance(outcome, BaseException):
            raise outcome
        elif is_generation_error(outcome):
            candidates.append(CandidateAnswer(model=model, response="", error=outcome))
        else:
            candidates.append(CandidateAnswer(model=model, response=outcome))

    usable = [candidate.response.strip() for candidate in candidates if candidate.error is None]
    return Arbitration(candidates=candidates, vote=self_consistency_vote(usable, k))
