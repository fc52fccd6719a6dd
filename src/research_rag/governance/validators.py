"""Property checks and CET structural validation.

Both report outcomes as data. Neither gates or rolls back a reply.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from research_rag.types import CETOutput


@dataclass(frozen=True, slots=True)
class PropertyTest:
    name: str
    check: Callable[[str], bool]


@dataclass(slots=True)
class PropertyReport:
    passed: bool
    failures: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CETValidation:
    ok: bool
    missing: list[str] = field(default_factory=list)


def _mentions(word: str) -> Callable[[str], bool]:
    pattern = re.compile(rf"\b{word}\b", flags=re.IGNORECASE)
    return lambda text: bool(pattern.search(text))


DEFAULT_PROPERTY_TESTS: tuple[PropertyTest, ...] = (
    PropertyTest("has_cet_claims", _mentions("Claims")),
    PropertyTest("has_cet_evidence", _mentions("Evidence")),
    PropertyTest("has_cet_tests", _mentions("Tests")),
)


def run_property_tests(
    text: str, tests: tuple[PropertyTest, ...] | list[PropertyTest] = DEFAULT_PROPERTY_TESTS
) -> PropertyReport:
    failures = [test.name for test in tests if not test.check(text)]
    return PropertyReport(passed=not failures, failures=failures)


def validate_cet(output: CETOutput | Mapping[str, Any]) -> CETValidation:
    """ok iff claims, evidence and tests are all non-empty."""

    if isinstance(output, CETOutput):
        fields = {"claims": output.claims, "evidence": output.evidence, "tests": output.tests}
    else:
        fields = {name: output.get(name) for name in ("claims", "evidence", "tests")}
    missing = [name for name, values in fields.items() if not values]
    return CETValidation(ok=not missing, missing=missing)
