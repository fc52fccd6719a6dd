"""Structured parsing of model output with an explicit raw-text fallback."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from research_rag.types import CETOutput

T = TypeVar("T")

_FENCED = re.compile(r"```(?:json)?\s*(.*?)```", flags=re.DOTALL | re.IGNORECASE)
_CET_HEADER = re.compile(
    r"^(claims|evidence|tests)\b\s*(?:\([^)]*\))?\s*[:：]?\s*(.*)$", flags=re.IGNORECASE
)
_HEADING = re.compile(r"^\s*(?:#{1,6}\s+(?P<hash>.+?)|\*\*(?P<bold>[^*]+?)\*\*\s*:?)\s*$")
_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")


@dataclass(frozen=True, slots=True)
class Parsed(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class RawText:
    text: str


class RefinedReply(BaseModel):
    """Shape the refine stage is asked to return."""

    model_config = ConfigDict(extra="ignore")

    reply: str = Field(min_length=1)
    claims: list[str] = Field(default_factory=list)
    evidence: list[str] = Field(default_factory=list)
    tests: list[str] = Field(default_factory=list)

    @field_validator("claims", "evidence", "tests", mode="before")
    @classmethod
    def _stringify_items(cls, value: Any) -> list[str]:
        # Only `reply` decides whether the refine output is usable.
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, list):
            return []
        return [item if isinstance(item, str) else json.dumps(item) for item in value]


def extract_json_object(text: str) -> Any | None:
    """Best-effort JSON extraction: whole text, fenced block, then outer braces."""

    candidates = [text.strip()]
    candidates.extend(match.strip() for match in _FENCED.findall(text))
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        if not candidate:
            continue
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    return None


def parse_refined(text: str) -> Parsed[RefinedReply] | RawText:
    payload = extract_json_object(text)
    if not isinstance(payload, dict):
        return RawText(text)
    try:
        return Parsed(RefinedReply.model_validate(payload))
    except ValidationError:
        return RawText(text)


def parse_cet(text: str) -> CETOutput:
    """Scrape Claims/Evidence/Tests items and other named sections from text."""

    lists: dict[str, list[str]] = {"claims": [], "evidence": [], "tests": []}
    sections: dict[str, list[str]] = {}
    current: str | None = None

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        header = _match_cet_header(line)
        if header is not None:
            current, rest = header
            if rest:
                lists[current].append(rest)
            continue

        heading = _HEADING.match(line)
        if heading:
            current = (heading.group("hash") or heading.group("bold") or "").strip()
            sections.setdefault(current, [])
            continue

        item = _BULLET.sub("", line).strip()
        if current in lists:
            lists[current].append(item)
        elif current is not None:
            sections[current].append(item)

    return CETOutput(
        claims=lists["claims"],
        evidence=lists["evidence"],
        tests=lists["tests"],
        sections={name: "\n".join(body) for name, body in sections.items()} or None,
    )


def _match_cet_header(line: str) -> tuple[str, str] | None:
    marked = line.startswith(("#", "*"))
    stripped = _BULLET.sub("", line).lstrip("#* ").replace("**", "")
    match = _CET_HEADER.match(stripped)
    if not match:
        return None
    rest = match.group(2).strip()
    has_colon = ":" in stripped[: match.start(2)] or "：" in stripped[: match.start(2)]
    if not (marked or has_colon or not rest):
        return None
    return match.group(1).lower(), rest
