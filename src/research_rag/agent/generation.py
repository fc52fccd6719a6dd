"""Generation service gateways (Ollama HTTP and LangChain chat models).

A failed call never raises: `generate` returns an embedded error string and
`stream` yields a single terminal fragment carrying it, so downstream stages
continue with degraded text.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GenerationFragment:
    response: str
    done: bool


def generation_error(model: str, exc: BaseException | str) -> str:
    return f"[generation error: {model}: {exc}]"


def is_generation_error(text: str) -> bool:
    return text.startswith("[generation error:")


class GenerationClient(ABC):
    """Generation service contract consumed by the orchestrator."""

    @abstractmethod
    async def generate(
        self, model: str, prompt: str, options: dict[str, Any] | None = None
    ) -> str:
        """Return the full completion text."""

    @abstractmethod
    def stream(
        self, model: str, prompt: str, options: dict[str, Any] | None = None
    ) -> AsyncIterator[GenerationFragment]:
        """Yield completion fragments until one with `done=True`."""


class OllamaGenerationClient(GenerationClient):
    """Talks to Ollama's `/api/generate`; logical model names map to tags."""

    def __init__(
        self,
        *,
        base_url: str = "http://localhost:11434",
        timeout_seconds: float = 120.0,
        model_tags: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.model_tags = model_tags or {}
        self._client = client

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            yield client

    def _payload(
        self, model: str, prompt: str, options: dict[str, Any] | None, *, stream: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model_tags.get(model, model),
            "prompt": prompt,
            "stream": stream,
        }
        if options:
            payload["options"] = options
        return payload

    async def generate(
        self, model: str, prompt: str, options: dict[str, Any] | None = None
    ) -> str:
        payload = self._payload(model, prompt, options, stream=False)
        try:
            async with self._session() as client:
                response = await client.post(f"{self.base_url}/api/generate", json=payload)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Generation with %s failed: %s", model, exc)
            return generation_error(model, exc)
        if not isinstance(body, dict):
            return generation_error(model, "malformed response body")
        return str(body.get("response") or "")

    async def stream(
        self, model: str, prompt: str, options: dict[str, Any] | None = None
    ) -> AsyncIterator[GenerationFragment]:
        payload = self._payload(model, prompt, options, stream=True)
        try:
            async with self._session() as client:
                async with client.stream(
                    "POST", f"{self.base_url}/api/generate", json=payload
                ) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        data = json.loads(line)
                        if not isinstance(data, dict):
                            logger.warning("Malformed stream line from %s: %r", model, line)
                            yield GenerationFragment(
                                response=generation_error(model, "malformed stream line"),
                                done=True,
                            )
                            return
                        fragment = GenerationFragment(
                            response=str(data.get("response") or ""),
                            done=bool(data.get("done")),
                        )
                        yield fragment
                        if fragment.done:
                            return
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Streaming generation with %s failed: %s", model, exc)
            yield GenerationFragment(response=generation_error(model, exc), done=True)
            return
        yield GenerationFragment(response="", done=True)


class LangChainGenerationClient(GenerationClient):
    """Adapts any LangChain chat model (e.g. `ChatOpenAI`) to the gateway.

    The wrapped model is fixed at construction, so the routed model name is
    only recorded in the error text.
    """

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    async def generate(
        self, model: str, prompt: str, options: dict[str, Any] | None = None
    ) -> str:
        del options
        try:
            message = await self.llm.ainvoke(prompt)
        except Exception as exc:  # provider SDKs raise heterogeneous error types
            logger.warning("LangChain generation for %s failed: %s", model, exc)
            return generation_error(model, exc)
        return message_text(message)

    async def stream(
        self, model: str, prompt: str, options: dict[str, Any] | None = None
    ) -> AsyncIterator[GenerationFragment]:
        del options
        try:
            async for chunk in self.llm.astream(prompt):
                yield GenerationFragment(response=message_text(chunk), done=False)
        except Exception as exc:  # provider SDKs raise heterogeneous error types
            logger.warning("LangChain streaming for %s failed: %s", model, exc)
            yield GenerationFragment(response=generation_error(model, exc), done=True)
            return
        yield GenerationFragment(response="", done=True)


def message_text(message: Any) -> str:
    """Flatten a LangChain message (or plain value) into text."""

    if isinstance(message, str):
        return message
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content)
