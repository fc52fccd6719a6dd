"""In-memory idempotent job queue with bounded retry.

Dedup set, pending deque and timers belong to one queue instance and are only
safe under a single event loop. Multi-process deployments need a broker.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Generic, TypeVar

from research_rag.types import Job

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InMemoryQueue(Generic[T]):
    def __init__(self, max_attempts: int = 3, max_dead_letters: int = 1000) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self._pending: deque[Job[T]] = deque()
        self._seen: set[str] = set()
        self.dead_letters: deque[Job[T]] = deque(maxlen=max_dead_letters)

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> list[Job[T]]:
        return list(self._pending)

    def enqueue(self, idempotency_key: str, payload: T) -> bool:
        """Append a new job; returns False if the key was ever seen before."""
        if idempotency_key in self._seen:
            return False
        self._seen.add(idempotency_key)
        self._pending.append(Job(id=idempotency_key, payload=payload, attempts=0))
        return True

    def next(self) -> Job[T] | None:
        return self._pending.popleft() if self._pending else None

    def retry(self, job: Job[T], backoff_ms: int = 1000) -> bool:
        """Re-append a copy with attempts+1 after `backoff_ms`, below the ceiling.

        Returns False when the job is dropped instead. Must be called from a
        running event loop.
        """

        if job.attempts + 1 >= self.max_attempts:
            logger.warning("Dropping job %s after %d attempts", job.id, job.attempts + 1)
            self.dead_letters.append(job)
            return False

        retried = replace(job, attempts=job.attempts + 1)
        loop = asyncio.get_running_loop()
        loop.call_later(max(backoff_ms, 0) / 1000.0, self._pending.append, retried)
        return True

    async def process_next(
        self,
        handler: Callable[[T], Awaitable[object]],
        *,
        backoff_ms: int = 1000,
    ) -> bool | None:
        """Run one job through `handler`.

        Returns None when the queue is empty, True on success, False when the
        handler failed (the job is then retried or dropped).
        """

        job = self.next()
        if job is None:
            return None
        try:
            await handler(job.payload)
        except Exception as exc:
            logger.warning("Job %s failed on attempt %d: %s", job.id, job.attempts + 1, exc)
            self.retry(job, backoff_ms)
            return False
        return True
