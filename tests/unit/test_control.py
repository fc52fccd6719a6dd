import asyncio
from pathlib import Path

from research_rag.control.artifacts import LocalArtifactStore
from research_rag.control.queue import InMemoryQueue
from research_rag.types import Job


def test_artifact_save_is_idempotent(tmp_path: Path) -> None:
    store = LocalArtifactStore(tmp_path / "artifacts")

    first = store.save("draft", "same bytes")
    second = store.save("draft", b"same bytes", lineage=["parent"])

    assert first.id == second.id
    assert first.path == second.path
    assert second.lineage == ["parent"]
    assert store.count() == 1
    assert store.load(first) == b"same bytes"


def test_artifact_different_bytes_get_different_ids(tmp_path: Path) -> None:
    store = LocalArtifactStore(tmp_path)

    a = store.save("verify", "one")
    b = store.save("verify", "two")

    assert a.id != b.id
    assert len(a.id) == 16
    assert a.content_hash.startswith(a.id)
    assert store.count() == 2


def test_queue_ignores_duplicate_keys() -> None:
    queue: InMemoryQueue[str] = InMemoryQueue()

    assert queue.enqueue("job-1", "payload") is True
    assert queue.enqueue("job-1", "other payload") is False
    assert len(queue) == 1

    job = queue.next()
    assert job == Job(id="job-1", payload="payload", attempts=0)
    assert queue.next() is None
    # consumed keys stay seen
    assert queue.enqueue("job-1", "payload") is False


def test_retry_reappends_copy_after_backoff() -> None:
    async def scenario() -> list[Job[str]]:
        queue: InMemoryQueue[str] = InMemoryQueue(max_attempts=3)
        job = Job(id="k", payload="p")
        assert queue.retry(job, backoff_ms=10) is True
        assert len(queue) == 0
        await asyncio.sleep(0.05)
        return queue.pending

    pending = asyncio.run(scenario())

    assert pending == [Job(id="k", payload="p", attempts=1)]


def test_retry_stops_at_ceiling() -> None:
    async def scenario() -> InMemoryQueue[str]:
        queue: InMemoryQueue[str] = InMemoryQueue(max_attempts=3)
        assert queue.retry(Job(id="k", payload="p", attempts=2), backoff_ms=0) is False
        await asyncio.sleep(0.01)
        return queue

    queue = asyncio.run(scenario())

    assert len(queue) == 0
    assert [job.id for job in queue.dead_letters] == ["k"]


def test_failing_handler_is_attempted_at_most_max_attempts_times() -> None:
    calls: list[str] = []

    async def handler(payload: str) -> None:
        calls.append(payload)
        raise RuntimeError("boom")

    async def scenario() -> InMemoryQueue[str]:
        queue: InMemoryQueue[str] = InMemoryQueue(max_attempts=3)
        queue.enqueue("k", "p")
        for _ in range(10):
            await queue.process_next(handler, backoff_ms=1)
            await asyncio.sleep(0.01)
        return queue

    queue = asyncio.run(scenario())

    assert calls == ["p", "p", "p"]
    assert len(queue) == 0
    assert len(queue.dead_letters) == 1


def test_process_next_reports_outcomes() -> None:
    async def ok(payload: str) -> None:
        return None

    async def scenario() -> tuple[bool | None, bool | None]:
        queue: InMemoryQueue[str] = InMemoryQueue()
        queue.enqueue("k", "p")
        return await queue.process_next(ok), await queue.process_next(ok)

    assert asyncio.run(scenario()) == (True, None)


def test_dead_letters_keep_only_the_newest_jobs() -> None:
    queue: InMemoryQueue[str] = InMemoryQueue(max_attempts=1, max_dead_letters=2)

    for key in ("a", "b", "c"):
        assert queue.retry(Job(id=key, payload="p")) is False

    assert [job.id for job in queue.dead_letters] == ["b", "c"]
    assert len(queue) == 0
