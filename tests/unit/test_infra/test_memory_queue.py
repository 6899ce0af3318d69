"""Unit tests for the in-process durable queue."""

from __future__ import annotations

import asyncio

import pytest

from event_service.infra.queue import (
    BackoffKind,
    InMemoryQueue,
    JobOptions,
    JobState,
    QueueJob,
    RetryPolicy,
)

IMMEDIATE = RetryPolicy(max_attempts=3, backoff=BackoffKind.FIXED, base_delay_ms=0)


def options(job_id: str, **kwargs) -> JobOptions:
    kwargs.setdefault("retry", IMMEDIATE)
    return JobOptions(job_id=job_id, **kwargs)


async def run_until_idle(queue: InMemoryQueue) -> None:
    await asyncio.wait_for(queue.join(), timeout=2)


@pytest.mark.unit
class TestEnqueue:
    """Producer-side behaviour."""

    @pytest.mark.asyncio
    async def test_duplicate_job_id_is_ignored(self):
        queue = InMemoryQueue("test")

        first = await queue.enqueue("a", {"n": 1}, options("job-1"))
        second = await queue.enqueue("a", {"n": 2}, options("job-1"))

        assert second is first
        assert (await queue.get_counts()).waiting == 1

    @pytest.mark.asyncio
    async def test_delayed_job_counts_as_delayed(self):
        queue = InMemoryQueue("test")

        job = await queue.enqueue("a", {}, options("job-1", delay_ms=60_000))

        assert job.state is JobState.DELAYED
        counts = await queue.get_counts()
        assert counts.delayed == 1
        assert counts.waiting == 0
        await queue.stop()

    @pytest.mark.asyncio
    async def test_drain_removes_pending_jobs(self):
        queue = InMemoryQueue("test")
        await queue.enqueue("a", {}, options("job-1"))
        await queue.enqueue("a", {}, options("job-2", delay_ms=60_000))

        await queue.drain()

        counts = await queue.get_counts()
        assert counts.waiting == 0
        assert counts.delayed == 0
        assert await queue.get_job("job-1") is None

    @pytest.mark.asyncio
    async def test_start_requires_handler(self):
        queue = InMemoryQueue("test")

        with pytest.raises(RuntimeError, match="No handler"):
            await queue.start()

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryQueue("test", concurrency=0)


@pytest.mark.unit
class TestProcessing:
    """Consumer-side behaviour."""

    @pytest.mark.asyncio
    async def test_jobs_served_by_priority_then_fifo(self):
        queue = InMemoryQueue("test")
        seen: list[str] = []

        async def handler(job: QueueJob) -> None:
            seen.append(job.id)

        queue.process(handler)
        await queue.enqueue("a", {}, options("low", priority=4))
        await queue.enqueue("a", {}, options("normal-1", priority=3))
        await queue.enqueue("a", {}, options("critical", priority=1))
        await queue.enqueue("a", {}, options("normal-2", priority=3))

        await queue.start()
        await run_until_idle(queue)
        await queue.stop()

        assert seen == ["critical", "normal-1", "normal-2", "low"]

    @pytest.mark.asyncio
    async def test_completed_job_keeps_return_value(self):
        queue = InMemoryQueue("test")

        async def handler(job: QueueJob) -> int:
            return job.payload["n"] * 2

        queue.process(handler)
        await queue.start()
        await queue.enqueue("a", {"n": 21}, options("job-1"))
        await run_until_idle(queue)
        await queue.stop()

        job = await queue.get_job("job-1")
        assert job is not None
        assert job.state is JobState.COMPLETED
        assert job.return_value == 42
        assert job.attempts_made == 1

    @pytest.mark.asyncio
    async def test_failed_job_retried_until_success(self):
        queue = InMemoryQueue("test")
        attempts: list[int] = []

        async def handler(job: QueueJob) -> str:
            attempts.append(job.attempts_made)
            if job.attempts_made < 3:
                raise ValueError("not yet")
            return "ok"

        queue.process(handler)
        await queue.start()
        await queue.enqueue("a", {}, options("job-1"))
        await run_until_idle(queue)
        await queue.stop()

        assert attempts == [1, 2, 3]
        assert (await queue.get_job("job-1")).state is JobState.COMPLETED

    @pytest.mark.asyncio
    async def test_failure_callback_runs_after_every_attempt(self):
        queue = InMemoryQueue("test")
        calls: list[tuple[int, bool]] = []

        async def handler(job: QueueJob) -> None:
            raise RuntimeError("boom")

        async def on_failed(job: QueueJob, exc: BaseException) -> None:
            calls.append((job.attempts_made, job.attempts_exhausted))

        queue.process(handler, on_failed=on_failed)
        await queue.start()
        await queue.enqueue("a", {}, options("job-1"))
        await run_until_idle(queue)
        await queue.stop()

        assert calls == [(1, False), (2, False), (3, True)]
        job = await queue.get_job("job-1")
        assert job.state is JobState.FAILED
        assert job.failed_reason == "boom"
        assert (await queue.get_counts()).failed == 1

    @pytest.mark.asyncio
    async def test_failure_callback_error_does_not_stop_retries(self):
        queue = InMemoryQueue("test")
        attempts = 0

        async def handler(job: QueueJob) -> None:
            nonlocal attempts
            attempts += 1
            raise RuntimeError("boom")

        async def on_failed(job: QueueJob, exc: BaseException) -> None:
            raise ValueError("callback broke")

        queue.process(handler, on_failed=on_failed)
        await queue.start()
        await queue.enqueue("a", {}, options("job-1"))
        await run_until_idle(queue)
        await queue.stop()

        assert attempts == 3

    @pytest.mark.asyncio
    async def test_retry_job_requeues_finished_job(self):
        queue = InMemoryQueue("test")
        fail = True

        async def handler(job: QueueJob) -> None:
            if fail:
                raise RuntimeError("boom")

        queue.process(handler)
        await queue.start()
        await queue.enqueue("a", {}, options("job-1", retry=RetryPolicy(max_attempts=1)))
        await run_until_idle(queue)
        assert (await queue.get_job("job-1")).state is JobState.FAILED

        fail = False
        assert await queue.retry_job("job-1") is True
        await run_until_idle(queue)
        await queue.stop()

        job = await queue.get_job("job-1")
        assert job.state is JobState.COMPLETED
        assert job.attempts_made == 1
        assert job.failed_reason is None

    @pytest.mark.asyncio
    async def test_retry_job_rejects_unknown_or_pending(self):
        queue = InMemoryQueue("test")
        await queue.enqueue("a", {}, options("job-1"))

        assert await queue.retry_job("missing") is False
        assert await queue.retry_job("job-1") is False

    @pytest.mark.asyncio
    async def test_paused_queue_holds_jobs(self):
        queue = InMemoryQueue("test")
        seen: list[str] = []

        async def handler(job: QueueJob) -> None:
            seen.append(job.id)

        queue.process(handler)
        await queue.start()
        await queue.pause()
        await queue.enqueue("a", {}, options("job-1"))
        await asyncio.sleep(0.05)

        assert seen == []
        assert (await queue.get_counts()).waiting == 1

        await queue.resume()
        await run_until_idle(queue)
        await queue.stop()
        assert seen == ["job-1"]

    @pytest.mark.asyncio
    async def test_delayed_job_promoted_after_delay(self):
        queue = InMemoryQueue("test")
        seen: list[str] = []

        async def handler(job: QueueJob) -> None:
            seen.append(job.id)

        queue.process(handler)
        await queue.start()
        await queue.enqueue("a", {}, options("job-1", delay_ms=20))
        await run_until_idle(queue)
        await queue.stop()

        assert seen == ["job-1"]

    @pytest.mark.asyncio
    async def test_keep_finished_bounds_history(self):
        queue = InMemoryQueue("test", keep_finished=2)

        async def handler(job: QueueJob) -> None:
            return None

        queue.process(handler)
        await queue.start()
        for index in range(4):
            await queue.enqueue("a", {}, options(f"job-{index}"))
        await run_until_idle(queue)
        await queue.stop()

        assert await queue.get_job("job-0") is None
        assert await queue.get_job("job-3") is not None

    @pytest.mark.asyncio
    async def test_stop_mid_job_hands_attempt_back(self):
        queue = InMemoryQueue("test")
        started = asyncio.Event()
        calls = []

        async def handler(job: QueueJob) -> None:
            calls.append(job.id)
            if len(calls) == 1:
                started.set()
                await asyncio.Event().wait()

        queue.process(handler)
        await queue.start()
        await queue.enqueue("a", {}, options("job-1"))
        await asyncio.wait_for(started.wait(), timeout=2)
        waiter = asyncio.create_task(queue.join())

        await queue.stop()

        job = await queue.get_job("job-1")
        assert job.state is JobState.WAITING
        assert job.attempts_made == 0
        counts = await queue.get_counts()
        assert counts.active == 0
        assert counts.waiting == 1
        assert not waiter.done()

        await queue.start()
        await asyncio.wait_for(waiter, timeout=2)
        await queue.stop()

        assert calls == ["job-1", "job-1"]
        assert job.state is JobState.COMPLETED
        assert job.attempts_made == 1
