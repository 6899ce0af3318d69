"""In-process asyncio implementation of the durable queue port.

Used by the ``memory`` queue backend and by tests. Jobs are served in
priority order (lower value first, FIFO within a priority), delayed jobs are
promoted when their timer fires, and a failed job is rescheduled according to
its ``RetryPolicy`` until the attempt budget is spent.
"""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import UTC, datetime
import heapq
import itertools
import logging
from typing import Any

from .backoff import calculate_delay
from .base import (
    FailureCallback,
    JobHandler,
    JobOptions,
    JobState,
    QueueJob,
    QueueStats,
)

logger = logging.getLogger(__name__)

_PENDING_STATES = frozenset({JobState.WAITING, JobState.DELAYED})
_FINISHED_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})


class InMemoryQueue:
    """Priority job queue with delays, retries and job-id deduplication.

    Example:
        queue = InMemoryQueue("events", concurrency=4)
        queue.process(processor.process, on_failed=processor.handle_failure)
        await queue.start()
        await queue.enqueue("order.created", payload, JobOptions(job_id=event_id))
        await queue.join()
        await queue.stop()
    """

    def __init__(
        self,
        name: str,
        *,
        concurrency: int = 1,
        keep_finished: int = 1000,
        jitter: bool = False,
    ) -> None:
        """Initialize the queue.

        Args:
            name: Queue name used in logs.
            concurrency: Number of worker tasks started by ``start()``.
            keep_finished: Completed/failed jobs retained for lookups and
                deduplication; older ones are forgotten.
            jitter: Apply jitter to retry delays.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.name = name
        self._concurrency = concurrency
        self._keep_finished = keep_finished
        self._jitter = jitter

        self._jobs: dict[str, QueueJob] = {}
        self._ready: list[tuple[int, int, str]] = []
        self._sequence = itertools.count()
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._finished: deque[str] = deque()
        self._cond = asyncio.Condition()
        self._paused = False
        self._active = 0

        self._handler: JobHandler | None = None
        self._on_failed: FailureCallback | None = None
        self._workers: list[asyncio.Task[None]] = []

    # ──────────────────────────────────────────────────────────────
    # Producer side
    # ──────────────────────────────────────────────────────────────

    async def enqueue(
        self,
        job_name: str,
        payload: dict[str, Any],
        options: JobOptions,
    ) -> QueueJob:
        async with self._cond:
            existing = self._jobs.get(options.job_id)
            if existing is not None:
                logger.debug(
                    "Duplicate job id ignored",
                    extra={"queue": self.name, "job_id": options.job_id, "state": existing.state},
                )
                return existing

            job = QueueJob(id=options.job_id, name=job_name, payload=payload, options=options)
            self._jobs[job.id] = job
            if options.delay_ms > 0:
                self._schedule(job, options.delay_ms)
            else:
                self._push_ready(job)
            self._cond.notify_all()

        logger.debug(
            "Job enqueued",
            extra={
                "queue": self.name,
                "job_id": job.id,
                "job_name": job_name,
                "priority": options.priority,
                "delay_ms": options.delay_ms,
            },
        )
        return job

    async def pause(self) -> None:
        """Stop handing out jobs; active jobs run to completion."""
        async with self._cond:
            self._paused = True
        logger.info("Queue paused", extra={"queue": self.name})

    async def resume(self) -> None:
        async with self._cond:
            self._paused = False
            self._cond.notify_all()
        logger.info("Queue resumed", extra={"queue": self.name})

    async def drain(self) -> None:
        """Remove all waiting and delayed jobs."""
        async with self._cond:
            removed = 0
            for job_id, job in list(self._jobs.items()):
                if job.state in _PENDING_STATES:
                    timer = self._timers.pop(job_id, None)
                    if timer is not None:
                        timer.cancel()
                    del self._jobs[job_id]
                    removed += 1
            self._ready.clear()
            self._cond.notify_all()
        logger.info("Queue drained", extra={"queue": self.name, "removed": removed})

    async def get_counts(self) -> QueueStats:
        counts = dict.fromkeys(JobState, 0)
        for job in self._jobs.values():
            counts[job.state] += 1
        return QueueStats(
            waiting=counts[JobState.WAITING],
            active=counts[JobState.ACTIVE],
            completed=counts[JobState.COMPLETED],
            failed=counts[JobState.FAILED],
            delayed=counts[JobState.DELAYED],
        )

    async def get_job(self, job_id: str) -> QueueJob | None:
        return self._jobs.get(job_id)

    async def retry_job(self, job_id: str) -> bool:
        async with self._cond:
            job = self._jobs.get(job_id)
            if job is None or job.state not in _FINISHED_STATES:
                return False
            job.attempts_made = 0
            job.return_value = None
            job.failed_reason = None
            job.finished_at = None
            self._push_ready(job)
            self._cond.notify_all()
        logger.info("Failed job requeued", extra={"queue": self.name, "job_id": job_id})
        return True

    # ──────────────────────────────────────────────────────────────
    # Consumer side
    # ──────────────────────────────────────────────────────────────

    def process(self, handler: JobHandler, on_failed: FailureCallback | None = None) -> None:
        """Register the job handler and the optional failure callback.

        ``on_failed`` runs after every failed attempt, before the job is
        rescheduled; ``job.attempts_exhausted`` tells it whether this was the
        last one.
        """
        self._handler = handler
        self._on_failed = on_failed

    async def start(self) -> None:
        if self._handler is None:
            raise RuntimeError(f"No handler registered for queue '{self.name}'")
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(), name=f"{self.name}-worker-{index}")
            for index in range(self._concurrency)
        ]
        logger.info(
            "Queue workers started",
            extra={"queue": self.name, "concurrency": self._concurrency},
        )

    async def stop(self) -> None:
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        logger.info("Queue workers stopped", extra={"queue": self.name})

    async def join(self) -> None:
        """Wait until no job is waiting, delayed or active.

        Never returns while the queue is paused with waiting jobs.
        """
        async with self._cond:
            await self._cond.wait_for(self._is_idle)

    # ──────────────────────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────────────────────

    def _is_idle(self) -> bool:
        return self._active == 0 and not any(
            job.state in _PENDING_STATES for job in self._jobs.values()
        )

    def _can_take(self) -> bool:
        return not self._paused and bool(self._ready)

    def _push_ready(self, job: QueueJob) -> None:
        job.state = JobState.WAITING
        heapq.heappush(self._ready, (job.options.priority, next(self._sequence), job.id))

    def _schedule(self, job: QueueJob, delay_ms: int) -> None:
        job.state = JobState.DELAYED
        self._timers[job.id] = asyncio.create_task(self._promote_later(job.id, delay_ms))

    async def _promote_later(self, job_id: str, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        async with self._cond:
            self._timers.pop(job_id, None)
            job = self._jobs.get(job_id)
            if job is not None and job.state is JobState.DELAYED:
                self._push_ready(job)
                self._cond.notify_all()

    def _remember_finished(self, job: QueueJob) -> None:
        self._finished.append(job.id)
        while len(self._finished) > self._keep_finished:
            old_id = self._finished.popleft()
            old = self._jobs.get(old_id)
            if old is not None and old.state in _FINISHED_STATES:
                del self._jobs[old_id]

    async def _worker(self) -> None:
        while True:
            async with self._cond:
                await self._cond.wait_for(self._can_take)
                _, _, job_id = heapq.heappop(self._ready)
                job = self._jobs.get(job_id)
                if job is None or job.state is not JobState.WAITING:
                    continue
                job.state = JobState.ACTIVE
                job.attempts_made += 1
                self._active += 1
            await self._run(job)

    async def _run(self, job: QueueJob) -> None:
        assert self._handler is not None
        try:
            result = await self._handler(job)
        except asyncio.CancelledError:
            # Worker stopped mid-job: hand the attempt back
            async with self._cond:
                job.attempts_made -= 1
                self._active -= 1
                self._push_ready(job)
                self._cond.notify_all()
            raise
        except Exception as exc:
            await self._fail(job, exc)
            return

        async with self._cond:
            job.state = JobState.COMPLETED
            job.return_value = result
            job.finished_at = datetime.now(UTC)
            self._active -= 1
            self._remember_finished(job)
            self._cond.notify_all()

    async def _fail(self, job: QueueJob, exc: Exception) -> None:
        job.failed_reason = str(exc) or type(exc).__name__
        exhausted = job.attempts_exhausted

        logger.warning(
            "Job attempt failed",
            extra={
                "queue": self.name,
                "job_id": job.id,
                "job_name": job.name,
                "attempt": job.attempts_made,
                "max_attempts": job.max_attempts,
                "exhausted": exhausted,
                "error": job.failed_reason,
            },
        )

        if self._on_failed is not None:
            try:
                await self._on_failed(job, exc)
            except Exception:
                logger.exception(
                    "Failure callback raised",
                    extra={"queue": self.name, "job_id": job.id},
                )

        async with self._cond:
            self._active -= 1
            if exhausted:
                job.state = JobState.FAILED
                job.finished_at = datetime.now(UTC)
                self._remember_finished(job)
            else:
                delay_ms = calculate_delay(
                    job.options.retry, job.attempts_made, jitter=self._jitter
                )
                if delay_ms > 0:
                    self._schedule(job, delay_ms)
                else:
                    self._push_ready(job)
            self._cond.notify_all()


__all__ = ["InMemoryQueue"]
