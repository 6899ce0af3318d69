"""Taskiq adapter for the durable queue port.

Jobs become taskiq messages: the job id is the task id, and the job name,
priority, delay and retry policy travel as labels. Retries and dead-lettering
are driven by ``RetryPolicyMiddleware`` on the worker side.
With ``RedisJobClaims`` attached, a job id is sent at most once per claim TTL.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

from event_service.core.exceptions import QueueOperationNotSupportedError
from event_service.infra.queue import JobOptions, JobState, QueueJob, QueueStats, RetryPolicy

if TYPE_CHECKING:
    from taskiq import AsyncBroker, TaskiqMessage

    from .claims import RedisJobClaims
    from .middleware import QueueStatsMiddleware

logger = logging.getLogger(__name__)

EVENT_TASK_NAME = "event_service.events.process"
WEBHOOK_TASK_NAME = "event_service.webhooks.deliver"

# RabbitMQ serves higher priorities first; EventPriority serves lower values first
MAX_BROKER_PRIORITY = 5

LABEL_JOB_NAME = "job_name"
LABEL_RETRY_POLICY = "retry_policy"
LABEL_RETRIES = "_retries"
LABEL_DELAY = "delay"
LABEL_PRIORITY = "priority"


def to_broker_priority(priority: int) -> int:
    """Map a job priority (1 = most urgent) onto a RabbitMQ priority."""
    return max(MAX_BROKER_PRIORITY - priority, 0)


def from_broker_priority(value: Any) -> int:
    return MAX_BROKER_PRIORITY - int(value)


def delay_seconds(delay_ms: int) -> int:
    return math.ceil(delay_ms / 1000)


def job_labels(job_name: str, options: JobOptions) -> dict[str, Any]:
    """Labels attached to the taskiq message of a job."""
    labels: dict[str, Any] = {
        LABEL_JOB_NAME: job_name,
        LABEL_PRIORITY: to_broker_priority(options.priority),
        LABEL_RETRY_POLICY: options.retry.model_dump_json(),
    }
    if options.delay_ms > 0:
        labels[LABEL_DELAY] = delay_seconds(options.delay_ms)
    return labels


def job_from_message(message: TaskiqMessage, payload: dict[str, Any]) -> QueueJob:
    """Rebuild the ``QueueJob`` a worker is executing from its taskiq message."""
    labels = message.labels
    raw_policy = labels.get(LABEL_RETRY_POLICY)
    retry = RetryPolicy.model_validate_json(raw_policy) if raw_policy else RetryPolicy()
    priority = labels.get(LABEL_PRIORITY)
    options = JobOptions(
        job_id=message.task_id,
        priority=from_broker_priority(priority) if priority is not None else 3,
        retry=retry,
    )
    return QueueJob(
        id=message.task_id,
        name=str(labels.get(LABEL_JOB_NAME, message.task_name)),
        payload=payload,
        options=options,
        state=JobState.ACTIVE,
        attempts_made=int(labels.get(LABEL_RETRIES, 0)) + 1,
    )


class TaskiqQueue:
    """``DurableQueue`` backed by a taskiq broker task.

    Example:
        queue = TaskiqQueue("events", broker, EVENT_TASK_NAME, stats=queue_stats)
        await queue.enqueue("order.created", event.to_job_payload(), JobOptions(job_id=event.id))
    """

    backend = "taskiq"

    def __init__(
        self,
        name: str,
        broker: AsyncBroker,
        task_name: str,
        stats: QueueStatsMiddleware | None = None,
        claims: RedisJobClaims | None = None,
    ) -> None:
        self.name = name
        self._broker = broker
        self._task_name = task_name
        self._stats = stats
        self._claims = claims

    async def enqueue(
        self,
        job_name: str,
        payload: dict[str, Any],
        options: JobOptions,
    ) -> QueueJob:
        task = self._broker.find_task(self._task_name)
        if task is None:
            raise RuntimeError(f"Task '{self._task_name}' is not registered with the broker")

        if self._claims is not None:
            existing = await self._claims.claim(self.name, options.job_id, payload)
            if existing is not None:
                logger.debug(
                    "Duplicate job id not sent",
                    extra={"queue": self.name, "job_id": options.job_id, "job_name": job_name},
                )
                return QueueJob(
                    id=options.job_id, name=job_name, payload=existing, options=options
                )

        try:
            await (
                task.kicker()
                .with_task_id(options.job_id)
                .with_labels(**job_labels(job_name, options))
                .kiq(payload)
            )
        except Exception:
            if self._claims is not None:
                await self._claims.release(self.name, options.job_id)
            raise
        logger.debug(
            "Job sent to broker",
            extra={
                "queue": self.name,
                "job_id": options.job_id,
                "job_name": job_name,
                "task_name": self._task_name,
            },
        )
        return QueueJob(
            id=options.job_id,
            name=job_name,
            payload=payload,
            options=options,
            state=JobState.DELAYED if options.delay_ms > 0 else JobState.WAITING,
        )

    async def pause(self) -> None:
        raise QueueOperationNotSupportedError("pause", backend=self.backend)

    async def resume(self) -> None:
        raise QueueOperationNotSupportedError("resume", backend=self.backend)

    async def drain(self) -> None:
        raise QueueOperationNotSupportedError("drain", backend=self.backend)

    async def get_counts(self) -> QueueStats:
        """Counts observed by this process's stats middleware."""
        if self._stats is None:
            return QueueStats()
        return self._stats.get_counts(self._task_name)

    async def get_job(self, job_id: str) -> QueueJob | None:
        # Jobs live in the broker; there is no lookup by id
        return None

    async def retry_job(self, job_id: str) -> bool:
        logger.warning(
            "Manual job retry is not available on the taskiq backend",
            extra={"queue": self.name, "job_id": job_id},
        )
        return False


__all__ = [
    "EVENT_TASK_NAME",
    "WEBHOOK_TASK_NAME",
    "TaskiqQueue",
    "job_from_message",
    "job_labels",
    "to_broker_priority",
]
