"""Worker task consuming event jobs."""

from __future__ import annotations

import logging
from typing import Any

from taskiq import Context, TaskiqDepends

from event_service.infra.queue import QueueJob

from .broker import broker
from .queue import EVENT_TASK_NAME, job_from_message

logger = logging.getLogger(__name__)


async def run_event_job(job: QueueJob) -> dict[str, Any]:
    """Process one event job on this worker's event bus."""
    from event_service.app.container import get_event_bus

    result = await get_event_bus().processor.process(job)
    return result.model_dump()


if broker is not None:

    @broker.task(task_name=EVENT_TASK_NAME)
    async def process_event_job(
        payload: dict[str, Any],
        context: Context = TaskiqDepends(),  # noqa: B008
    ) -> dict[str, Any]:
        """Dispatch an event to this worker's subscriptions.

        Failures propagate to ``RetryPolicyMiddleware``.
        """
        return await run_event_job(job_from_message(context.message, payload))
