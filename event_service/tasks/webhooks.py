"""Worker task consuming webhook delivery jobs."""

from __future__ import annotations

import logging
from typing import Any

from taskiq import Context, TaskiqDepends

from event_service.infra.queue import QueueJob

from .broker import broker
from .queue import WEBHOOK_TASK_NAME, job_from_message

logger = logging.getLogger(__name__)


async def run_webhook_job(job: QueueJob) -> dict[str, Any]:
    """Deliver one queued webhook.

    Raises:
        WebhookRetryError: The attempt failed and should be retried.
    """
    from event_service.app.container import get_event_bus

    result = await get_event_bus().webhook_processor.handle(job)
    return result.model_dump(mode="json")


if broker is not None:

    @broker.task(task_name=WEBHOOK_TASK_NAME)
    async def deliver_webhook_job(
        payload: dict[str, Any],
        context: Context = TaskiqDepends(),  # noqa: B008
    ) -> dict[str, Any]:
        return await run_webhook_job(job_from_message(context.message, payload))
