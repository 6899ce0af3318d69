"""Taskiq broker for the ``rabbitmq`` queue backend.

The broker exists only when ``APP_QUEUE_BACKEND=rabbitmq``; with the default
``memory`` backend jobs run on in-process asyncio workers and ``broker`` is
``None``.

Run a worker:
    taskiq worker event_service.tasks.broker:broker
"""

from __future__ import annotations

import logging

from redis.asyncio import Redis
from taskiq import TaskiqEvents, TaskiqState
from taskiq_aio_pika import AioPikaBroker

from event_service.core.settings import get_app_settings, get_rabbit_settings, get_redis_settings
from event_service.infra.logging.config import setup_logging

from .claims import RedisJobClaims
from .middleware import QueueStatsMiddleware, RetryPolicyMiddleware
from .queue import EVENT_TASK_NAME, MAX_BROKER_PRIORITY

logger = logging.getLogger(__name__)

app_settings = get_app_settings()
rabbit_settings = get_rabbit_settings()
redis_settings = get_redis_settings()

retry_middleware = RetryPolicyMiddleware()
queue_stats = QueueStatsMiddleware()

broker: AioPikaBroker | None = None
job_claims: RedisJobClaims | None = None

if app_settings.queue_backend == "rabbitmq":
    broker = AioPikaBroker(
        url=rabbit_settings.url,
        queue_name=rabbit_settings.get_prefixed_queue(rabbit_settings.tasks_queue),
        declare_exchange=True,
        declare_queues=True,
        max_priority=MAX_BROKER_PRIORITY,
    ).with_middlewares(
        retry_middleware,
        queue_stats,
    )

    if redis_settings.job_claims_enabled:
        job_claims = RedisJobClaims(
            Redis.from_url(redis_settings.url, **redis_settings.connection_kwargs()),
            key_prefix=redis_settings.key_prefix,
            ttl_seconds=redis_settings.job_claim_ttl_seconds,
        )

    logger.info(
        "Taskiq broker configured",
        extra={
            "queue": rabbit_settings.get_prefixed_queue(rabbit_settings.tasks_queue),
            "job_claims": job_claims is not None,
        },
    )


async def start_taskiq() -> None:
    """Start the broker for sending tasks from the API process.

    Raises:
        ConnectionError: If unable to connect to RabbitMQ.
    """
    if broker is None:
        logger.debug("Taskiq broker not configured, skipping startup")
        return

    logger.info("Starting Taskiq broker")
    try:
        await broker.startup()
    except Exception as e:
        logger.exception("Failed to start Taskiq broker", extra={"error": str(e)})
        raise
    logger.info("Taskiq broker started successfully")


async def stop_taskiq() -> None:
    if broker is None:
        return

    logger.info("Stopping Taskiq broker")
    try:
        await broker.shutdown()
        if job_claims is not None:
            await job_claims.close()
    except Exception as e:
        logger.exception("Error stopping Taskiq broker", extra={"error": str(e)})
        raise
    logger.info("Taskiq broker stopped successfully")


# =============================================================================
# Worker lifecycle
# =============================================================================
# Subscriptions are process-local, so each worker builds its own event bus
# (which imports APP_SUBSCRIBER_MODULES) before consuming.

if broker is not None:

    @broker.on_event(TaskiqEvents.WORKER_STARTUP)
    async def _on_worker_startup(state: TaskiqState) -> None:
        from event_service.app.container import get_event_bus
        from event_service.tasks.scheduler import create_scheduler, setup_maintenance_jobs

        setup_logging()
        bus = get_event_bus()
        await bus.start()
        retry_middleware.register_failure_callback(EVENT_TASK_NAME, bus.processor.handle_failure)

        state.scheduler = create_scheduler()
        setup_maintenance_jobs(state.scheduler, bus)
        state.scheduler.start()
        logger.info(
            "Worker event bus ready",
            extra={"subscriptions": bus.registry.subscription_count},
        )

    @broker.on_event(TaskiqEvents.WORKER_SHUTDOWN)
    async def _on_worker_shutdown(state: TaskiqState) -> None:
        from event_service.app.container import get_event_bus

        scheduler = getattr(state, "scheduler", None)
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)
        retry_middleware.clear_failure_callbacks()
        await get_event_bus().shutdown()
        if job_claims is not None:
            await job_claims.close()

    # Register task modules with the broker
    import event_service.tasks.events  # noqa: F401
    import event_service.tasks.webhooks  # noqa: F401


__all__ = [
    "broker",
    "job_claims",
    "queue_stats",
    "retry_middleware",
    "start_taskiq",
    "stop_taskiq",
]
