"""Taskiq middleware for the event and webhook workers.

- ``RetryPolicyMiddleware`` re-sends a failed task according to the
  ``RetryPolicy`` carried in its labels and invokes the registered failure
  callback after every failed attempt (the processor dead-letters on the last).
- ``QueueStatsMiddleware`` counts messages sent and executed by this process.
"""

from __future__ import annotations

from collections import Counter, defaultdict
import logging
from typing import TYPE_CHECKING, Any

from taskiq import TaskiqMiddleware
from taskiq.exceptions import NoResultError

from event_service.infra.queue import FailureCallback, QueueStats, calculate_delay

from .queue import LABEL_DELAY, LABEL_RETRIES, delay_seconds, job_from_message

if TYPE_CHECKING:
    from taskiq import TaskiqMessage, TaskiqResult

logger = logging.getLogger(__name__)


def _message_payload(message: TaskiqMessage) -> dict[str, Any]:
    if message.args:
        return message.args[0]
    return message.kwargs.get("payload", {})


class RetryPolicyMiddleware(TaskiqMiddleware):
    """Retry failed tasks with backoff and hand failures to a callback.

    Example:
        retry = RetryPolicyMiddleware()
        broker = AioPikaBroker(...).with_middlewares(retry)
        retry.register_failure_callback(EVENT_TASK_NAME, processor.handle_failure)
    """

    def __init__(self) -> None:
        super().__init__()
        self._callbacks: dict[str, FailureCallback] = {}

    def register_failure_callback(self, task_name: str, callback: FailureCallback) -> None:
        self._callbacks[task_name] = callback

    def clear_failure_callbacks(self) -> None:
        self._callbacks.clear()

    async def on_error(
        self,
        message: TaskiqMessage,
        result: TaskiqResult[Any],
        exception: BaseException,
    ) -> None:
        if isinstance(exception, NoResultError):
            return

        job = job_from_message(message, _message_payload(message))
        job.failed_reason = str(exception) or type(exception).__name__

        callback = self._callbacks.get(message.task_name)
        if callback is not None:
            try:
                await callback(job, exception)
            except Exception:
                logger.exception(
                    "Failure callback raised",
                    extra={"task_id": message.task_id, "task_name": message.task_name},
                )

        if job.attempts_exhausted:
            logger.warning(
                "Task failed permanently",
                extra={
                    "task_id": message.task_id,
                    "task_name": message.task_name,
                    "attempts": job.attempts_made,
                    "error": job.failed_reason,
                },
            )
            return

        task = self.broker.find_task(message.task_name)
        if task is None:
            logger.error(
                "Cannot retry unknown task",
                extra={"task_id": message.task_id, "task_name": message.task_name},
            )
            return

        labels = {**message.labels, LABEL_RETRIES: job.attempts_made}
        delay = delay_seconds(calculate_delay(job.options.retry, job.attempts_made))
        if delay:
            labels[LABEL_DELAY] = delay
        else:
            labels.pop(LABEL_DELAY, None)

        await (
            task.kicker()
            .with_task_id(message.task_id)
            .with_labels(**labels)
            .kiq(*message.args, **message.kwargs)
        )
        # The retried message produces the result
        result.error = NoResultError()

        logger.info(
            "Task scheduled for retry",
            extra={
                "task_id": message.task_id,
                "task_name": message.task_name,
                "attempt": job.attempts_made,
                "max_attempts": job.max_attempts,
                "delay_seconds": delay,
            },
        )


class QueueStatsMiddleware(TaskiqMiddleware):
    """Per-task counters of what this process sent and executed."""

    def __init__(self) -> None:
        super().__init__()
        self._counts: defaultdict[str, Counter[str]] = defaultdict(Counter)

    async def pre_send(self, message: TaskiqMessage) -> TaskiqMessage:
        if LABEL_RETRIES not in message.labels:
            self._counts[message.task_name]["sent"] += 1
        return message

    async def pre_execute(self, message: TaskiqMessage) -> TaskiqMessage:
        counts = self._counts[message.task_name]
        counts["active"] += 1
        if LABEL_RETRIES not in message.labels:
            counts["started"] += 1
        return message

    async def post_execute(self, message: TaskiqMessage, result: TaskiqResult[Any]) -> None:
        counts = self._counts[message.task_name]
        counts["active"] -= 1
        if not result.is_err:
            counts["completed"] += 1
        elif not isinstance(result.error, NoResultError):
            counts["failed"] += 1

    def get_counts(self, task_name: str) -> QueueStats:
        counts = self._counts.get(task_name, Counter())
        return QueueStats(
            waiting=max(counts["sent"] - counts["started"], 0),
            active=max(counts["active"], 0),
            completed=counts["completed"],
            failed=counts["failed"],
        )

    def reset(self) -> None:
        self._counts.clear()


__all__ = ["QueueStatsMiddleware", "RetryPolicyMiddleware"]
