"""Context management for structured logging.

Provides automatic context injection into log records using contextvars,
so a queue worker can bind event_id, tenant_id and correlation_id once
and have them included in every log line emitted while the job runs.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

# Each async task gets its own copy automatically
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Set logging context for current async task/thread.

    All subsequent log calls in this context will automatically include
    these fields in the log record.

    Args:
        **kwargs: Key-value pairs to add to logging context.
            Common examples: event_id, tenant_id, correlation_id, job_id

    Example:
        ```python
        set_log_context(event_id=event.id, tenant_id=event.tenant_id)
        logger.info("Dispatching event")  # Includes event_id and tenant_id
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Get current logging context.

    Returns:
        Dictionary of current context key-value pairs.
    """
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Clear all logging context for current async task/thread.

    Queue workers call this between jobs so context never leaks from one
    event into the next.
    """
    _log_context.set({})


class ContextInjectingFilter(logging.Filter):
    """Logging filter that automatically injects context into LogRecord.

    Reads from the contextvars-based log context and adds all context fields
    to the LogRecord, making them available to formatters (especially
    JSONFormatter) without any code changes.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject context into log record.

        Args:
            record: The log record to enhance with context.

        Returns:
            True (always allow the record to be logged).
        """
        context = _log_context.get()

        for key, value in context.items():
            # Don't overwrite existing attributes
            if not hasattr(record, key):
                setattr(record, key, value)

        return True


__all__ = [
    "ContextInjectingFilter",
    "clear_log_context",
    "get_log_context",
    "set_log_context",
]
