"""Custom exception classes for the application."""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base application exception.

    All custom exceptions should inherit from this class.
    Follows RFC 7807 Problem Details for HTTP APIs.

    Attributes:
        status_code: HTTP status code for the error.
        detail: Human-readable error message.
        type: Error type identifier (used in RFC 7807 problem details).
        title: Short, human-readable summary of the problem type.
        instance: URI reference that identifies the specific occurrence of the problem.
        extra: Additional context-specific information about the error.

    Example:
        raise AppException(
            status_code=404,
            detail="Replay not found",
            type="replay-not-found",
            title="Not Found",
            extra={"request_id": "abc123"},
        )
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        type: str = "about:blank",
        title: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize application exception.

        Args:
            status_code: HTTP status code.
            detail: Human-readable error message.
            type: Error type identifier.
            title: Short summary of the problem type.
            instance: URI reference identifying this specific occurrence.
            extra: Additional context about the error.
        """
        self.status_code = status_code
        self.detail = detail
        self.type = type
        self.title = title or self._default_title(status_code)
        self.instance = instance
        self.extra = extra or {}
        super().__init__(detail)

    @staticmethod
    def _default_title(status_code: int) -> str:
        """Get default title for HTTP status code."""
        titles = {
            400: "Bad Request",
            404: "Not Found",
            409: "Conflict",
            422: "Unprocessable Entity",
            429: "Too Many Requests",
            500: "Internal Server Error",
            501: "Not Implemented",
            503: "Service Unavailable",
        }
        return titles.get(status_code, "Error")


class NotFoundException(AppException):
    """Exception raised when a resource is not found.

    Example:
        raise NotFoundException(
            detail="Event evt-123 not found",
            type="event-not-found",
            extra={"event_id": "evt-123"},
        )
    """

    def __init__(
        self,
        detail: str,
        type: str = "not-found",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=404,
            detail=detail,
            type=type,
            title="Not Found",
            instance=instance,
            extra=extra,
        )


class BadRequestException(AppException):
    """Exception raised for malformed requests."""

    def __init__(
        self,
        detail: str,
        type: str = "bad-request",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=400,
            detail=detail,
            type=type,
            title="Bad Request",
            instance=instance,
            extra=extra,
        )


class ReplayCapacityError(AppException):
    """Raised when a replay is requested while the concurrency cap is reached.

    Example:
        raise ReplayCapacityError(max_concurrent=5)
    """

    def __init__(
        self,
        max_concurrent: int,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize replay capacity error.

        Args:
            max_concurrent: Configured limit of in-progress replays.
            instance: URI reference identifying this specific occurrence.
            extra: Additional context about the error.
        """
        final_extra: dict[str, Any] = {"max_concurrent": max_concurrent}
        if extra:
            final_extra.update(extra)
        super().__init__(
            status_code=429,
            detail=f"Maximum concurrent replays ({max_concurrent}) reached",
            type="replay-capacity-exceeded",
            title="Too Many Requests",
            instance=instance,
            extra=final_extra,
        )


class QueueOperationNotSupportedError(AppException):
    """Raised when a queue backend cannot perform a control operation.

    Example:
        raise QueueOperationNotSupportedError("pause", backend="taskiq")
    """

    def __init__(self, operation: str, backend: str) -> None:
        super().__init__(
            status_code=501,
            detail=f"Queue operation '{operation}' is not supported by the {backend} backend",
            type="queue-operation-not-supported",
            title="Not Implemented",
            extra={"operation": operation, "backend": backend},
        )


class WorkerStateUnavailableError(AppException):
    """Raised when the API is asked for state that only the queue workers hold.

    Example:
        raise WorkerStateUnavailableError("event log", backend="taskiq")
    """

    def __init__(self, resource: str, backend: str) -> None:
        super().__init__(
            status_code=501,
            detail=(
                f"The {resource} is kept by the {backend} workers "
                "and cannot be read through the API process"
            ),
            type="worker-state-unavailable",
            title="Not Implemented",
            extra={"resource": resource, "backend": backend},
        )


__all__ = [
    "AppException",
    "BadRequestException",
    "NotFoundException",
    "QueueOperationNotSupportedError",
    "ReplayCapacityError",
    "WorkerStateUnavailableError",
]
