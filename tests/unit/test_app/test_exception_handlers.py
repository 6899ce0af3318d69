"""Tests for application exception handlers."""

from __future__ import annotations

import json
from typing import Any

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
import pytest
from starlette.requests import Request

from event_service.app.exception_handlers import (
    app_exception_handler,
    generic_exception_handler,
    pydantic_validation_exception_handler,
    validation_exception_handler,
)
from event_service.core.exceptions import (
    AppException,
    NotFoundException,
    QueueOperationNotSupportedError,
    ReplayCapacityError,
)


def _build_request(path: str = "/test") -> Request:
    """Create a minimal ASGI request for handler tests."""
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "headers": [],
        "query_string": b"",
        "client": ("test", 1234),
        "server": ("test", 80),
    }
    return Request(scope, lambda: None)


def _body(response) -> dict[str, Any]:
    return json.loads(response.body)


@pytest.fixture
def tracked(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def fake_track_error(**payload: Any) -> None:
        calls.append(payload)

    monkeypatch.setattr(
        "event_service.app.exception_handlers.tracking.track_error",
        fake_track_error,
    )
    return calls


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("exc", "status_code", "problem_type"),
    [
        (NotFoundException("Event evt-1 not found", type="event-not-found"), 404, "event-not-found"),
        (ReplayCapacityError(max_concurrent=5), 429, "replay-capacity-exceeded"),
        (QueueOperationNotSupportedError("pause", backend="taskiq"), 501, "queue-operation-not-supported"),
        (AppException(status_code=409, detail="conflict"), 409, "about:blank"),
    ],
)
async def test_app_exception_handler_returns_problem_details(
    exc: AppException, status_code: int, problem_type: str, tracked: list[dict[str, Any]]
) -> None:
    """App exceptions should produce RFC 7807 responses and track errors."""
    response = await app_exception_handler(_build_request("/api/v1/events"), exc)

    assert response.status_code == status_code
    body = _body(response)
    assert body["type"] == problem_type
    assert body["status"] == status_code
    assert body["instance"] == "/api/v1/events"
    assert tracked[0]["error_type"] == problem_type


@pytest.mark.asyncio
async def test_app_exception_extra_is_merged(tracked: list[dict[str, Any]]) -> None:
    response = await app_exception_handler(_build_request(), ReplayCapacityError(max_concurrent=3))

    body = _body(response)
    assert body["max_concurrent"] == 3
    assert body["title"] == "Too Many Requests"


@pytest.mark.asyncio
async def test_validation_exception_handler_formats_errors(tracked: list[dict[str, Any]]) -> None:
    """Validation errors should include field-level details."""
    exc = RequestValidationError(
        [
            {"loc": ("body", "type"), "msg": "Field required", "type": "missing", "input": {}},
        ],
    )

    response = await validation_exception_handler(_build_request("/api/v1/events"), exc)

    assert response.status_code == 422
    payload = _body(response)
    assert payload["type"] == "validation-error"
    assert payload["errors"] == [
        {"field": "body.type", "message": "Field required", "type": "missing", "value": {}},
    ]
    assert tracked[0]["status_code"] == 422


@pytest.mark.asyncio
async def test_pydantic_validation_handler() -> None:
    class Window(BaseModel):
        batch_size: int

    with pytest.raises(ValidationError) as exc_info:
        Window(batch_size="many")

    response = await pydantic_validation_exception_handler(_build_request(), exc_info.value)

    assert response.status_code == 422
    assert _body(response)["errors"][0]["field"] == "batch_size"


@pytest.mark.asyncio
async def test_generic_exception_handler_hides_internals(tracked: list[dict[str, Any]]) -> None:
    """Unhandled exceptions should be tracked and return 500."""
    response = await generic_exception_handler(_build_request(), RuntimeError("db password leaked"))

    assert response.status_code == 500
    body = _body(response)
    assert body["type"] == "internal-error"
    assert "leaked" not in body["detail"]
    assert tracked[0]["extra"] == {"exception_type": "RuntimeError"}
