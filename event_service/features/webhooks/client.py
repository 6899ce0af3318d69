"""HTTP transport for webhook delivery."""

from __future__ import annotations

from dataclasses import dataclass
import logging

import httpx

from event_service.infra.logging import get_lazy_logger

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


@dataclass(frozen=True)
class HttpResponse:
    """Status line and body of a webhook response."""

    status_code: int
    reason: str
    text: str


class WebhookHttpClient:
    """Send one HTTP request per call; never retries.

    Transport errors (``httpx.TimeoutException``, ``httpx.RequestError``)
    propagate to the caller, which owns classification.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the client.

        Args:
            transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.
        """
        self._transport = transport

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        content: bytes,
        timeout_seconds: float,
        verify_ssl: bool = True,
    ) -> HttpResponse:
        lazy_logger.debug(lambda: f"client.send: {method} {url} ({len(content)} bytes)")

        async with httpx.AsyncClient(
            transport=self._transport,
            verify=verify_ssl,
            timeout=timeout_seconds,
            follow_redirects=False,
        ) as client:
            response = await client.request(method, url, headers=headers, content=content)

        return HttpResponse(
            status_code=response.status_code,
            reason=response.reason_phrase,
            text=response.text,
        )


__all__ = ["HttpResponse", "WebhookHttpClient"]
