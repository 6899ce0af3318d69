"""Job id claims shared by every process that sends to the broker.

RabbitMQ has no notion of a job id, so ``TaskiqQueue`` claims each id in
Redis (``SET NX`` with a TTL) before sending. The first claim stores the job
payload; later enqueues of the same id get that payload back and send
nothing.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RedisJobClaims:
    """Claim job ids in Redis.

    Example:
        claims = RedisJobClaims(Redis.from_url(settings.url), ttl_seconds=86_400)
        existing = await claims.claim("events", "evt-1", payload)
        if existing is None:
            ...  # first enqueue of evt-1: send it
    """

    def __init__(
        self,
        client: Redis,
        *,
        key_prefix: str = "event-service:",
        ttl_seconds: int = 86_400,
    ) -> None:
        self._client = client
        self._prefix = key_prefix
        self._ttl = ttl_seconds

    def key(self, queue: str, job_id: str) -> str:
        return f"{self._prefix}jobs:{queue}:{job_id}"

    async def claim(
        self, queue: str, job_id: str, payload: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Claim ``job_id`` on ``queue``.

        Returns:
            None when this call made the claim, otherwise the payload stored
            by the call that did.
        """
        key = self.key(queue, job_id)
        encoded = json.dumps(payload, separators=(",", ":"), default=str)
        if await self._client.set(key, encoded, nx=True, ex=self._ttl):
            return None

        existing = await self._client.get(key)
        if existing is None:
            # Expired between SET and GET
            return await self.claim(queue, job_id, payload)
        logger.debug(
            "Job id already claimed",
            extra={"queue": queue, "job_id": job_id, "operation": "claims.claim"},
        )
        return json.loads(existing)

    async def release(self, queue: str, job_id: str) -> None:
        """Drop a claim whose message could not be sent."""
        await self._client.delete(self.key(queue, job_id))

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["RedisJobClaims"]
