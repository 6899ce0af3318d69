"""Unit tests for the Redis job id claims."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from event_service.tasks.claims import RedisJobClaims


class DictRedis:
    """The slice of ``redis.asyncio.Redis`` used by the claims, over a dict."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        self.ttls[key] = ex
        return True

    async def get(self, key):
        return self.values.get(key)

    async def delete(self, key):
        return int(self.values.pop(key, None) is not None)


@pytest.fixture
def redis() -> DictRedis:
    return DictRedis()


@pytest.fixture
def claims(redis) -> RedisJobClaims:
    return RedisJobClaims(redis, key_prefix="test:", ttl_seconds=60)


@pytest.mark.unit
class TestClaims:
    @pytest.mark.asyncio
    async def test_first_claim_wins(self, claims, redis):
        assert await claims.claim("events", "evt-1", {"id": "evt-1", "n": 1}) is None

        existing = await claims.claim("events", "evt-1", {"id": "evt-2", "n": 2})

        assert existing == {"id": "evt-1", "n": 1}
        assert redis.ttls["test:jobs:events:evt-1"] == 60

    @pytest.mark.asyncio
    async def test_claims_are_per_queue(self, claims):
        assert await claims.claim("events", "job-1", {}) is None
        assert await claims.claim("webhooks", "job-1", {}) is None

    @pytest.mark.asyncio
    async def test_release_allows_a_new_claim(self, claims):
        await claims.claim("events", "evt-1", {"n": 1})

        await claims.release("events", "evt-1")

        assert await claims.claim("events", "evt-1", {"n": 2}) is None

    @pytest.mark.asyncio
    async def test_claim_expiring_between_calls_is_retaken(self):
        client = AsyncMock()
        client.set.side_effect = [None, True]
        client.get.return_value = None
        claims = RedisJobClaims(client)

        assert await claims.claim("events", "evt-1", {"n": 1}) is None
        assert client.set.await_count == 2

    @pytest.mark.asyncio
    async def test_payload_stored_as_json(self, claims, redis):
        await claims.claim("events", "evt-1", {"id": "evt-1", "payload": {"total": 150}})

        assert json.loads(redis.values["test:jobs:events:evt-1"]) == {
            "id": "evt-1",
            "payload": {"total": 150},
        }
