"""Unit tests for the webhooks API and the metrics endpoint."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator

import httpx
from httpx import ASGITransport, AsyncClient
import pytest

from event_service.app.main import create_app

TENANT = {"X-Tenant-ID": "acme"}
OTHER_TENANT = {"X-Tenant-ID": "globex"}


@pytest.fixture
def webhook_transport() -> httpx.MockTransport:
    """Endpoint rejecting ``/gone`` and accepting everything else."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/gone":
            return httpx.Response(410, text="gone")
        return httpx.Response(200, text="ok")

    return httpx.MockTransport(handler)


@pytest.fixture
async def client(bus, app_settings) -> AsyncGenerator[AsyncClient]:
    app = create_app(app_settings)
    app.state.event_bus = bus
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def delivery_body(url: str = "https://hooks.example.com/events", **overrides):
    body = {
        "event_id": "evt-1",
        "subscription_id": "sub-1",
        "destination": {"url": url},
        "payload": {"order_id": "o-1"},
    }
    body.update(overrides)
    return body


async def settle(bus) -> None:
    await asyncio.wait_for(bus.webhook_queue.join(), timeout=2)


@pytest.mark.unit
class TestQueueDelivery:
    """POST /webhooks/deliveries."""

    @pytest.mark.asyncio
    async def test_queue_and_read_results(self, client, bus):
        response = await client.post(
            "/api/v1/webhooks/deliveries", json=delivery_body(), headers=TENANT
        )

        assert response.status_code == 202
        assert response.json() == {"job_id": "evt-1-sub-1"}

        await settle(bus)
        results = (
            await client.get("/api/v1/webhooks/deliveries/evt-1", headers=TENANT)
        ).json()
        assert len(results) == 1
        assert results[0]["success"] is True
        assert results[0]["status_code"] == 200

    @pytest.mark.asyncio
    async def test_same_pair_delivered_once(self, client, bus):
        for _ in range(2):
            await client.post("/api/v1/webhooks/deliveries", json=delivery_body(), headers=TENANT)
        await settle(bus)

        assert len(bus.webhook_delivery.get_delivery_results("evt-1")) == 1

    @pytest.mark.asyncio
    async def test_requires_tenant(self, client):
        response = await client.post("/api/v1/webhooks/deliveries", json=delivery_body())

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_incomplete_auth_rejected(self, client):
        body = delivery_body()
        body["destination"]["auth"] = {"type": "bearer"}

        response = await client.post("/api/v1/webhooks/deliveries", json=body, headers=TENANT)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_event_has_no_results(self, client):
        response = await client.get("/api/v1/webhooks/deliveries/evt-missing", headers=TENANT)

        assert response.status_code == 200
        assert response.json() == []


@pytest.mark.unit
class TestRetryDelivery:
    """POST /webhooks/deliveries/{event_id}/{subscription_id}/retry."""

    @pytest.mark.asyncio
    async def test_failed_delivery_is_requeued(self, client, bus):
        await client.post(
            "/api/v1/webhooks/deliveries",
            json=delivery_body(url="https://hooks.example.com/gone"),
            headers=TENANT,
        )
        await settle(bus)

        response = await client.post(
            "/api/v1/webhooks/deliveries/evt-1/sub-1/retry", headers=TENANT
        )

        assert response.status_code == 202
        assert response.json()["job_id"] == "evt-1-sub-1"
        await settle(bus)
        assert len(bus.webhook_delivery.get_delivery_results("evt-1")) == 2

    @pytest.mark.asyncio
    async def test_successful_delivery_not_retried(self, client, bus):
        await client.post("/api/v1/webhooks/deliveries", json=delivery_body(), headers=TENANT)
        await settle(bus)

        response = await client.post(
            "/api/v1/webhooks/deliveries/evt-1/sub-1/retry", headers=TENANT
        )

        assert response.status_code == 404
        assert response.json()["type"] == "delivery-not-found"

    @pytest.mark.asyncio
    async def test_unknown_delivery(self, client):
        response = await client.post(
            "/api/v1/webhooks/deliveries/evt-9/sub-9/retry", headers=TENANT
        )

        assert response.status_code == 404
        assert response.json()["subscription_id"] == "sub-9"


@pytest.mark.unit
class TestDeliveryStats:
    @pytest.mark.asyncio
    async def test_stats_aggregate_results(self, client, bus):
        await client.post("/api/v1/webhooks/deliveries", json=delivery_body(), headers=TENANT)
        await client.post(
            "/api/v1/webhooks/deliveries",
            json=delivery_body(url="https://hooks.example.com/gone", subscription_id="sub-2"),
            headers=TENANT,
        )
        await settle(bus)

        stats = (await client.get("/api/v1/webhooks/stats", headers=TENANT)).json()

        assert stats["total_deliveries"] == 2
        assert stats["successful_deliveries"] == 1
        assert stats["failed_deliveries"] == 1
        assert stats["success_rate"] == 50.0
        assert stats["completed"] == 2


@pytest.mark.unit
class TestMetricsEndpoint:
    @pytest.mark.asyncio
    async def test_prometheus_exposition(self, client, bus):
        await client.post("/api/v1/webhooks/deliveries", json=delivery_body(), headers=TENANT)
        await settle(bus)

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "webhook_deliveries_total" in response.text
        assert "events_published_total" in response.text


@pytest.mark.unit
class TestTenantScope:
    """Delivery results and stats are visible only to the tenant that queued them."""

    @pytest.mark.asyncio
    async def test_other_tenant_sees_no_results(self, client, bus):
        await client.post("/api/v1/webhooks/deliveries", json=delivery_body(), headers=TENANT)
        await settle(bus)

        response = await client.get("/api/v1/webhooks/deliveries/evt-1", headers=OTHER_TENANT)

        assert response.status_code == 200
        assert response.json() == []
        [result] = bus.webhook_delivery.get_delivery_results("evt-1")
        assert result.tenant_id == "acme"

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_retry(self, client, bus):
        await client.post(
            "/api/v1/webhooks/deliveries",
            json=delivery_body(url="https://hooks.example.com/gone"),
            headers=TENANT,
        )
        await settle(bus)

        response = await client.post(
            "/api/v1/webhooks/deliveries/evt-1/sub-1/retry", headers=OTHER_TENANT
        )

        assert response.status_code == 404
        assert len(bus.webhook_delivery.get_delivery_results("evt-1")) == 1

    @pytest.mark.asyncio
    async def test_stats_count_only_own_attempts(self, client, bus):
        await client.post("/api/v1/webhooks/deliveries", json=delivery_body(), headers=TENANT)
        await client.post(
            "/api/v1/webhooks/deliveries",
            json=delivery_body(event_id="evt-2"),
            headers=OTHER_TENANT,
        )
        await settle(bus)

        stats = (await client.get("/api/v1/webhooks/stats", headers=OTHER_TENANT)).json()

        assert stats["total_deliveries"] == 1
        assert stats["successful_deliveries"] == 1

    @pytest.mark.asyncio
    async def test_results_require_tenant(self, client):
        response = await client.get("/api/v1/webhooks/deliveries/evt-1")

        assert response.status_code == 400
