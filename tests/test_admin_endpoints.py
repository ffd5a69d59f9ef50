from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from factories import SHOP_WALLET, create_shop
from repaircoin_api.api.dependencies.services import get_balance_reader
from repaircoin_api.core.settings import settings
from repaircoin_api.models import WebhookLog, WebhookSourceEnum, WebhookStatusEnum
from repaircoin_api.services.tiers import BalanceResult, ContractStats


class FixedBalanceReader:
    def __init__(self, result: BalanceResult) -> None:
        self._result = result

    async def get_balance(self, address: str) -> BalanceResult:
        return self._result

    async def get_contract_stats(self) -> ContractStats:
        return ContractStats(
            contract_address="0xcontract",
            total_supply=Decimal("100000000"),
            circulating_supply=Decimal("100000000"),
        )


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_shop_tier_endpoints(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        await create_shop(session, wallet_address=SHOP_WALLET)
    app.dependency_overrides[get_balance_reader] = lambda: FixedBalanceReader(
        BalanceResult.success(Decimal("50000"))
    )

    async with _client(app) as client:
        tier = await client.get("/api/v1/shops/shop-1/tier")
        refreshed = await client.post("/api/v1/shops/shop-1/tier/refresh")
        unknown = await client.get("/api/v1/shops/ghost/tier")
        unknown_refresh = await client.post("/api/v1/shops/ghost/tier/refresh")
        metrics = await client.get("/api/v1/admin/rcg/metrics")

    assert tier.status_code == 200
    assert tier.json()["tier"] == "premium"
    assert tier.json()["rcnPrice"] == 0.08
    assert refreshed.status_code == 200
    assert unknown.status_code == 404
    assert unknown_refresh.status_code == 404
    assert metrics.json()["shop_tier_distribution"]["premium"] == 1


@pytest.mark.asyncio
async def test_tier_refresh_reports_unavailable_balance(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        await create_shop(session, wallet_address=SHOP_WALLET)
    app.dependency_overrides[get_balance_reader] = lambda: FixedBalanceReader(BalanceResult.failure("timeout"))

    async with _client(app) as client:
        response = await client.post("/api/v1/shops/shop-1/tier/refresh")

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_webhook_admin_endpoints(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        log = WebhookLog(
            webhook_id="evt_1",
            event_type="order.paid",
            source=WebhookSourceEnum.FIXFLOW,
            status=WebhookStatusEnum.FAILED,
            retry_count=0,
            processing_time_ms=30,
        )
        session.add(log)
        await session.commit()
        log_id = log.id

    async with _client(app) as client:
        logs = await client.get("/api/v1/admin/webhooks/logs", params={"status": "failed"})
        retried = await client.post(f"/api/v1/admin/webhooks/logs/{log_id}/retry")
        missing = await client.post(f"/api/v1/admin/webhooks/logs/{uuid4()}/retry")
        health = await client.get("/api/v1/admin/webhooks/health")

    assert logs.status_code == 200
    assert logs.json()["total"] == 1
    assert logs.json()["totalPages"] == 1
    assert logs.json()["items"][0]["webhookId"] == "evt_1"
    assert retried.json()["status"] == "retry"
    assert retried.json()["retryCount"] == 1
    assert missing.status_code == 404
    assert health.json()["healthy"] is False
    assert health.json()["issues"] == ["fixflow: High retry rate (1 retries)"]
    assert health.json()["metrics"][0]["source"] == "fixflow"


@pytest.mark.asyncio
async def test_cleanup_admin_endpoints(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        session.add(
            WebhookLog(
                webhook_id="evt_old",
                event_type="order.paid",
                source=WebhookSourceEnum.STRIPE,
                status=WebhookStatusEnum.SUCCESS,
                created_at=datetime.now(timezone.utc) - timedelta(days=60),
            )
        )
        await session.commit()

    async with _client(app) as client:
        kept = await client.post("/api/v1/admin/cleanup/run", json={})
        purged = await client.post("/api/v1/admin/cleanup/run", json={"webhookRetentionDays": 30})
        statistics = await client.get("/api/v1/admin/cleanup/statistics")
        recommendations = await client.get("/api/v1/admin/cleanup/recommendations")

        app.state.cleanup_service._is_running = True
        conflict = await client.post("/api/v1/admin/cleanup/emergency")
        app.state.cleanup_service._is_running = False

    assert kept.json()["webhookLogsDeleted"] == 0
    assert purged.json()["webhookLogsDeleted"] == 1
    assert statistics.json()["webhookLogs"]["total"] == 0
    assert statistics.json()["isRunning"] is False
    assert statistics.json()["scheduled"] is False
    assert recommendations.json()["shouldCleanup"] is False
    assert conflict.status_code == 409


@pytest.mark.asyncio
async def test_readiness_and_scheduler_diagnostics(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        liveness = await client.get("/healthz")
        readiness = await client.get("/api/v1/readyz")
        scheduler = await client.get("/api/v1/admin/scheduler")

    assert liveness.json()["status"] == "ok"
    payload = readiness.json()
    assert payload["status"] == "ready"
    assert payload["components"]["database"]["status"] == "ready"
    assert payload["components"]["scheduled_cleanup"]["status"] == "disabled"
    assert payload["components"]["job_scheduler"]["status"] == "disabled"
    assert scheduler.json()["running"] is False


@pytest.mark.asyncio
async def test_admin_routes_require_api_key_when_configured(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "admin_api_key", "secret")

    async with _client(app) as client:
        rejected = await client.get("/api/v1/admin/webhooks/logs")
        accepted = await client.get("/api/v1/admin/webhooks/logs", headers={"X-API-Key": "secret"})
        public = await client.get("/api/v1/shops/shop-1/no-show-policy")

    assert rejected.status_code == 401
    assert accepted.status_code == 200
    assert public.status_code == 200
