import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from repaircoin_api.models import (
    ArchivedTransaction,
    SystemSetting,
    Transaction,
    WebhookLog,
    WebhookSourceEnum,
    WebhookStatusEnum,
)
from repaircoin_api.services.cleanup import (
    CleanupAlreadyRunningError,
    CleanupConfig,
    CleanupService,
)


def _service(session_factory) -> CleanupService:
    return CleanupService(session_factory, default_config=CleanupConfig())


async def _seed(session_factory) -> None:
    now = datetime.now(timezone.utc)
    async with session_factory() as session:
        session.add_all(
            [
                WebhookLog(
                    webhook_id="old",
                    event_type="charge.succeeded",
                    source=WebhookSourceEnum.STRIPE,
                    status=WebhookStatusEnum.SUCCESS,
                    created_at=now - timedelta(days=120),
                ),
                WebhookLog(
                    webhook_id="recent",
                    event_type="charge.failed",
                    source=WebhookSourceEnum.STRIPE,
                    status=WebhookStatusEnum.FAILED,
                    created_at=now - timedelta(days=10),
                ),
                Transaction(
                    type="mint",
                    customer_address="0xaaa",
                    amount=Decimal("10"),
                    status="completed",
                    created_at=now - timedelta(days=400),
                ),
                Transaction(
                    type="redeem",
                    customer_address="0xaaa",
                    amount=Decimal("5"),
                    status="pending",
                    created_at=now - timedelta(days=400),
                ),
                Transaction(
                    type="mint",
                    customer_address="0xbbb",
                    amount=Decimal("7"),
                    status="completed",
                    created_at=now - timedelta(days=30),
                ),
            ]
        )
        await session.commit()


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
async def test_run_cleanup_purges_and_archives(session_factory) -> None:
    await _seed(session_factory)

    report = await _service(session_factory).run_cleanup()

    assert report.webhook_logs_deleted == 1
    assert report.transactions_archived == 1
    assert report.errors == []
    assert report.total_duration_ms >= 0
    assert await _count(session_factory, WebhookLog) == 1
    assert await _count(session_factory, Transaction) == 2

    async with session_factory() as session:
        archived = (await session.execute(select(ArchivedTransaction))).scalars().one()
    assert archived.type == "mint"
    assert archived.status == "completed"
    assert archived.archived_at is not None


@pytest.mark.asyncio
async def test_disabled_steps_are_skipped(session_factory) -> None:
    await _seed(session_factory)

    report = await _service(session_factory).run_cleanup(
        CleanupConfig(enable_webhook_cleanup=False, enable_transaction_archiving=False)
    )

    assert report.webhook_logs_deleted == 0
    assert report.transactions_archived == 0
    assert await _count(session_factory, WebhookLog) == 2


@pytest.mark.asyncio
async def test_step_failures_are_collected(session_factory, monkeypatch) -> None:
    service = _service(session_factory)

    async def purge(retention_days: int) -> int:
        return 4

    async def archive(archive_days: int) -> int:
        raise RuntimeError("disk full")

    monkeypatch.setattr(service, "_delete_old_webhook_logs", purge)
    monkeypatch.setattr(service, "_archive_old_transactions", archive)

    report = await service.run_cleanup()

    assert report.webhook_logs_deleted == 4
    assert report.transactions_archived == 0
    assert report.errors == ["Transaction archiving failed: disk full"]
    assert service.is_cleanup_running() is False


@pytest.mark.asyncio
async def test_concurrent_run_is_rejected(session_factory, monkeypatch) -> None:
    service = _service(session_factory)
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_purge(retention_days: int) -> int:
        started.set()
        await release.wait()
        return 0

    monkeypatch.setattr(service, "_delete_old_webhook_logs", slow_purge)

    first = asyncio.create_task(service.run_cleanup(CleanupConfig(enable_transaction_archiving=False)))
    await started.wait()
    assert service.is_cleanup_running() is True

    with pytest.raises(CleanupAlreadyRunningError, match="already running"):
        await service.run_cleanup()

    release.set()
    report = await first
    assert report.errors == []
    assert service.is_cleanup_running() is False


@pytest.mark.asyncio
async def test_emergency_cleanup_uses_short_windows(session_factory, monkeypatch) -> None:
    service = _service(session_factory)
    seen: dict[str, int] = {}

    async def purge(retention_days: int) -> int:
        seen["webhook"] = retention_days
        return 0

    async def archive(archive_days: int) -> int:
        seen["transactions"] = archive_days
        return 0

    monkeypatch.setattr(service, "_delete_old_webhook_logs", purge)
    monkeypatch.setattr(service, "_archive_old_transactions", archive)

    await service.emergency_cleanup()

    assert seen == {"webhook": 30, "transactions": 180}


@pytest.mark.asyncio
async def test_schedule_runs_immediately_and_ignores_second_call(session_factory, monkeypatch) -> None:
    service = _service(session_factory)
    calls: list[CleanupConfig | None] = []
    ran = asyncio.Event()

    async def fake_run(config=None):
        calls.append(config)
        ran.set()

    monkeypatch.setattr(service, "run_cleanup", fake_run)

    service.schedule_cleanup(interval_hours=1)
    await asyncio.wait_for(ran.wait(), timeout=1)
    first_task = service._schedule_task
    service.schedule_cleanup(interval_hours=2)

    assert service.is_scheduled is True
    assert service._schedule_task is first_task
    assert service.interval_hours == 1

    await service.stop_scheduled_cleanup()

    assert service.is_scheduled is False
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_stop_without_schedule_is_noop(session_factory) -> None:
    service = _service(session_factory)

    await service.stop_scheduled_cleanup()

    assert service.is_scheduled is False


@pytest.mark.asyncio
async def test_config_overrides_from_system_settings(session_factory) -> None:
    async with session_factory() as session:
        session.add_all(
            [
                SystemSetting(setting_key="webhook_retention_days", setting_value="45", category="cleanup"),
                SystemSetting(setting_key="transaction_archive_days", setting_value="200", category="cleanup"),
                SystemSetting(setting_key="webhook_retention_days_other", setting_value="1", category="misc"),
            ]
        )
        await session.commit()

    config = await _service(session_factory).get_cleanup_config_from_settings()

    assert config.webhook_retention_days == 45
    assert config.transaction_archive_days == 200


@pytest.mark.asyncio
async def test_unreadable_settings_fall_back_to_defaults(session_factory) -> None:
    async with session_factory() as session:
        session.add(SystemSetting(setting_key="webhook_retention_days", setting_value="ninety", category="cleanup"))
        await session.commit()

    config = await _service(session_factory).get_cleanup_config_from_settings()

    assert config == CleanupConfig()


@pytest.mark.asyncio
async def test_archive_statistics_and_recommendations(session_factory) -> None:
    await _seed(session_factory)
    service = _service(session_factory)
    await service.run_cleanup()

    stats = await service.get_archive_statistics()
    recommendations = await service.get_cleanup_recommendations()

    assert stats["archived_transactions"]["total"] == 1
    assert stats["archived_transactions"]["total_amount"] == 10.0
    assert stats["archived_transactions"]["oldest_date"] is not None
    assert stats["webhook_logs"] == {
        "total": 1,
        "oldest_date": stats["webhook_logs"]["oldest_date"],
        "success_count": 0,
        "failed_count": 1,
    }
    assert recommendations == {
        "should_cleanup": False,
        "recommendations": [],
        "estimated_savings": {"webhook_logs": 0, "transactions": 0},
    }
