from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest

from repaircoin_api.models import WebhookLog, WebhookSourceEnum, WebhookStatusEnum
from repaircoin_api.services.webhooks import (
    WebhookEvent,
    WebhookLoggingService,
    WebhookLogNotFoundError,
    WebhookProcessResult,
    error_code,
    is_retryable,
)


def _service(session) -> WebhookLoggingService:
    return WebhookLoggingService(session, max_retry_attempts=3, retry_cooldown_seconds=300, retry_batch_size=100)


def _log(**overrides) -> WebhookLog:
    values = {
        "webhook_id": f"evt_{uuid4().hex[:8]}",
        "event_type": "payment_intent.succeeded",
        "source": WebhookSourceEnum.STRIPE,
        "status": WebhookStatusEnum.FAILED,
        "retry_count": 0,
    }
    values.update(overrides)
    return WebhookLog(**values)


def test_retryable_error_classification() -> None:
    assert error_code(ConnectionRefusedError()) == "ECONNREFUSED"
    assert error_code(httpx.ConnectTimeout("slow")) == "ETIMEDOUT"
    assert is_retryable(ConnectionRefusedError())
    assert is_retryable(RuntimeError("upstream said ETIMEDOUT"))
    assert not is_retryable(ValueError("bad signature"))


@pytest.mark.asyncio
async def test_log_and_complete_webhook(session) -> None:
    service = _service(session)

    log = await service.log_incoming_webhook(
        WebhookEvent(webhook_id="evt_1", event_type="checkout.completed", source=WebhookSourceEnum.STRIPE)
    )
    assert log.status == WebhookStatusEnum.PENDING
    assert log.retry_count == 0

    updated = await service.update_webhook_result(
        log.id, WebhookProcessResult(success=True, response={"ok": True}, processing_time_ms=42)
    )
    assert updated.status == WebhookStatusEnum.SUCCESS
    assert updated.processing_time_ms == 42
    assert updated.processed_at is not None
    assert (await service.find_by_webhook_id("evt_1")).id == log.id


@pytest.mark.asyncio
async def test_mark_for_retry_increments_until_budget_spent(session) -> None:
    service = _service(session)
    session.add(fresh := _log(retry_count=1))
    session.add(spent := _log(retry_count=3))
    await session.commit()

    retried = await service.mark_for_retry(fresh.id)
    exhausted = await service.mark_for_retry(spent.id)

    assert retried.status == WebhookStatusEnum.RETRY
    assert retried.retry_count == 2
    assert retried.last_retry_at is not None
    assert exhausted.status == WebhookStatusEnum.FAILED
    assert exhausted.retry_count == 3
    assert exhausted.error_message == "Exceeded maximum retry attempts (3)"


@pytest.mark.asyncio
async def test_mark_for_retry_unknown_log(session) -> None:
    with pytest.raises(WebhookLogNotFoundError):
        await _service(session).mark_for_retry(uuid4())


@pytest.mark.asyncio
async def test_zero_retry_budget_fails_on_first_retry(session) -> None:
    service = WebhookLoggingService(session, max_retry_attempts=0, retry_cooldown_seconds=0, retry_batch_size=100)
    session.add(log := _log(retry_count=0))
    await session.commit()

    assert service.max_retry_attempts == 0
    assert service.retry_cooldown == timedelta(0)
    assert await service.get_webhooks_for_retry() == []
    exhausted = await service.mark_for_retry(log.id)

    assert exhausted.status == WebhookStatusEnum.FAILED
    assert exhausted.retry_count == 0
    assert exhausted.error_message == "Exceeded maximum retry attempts (0)"


@pytest.mark.asyncio
async def test_retry_candidates_respect_cooldown_and_budget(session) -> None:
    now = datetime.now(timezone.utc)
    never_retried = _log(webhook_id="never", created_at=now - timedelta(hours=2))
    cooled_down = _log(webhook_id="cooled", retry_count=1, last_retry_at=now - timedelta(minutes=10), created_at=now - timedelta(hours=1))
    session.add_all(
        [
            never_retried,
            cooled_down,
            _log(webhook_id="recent", retry_count=1, last_retry_at=now - timedelta(minutes=1)),
            _log(webhook_id="spent", retry_count=3),
            _log(webhook_id="done", status=WebhookStatusEnum.SUCCESS),
        ]
    )
    await session.commit()

    candidates = await _service(session).get_webhooks_for_retry()

    assert [log.webhook_id for log in candidates] == ["never", "cooled"]


@pytest.mark.asyncio
async def test_process_with_logging_records_success(session) -> None:
    service = _service(session)

    async def handler() -> dict:
        return {"credited": 10}

    outcome = await service.process_webhook_with_logging(
        WebhookEvent(webhook_id="evt_ok", event_type="order.paid", source=WebhookSourceEnum.FIXFLOW),
        handler,
    )

    assert outcome.result == {"credited": 10}
    assert outcome.log.status == WebhookStatusEnum.SUCCESS
    assert outcome.log.response == {"result": {"credited": 10}}


@pytest.mark.asyncio
async def test_process_without_logging_runs_handler_only(session) -> None:
    service = WebhookLoggingService(session, logging_enabled=False)

    async def handler() -> dict:
        return {"credited": 5}

    outcome = await service.process_webhook_with_logging(
        WebhookEvent(webhook_id="evt_quiet", event_type="order.paid", source=WebhookSourceEnum.FIXFLOW),
        handler,
    )

    assert outcome.result == {"credited": 5}
    assert outcome.log is None
    assert await service.find_by_webhook_id("evt_quiet") is None


@pytest.mark.asyncio
async def test_process_with_logging_queues_transient_failures(session) -> None:
    service = _service(session)

    async def handler() -> None:
        raise ConnectionRefusedError("connect ECONNREFUSED 10.0.0.1:443")

    with pytest.raises(ConnectionRefusedError):
        await service.process_webhook_with_logging(
            WebhookEvent(webhook_id="evt_down", event_type="order.paid", source=WebhookSourceEnum.FIXFLOW),
            handler,
        )

    log = await service.find_by_webhook_id("evt_down")
    assert log.status == WebhookStatusEnum.RETRY
    assert log.retry_count == 1


@pytest.mark.asyncio
async def test_process_with_logging_fails_terminal_errors(session) -> None:
    service = _service(session)

    async def handler() -> None:
        raise ValueError("invalid payload")

    with pytest.raises(ValueError):
        await service.process_webhook_with_logging(
            WebhookEvent(webhook_id="evt_bad", event_type="order.paid", source=WebhookSourceEnum.THIRDWEB),
            handler,
        )

    log = await service.find_by_webhook_id("evt_bad")
    assert log.status == WebhookStatusEnum.FAILED
    assert log.retry_count == 0
    assert log.error_message == "invalid payload"


@pytest.mark.asyncio
async def test_health_flags_low_success_rate(session) -> None:
    for index in range(10):
        status = WebhookStatusEnum.SUCCESS if index < 5 else WebhookStatusEnum.FAILED
        session.add(_log(status=status, processing_time_ms=120))
    session.add(_log(source=WebhookSourceEnum.FIXFLOW, status=WebhookStatusEnum.SUCCESS, processing_time_ms=80))
    await session.commit()

    report = await _service(session).check_webhook_health()

    assert report.healthy is False
    assert report.issues == ["stripe: Low success rate (50.0%)"]
    by_source = {metric.source: metric for metric in report.metrics}
    assert by_source["stripe"].total_count == 10
    assert by_source["stripe"].failed_count == 5
    assert by_source["fixflow"].success_rate == 100.0


@pytest.mark.asyncio
async def test_health_without_traffic_is_healthy(session) -> None:
    report = await _service(session).check_webhook_health()

    assert report.healthy is True
    assert report.metrics == []


@pytest.mark.asyncio
async def test_logs_are_paginated_and_filtered(session) -> None:
    now = datetime.now(timezone.utc)
    for index in range(3):
        session.add(_log(webhook_id=f"evt_{index}", created_at=now - timedelta(minutes=index)))
    session.add(_log(webhook_id="evt_other", event_type="invoice.created", source=WebhookSourceEnum.OTHER))
    await session.commit()
    service = _service(session)

    page = await service.get_webhook_logs(page=2, limit=2, source=WebhookSourceEnum.STRIPE)
    filtered = await service.get_webhook_logs(event_type="invoice.created")

    assert page.total == 3
    assert page.total_pages == 2
    assert [log.webhook_id for log in page.items] == ["evt_2"]
    assert [log.webhook_id for log in filtered.items] == ["evt_other"]


@pytest.mark.asyncio
async def test_cleanup_removes_logs_past_retention(session) -> None:
    now = datetime.now(timezone.utc)
    session.add(_log(webhook_id="old", created_at=now - timedelta(days=100)))
    session.add(_log(webhook_id="new", created_at=now - timedelta(days=5)))
    await session.commit()

    deleted = await _service(session).cleanup(retention_days=90)

    assert deleted == 1
    remaining = await _service(session).get_webhook_logs()
    assert [log.webhook_id for log in remaining.items] == ["new"]
