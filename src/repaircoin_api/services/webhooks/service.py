"""Inbound webhook delivery logging, retry bookkeeping and health metrics."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Generic, List, TypeVar
from uuid import UUID

from loguru import logger
from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.core.settings import settings
from repaircoin_api.models.webhook_log import WebhookLog, WebhookSourceEnum, WebhookStatusEnum

from .retry import is_retryable


T = TypeVar("T")

LOW_SUCCESS_RATE_PERCENT = 90.0
MIN_SAMPLES_FOR_SUCCESS_RATE = 10
HIGH_PROCESSING_TIME_MS = 5000.0
HIGH_RETRY_RATIO = 0.2


class WebhookLogNotFoundError(RuntimeError):
    """Raised when a webhook log id does not exist."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class WebhookEvent:
    webhook_id: str
    event_type: str
    source: WebhookSourceEnum
    payload: Dict[str, Any] | None = None
    http_status: int | None = None


@dataclass(slots=True)
class WebhookProcessResult:
    success: bool
    response: Dict[str, Any] | None = None
    error_message: str | None = None
    processing_time_ms: int | None = None


@dataclass
class WebhookProcessOutcome(Generic[T]):
    result: T
    log: WebhookLog | None


@dataclass(slots=True)
class WebhookHealthMetrics:
    source: str
    total_count: int
    success_count: int
    failed_count: int
    retry_count: int
    avg_processing_time_ms: float
    last_success_at: datetime | None
    last_failure_at: datetime | None

    @property
    def success_rate(self) -> float:
        return (self.success_count / self.total_count * 100) if self.total_count else 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "totalCount": self.total_count,
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "retryCount": self.retry_count,
            "avgProcessingTimeMs": self.avg_processing_time_ms,
            "lastSuccessAt": self.last_success_at.isoformat() if self.last_success_at else None,
            "lastFailureAt": self.last_failure_at.isoformat() if self.last_failure_at else None,
        }


@dataclass(slots=True)
class WebhookHealthReport:
    healthy: bool
    issues: List[str] = field(default_factory=list)
    metrics: List[WebhookHealthMetrics] = field(default_factory=list)


@dataclass(slots=True)
class WebhookLogPage:
    items: List[WebhookLog]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


class WebhookLoggingService:
    """Persists webhook delivery attempts and decides when they may be retried."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        max_retry_attempts: int | None = None,
        retry_cooldown_seconds: int | None = None,
        retry_batch_size: int | None = None,
        logging_enabled: bool | None = None,
    ) -> None:
        self._db = session
        self.logging_enabled = logging_enabled if logging_enabled is not None else settings.webhook_logging_enabled
        self.max_retry_attempts = (
            max_retry_attempts if max_retry_attempts is not None else settings.webhook_max_retry_attempts
        )
        self.retry_cooldown = timedelta(
            seconds=(
                retry_cooldown_seconds
                if retry_cooldown_seconds is not None
                else settings.webhook_retry_cooldown_seconds
            )
        )
        self.retry_batch_size = retry_batch_size if retry_batch_size is not None else settings.webhook_retry_batch_size

    async def log_incoming_webhook(self, event: WebhookEvent) -> WebhookLog:
        log = WebhookLog(
            webhook_id=event.webhook_id,
            event_type=event.event_type,
            source=WebhookSourceEnum(event.source),
            status=WebhookStatusEnum.PENDING,
            payload=event.payload,
            http_status=event.http_status,
            retry_count=0,
        )
        self._db.add(log)
        await self._db.commit()
        await self._db.refresh(log)
        logger.info(
            "Webhook logged",
            log_id=str(log.id),
            webhook_id=event.webhook_id,
            source=log.source.value,
            event_type=event.event_type,
        )
        return log

    async def update_webhook_result(self, log_id: UUID, result: WebhookProcessResult) -> WebhookLog:
        log = await self._get_log(log_id)
        log.status = WebhookStatusEnum.SUCCESS if result.success else WebhookStatusEnum.FAILED
        log.response = result.response
        log.error_message = result.error_message
        log.processed_at = _utcnow()
        log.processing_time_ms = result.processing_time_ms
        await self._db.commit()
        await self._db.refresh(log)
        logger.info(
            "Webhook result updated",
            log_id=str(log_id),
            status=log.status.value,
            processing_time_ms=result.processing_time_ms,
        )
        return log

    async def mark_processing(self, log_id: UUID) -> WebhookLog:
        log = await self._get_log(log_id)
        log.status = WebhookStatusEnum.PROCESSING
        await self._db.commit()
        return log

    async def mark_for_retry(self, log_id: UUID) -> WebhookLog:
        """Queue a retry, or fail the log permanently once the attempt budget is spent."""

        log = await self._get_log(log_id)
        if (log.retry_count or 0) >= self.max_retry_attempts:
            log.status = WebhookStatusEnum.FAILED
            log.error_message = f"Exceeded maximum retry attempts ({self.max_retry_attempts})"
            logger.warning(
                "Webhook exceeded max retry attempts",
                log_id=str(log_id),
                webhook_id=log.webhook_id,
                retry_count=log.retry_count,
            )
        else:
            log.status = WebhookStatusEnum.RETRY
            log.retry_count = (log.retry_count or 0) + 1
            log.last_retry_at = _utcnow()
            logger.info("Webhook marked for retry", log_id=str(log_id), retry_count=log.retry_count)
        await self._db.commit()
        await self._db.refresh(log)
        return log

    async def get_webhooks_for_retry(self) -> List[WebhookLog]:
        """Failed logs with budget left whose last retry is older than the cooldown, oldest first."""

        cutoff = _utcnow() - self.retry_cooldown
        stmt = (
            select(WebhookLog)
            .where(
                WebhookLog.status == WebhookStatusEnum.FAILED,
                WebhookLog.retry_count < self.max_retry_attempts,
                (WebhookLog.last_retry_at.is_(None)) | (WebhookLog.last_retry_at < cutoff),
            )
            .order_by(WebhookLog.created_at.asc())
            .limit(self.retry_batch_size)
        )
        result = await self._db.execute(stmt)
        logs = list(result.scalars().all())
        logger.info("Retrieved webhooks for retry", count=len(logs))
        return logs

    async def process_webhook_with_logging(
        self,
        event: WebhookEvent,
        handler: Callable[[], Awaitable[T]],
    ) -> WebhookProcessOutcome[T]:
        """Run ``handler`` while recording the attempt unless logging is off; handler errors are re-raised."""

        if not self.logging_enabled:
            return WebhookProcessOutcome(result=await handler(), log=None)

        log = await self.log_incoming_webhook(event)
        started_at = time.perf_counter()
        await self.mark_processing(log.id)

        try:
            result = await handler()
        except Exception as exc:
            processing_time_ms = int((time.perf_counter() - started_at) * 1000)
            logger.error("Webhook processing failed", webhook_id=event.webhook_id, error=str(exc))
            await self.update_webhook_result(
                log.id,
                WebhookProcessResult(success=False, error_message=str(exc), processing_time_ms=processing_time_ms),
            )
            if is_retryable(exc):
                await self.mark_for_retry(log.id)
            raise

        processing_time_ms = int((time.perf_counter() - started_at) * 1000)
        updated = await self.update_webhook_result(
            log.id,
            WebhookProcessResult(
                success=True,
                response={"result": _jsonable(result)},
                processing_time_ms=processing_time_ms,
            ),
        )
        return WebhookProcessOutcome(result=result, log=updated)

    async def get_health_metrics(self, *, window_hours: int = 24) -> List[WebhookHealthMetrics]:
        since = _utcnow() - timedelta(hours=window_hours)
        stmt = (
            select(
                WebhookLog.source,
                func.count(),
                func.count(case((WebhookLog.status == WebhookStatusEnum.SUCCESS, 1))),
                func.count(case((WebhookLog.status == WebhookStatusEnum.FAILED, 1))),
                func.coalesce(func.sum(WebhookLog.retry_count), 0),
                func.avg(WebhookLog.processing_time_ms),
                func.max(case((WebhookLog.status == WebhookStatusEnum.SUCCESS, WebhookLog.processed_at))),
                func.max(case((WebhookLog.status == WebhookStatusEnum.FAILED, WebhookLog.updated_at))),
            )
            .where(WebhookLog.created_at >= since)
            .group_by(WebhookLog.source)
            .order_by(WebhookLog.source)
        )
        rows = (await self._db.execute(stmt)).all()
        return [
            WebhookHealthMetrics(
                source=WebhookSourceEnum(source).value,
                total_count=int(total or 0),
                success_count=int(success or 0),
                failed_count=int(failed or 0),
                retry_count=int(retries or 0),
                avg_processing_time_ms=float(avg_ms or 0),
                last_success_at=_coerce_datetime(last_success),
                last_failure_at=_coerce_datetime(last_failure),
            )
            for source, total, success, failed, retries, avg_ms, last_success, last_failure in rows
        ]

    async def check_webhook_health(self) -> WebhookHealthReport:
        try:
            metrics = await self.get_health_metrics()
        except SQLAlchemyError as exc:
            logger.exception("Webhook health check failed", error=str(exc))
            return WebhookHealthReport(healthy=False, issues=["Failed to check webhook health"])

        issues: List[str] = []
        for metric in metrics:
            if metric.total_count >= MIN_SAMPLES_FOR_SUCCESS_RATE and metric.success_rate < LOW_SUCCESS_RATE_PERCENT:
                issues.append(f"{metric.source}: Low success rate ({metric.success_rate:.1f}%)")
            if metric.avg_processing_time_ms > HIGH_PROCESSING_TIME_MS:
                issues.append(f"{metric.source}: High processing time ({metric.avg_processing_time_ms:.0f}ms)")
            if metric.retry_count > metric.total_count * HIGH_RETRY_RATIO:
                issues.append(f"{metric.source}: High retry rate ({metric.retry_count} retries)")

        healthy = not issues
        if not healthy:
            logger.warning("Webhook health issues detected", issues=issues)
        return WebhookHealthReport(healthy=healthy, issues=issues, metrics=metrics)

    async def get_webhook_logs(
        self,
        *,
        page: int = 1,
        limit: int = 50,
        source: WebhookSourceEnum | None = None,
        status: WebhookStatusEnum | None = None,
        event_type: str | None = None,
    ) -> WebhookLogPage:
        page = max(page, 1)
        criteria = []
        if source is not None:
            criteria.append(WebhookLog.source == source)
        if status is not None:
            criteria.append(WebhookLog.status == status)
        if event_type:
            criteria.append(WebhookLog.event_type == event_type)

        total = await self._db.scalar(select(func.count()).select_from(WebhookLog).where(*criteria))
        stmt = (
            select(WebhookLog)
            .where(*criteria)
            .order_by(WebhookLog.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        items = list((await self._db.execute(stmt)).scalars().all())
        return WebhookLogPage(items=items, total=int(total or 0), page=page, limit=limit)

    async def find_by_webhook_id(self, webhook_id: str) -> WebhookLog | None:
        stmt = (
            select(WebhookLog)
            .where(WebhookLog.webhook_id == webhook_id)
            .order_by(WebhookLog.created_at.desc())
            .limit(1)
        )
        return await self._db.scalar(stmt)

    async def cleanup(self, retention_days: int = 90) -> int:
        """Delete logs older than ``retention_days`` and return how many were removed."""

        cutoff = _utcnow() - timedelta(days=retention_days)
        result = await self._db.execute(delete(WebhookLog).where(WebhookLog.created_at < cutoff))
        await self._db.commit()
        deleted = int(result.rowcount or 0)
        logger.info("Old webhook logs deleted", deleted=deleted, retention_days=retention_days)
        return deleted

    async def _get_log(self, log_id: UUID) -> WebhookLog:
        log = await self._db.get(WebhookLog, log_id)
        if log is None:
            raise WebhookLogNotFoundError(f"Webhook log {log_id} not found")
        return log


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (dict, list, str, int, float, bool)):
        return value
    return str(value)


def _coerce_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


__all__ = [
    "WebhookEvent",
    "WebhookHealthMetrics",
    "WebhookHealthReport",
    "WebhookLogNotFoundError",
    "WebhookLogPage",
    "WebhookLoggingService",
    "WebhookProcessOutcome",
    "WebhookProcessResult",
]
