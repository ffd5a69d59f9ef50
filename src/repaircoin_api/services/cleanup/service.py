"""Housekeeping: purge old webhook logs and archive completed transactions."""

from __future__ import annotations

import asyncio
import time
from contextlib import suppress
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List

from loguru import logger
from sqlalchemy import DateTime, case, delete, func, insert, literal, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.core.settings import settings
from repaircoin_api.models.system_setting import SystemSetting
from repaircoin_api.models.transaction import (
    TRANSACTION_STATUS_COMPLETED,
    ArchivedTransaction,
    Transaction,
)
from repaircoin_api.models.webhook_log import WebhookLog, WebhookStatusEnum

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]

CLEANUP_SETTINGS_CATEGORY = "cleanup"
WEBHOOK_LOG_RECOMMENDATION_THRESHOLD = 10_000
TRANSACTION_RECOMMENDATION_THRESHOLD = 1_000
ESTIMATED_WEBHOOK_SAVINGS_RATIO = 0.7


class CleanupAlreadyRunningError(RuntimeError):
    """Raised when a cleanup run is requested while another is in flight."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CleanupConfig:
    webhook_retention_days: int = 90
    transaction_archive_days: int = 365
    enable_webhook_cleanup: bool = True
    enable_transaction_archiving: bool = True

    @classmethod
    def from_settings(cls) -> "CleanupConfig":
        return cls(
            webhook_retention_days=settings.cleanup_webhook_retention_days,
            transaction_archive_days=settings.cleanup_transaction_archive_days,
        )


EMERGENCY_CLEANUP_CONFIG = CleanupConfig(webhook_retention_days=30, transaction_archive_days=180)


@dataclass(slots=True)
class CleanupReport:
    timestamp: datetime
    webhook_logs_deleted: int = 0
    transactions_archived: int = 0
    errors: List[str] = field(default_factory=list)
    total_duration_ms: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "webhookLogsDeleted": self.webhook_logs_deleted,
            "transactionsArchived": self.transactions_archived,
            "errors": list(self.errors),
            "totalDurationMs": self.total_duration_ms,
        }


class CleanupService:
    """Runs cleanup on demand or on a recurring in-process timer.

    At most one run executes at a time within this process.
    """

    def __init__(self, session_factory: SessionFactory, *, default_config: CleanupConfig | None = None) -> None:
        self._session_factory = session_factory
        self._default_config = default_config or CleanupConfig.from_settings()
        self._is_running = False
        self._schedule_task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self.interval_hours: float | None = None

    @property
    def default_config(self) -> CleanupConfig:
        return self._default_config

    def is_cleanup_running(self) -> bool:
        return self._is_running

    @property
    def is_scheduled(self) -> bool:
        return self._schedule_task is not None and not self._schedule_task.done()

    async def run_cleanup(self, config: CleanupConfig | None = None) -> CleanupReport:
        if self._is_running:
            raise CleanupAlreadyRunningError("Cleanup is already running")

        self._is_running = True
        config = config or self._default_config
        report = CleanupReport(timestamp=_utcnow())
        started_at = time.perf_counter()
        logger.info(
            "Cleanup started",
            webhook_retention_days=config.webhook_retention_days,
            transaction_archive_days=config.transaction_archive_days,
        )

        try:
            if config.enable_webhook_cleanup:
                try:
                    report.webhook_logs_deleted = await self._delete_old_webhook_logs(config.webhook_retention_days)
                except Exception as exc:
                    report.errors.append(f"Webhook cleanup failed: {exc}")
                    logger.exception("Webhook log cleanup failed", error=str(exc))

            if config.enable_transaction_archiving:
                try:
                    report.transactions_archived = await self._archive_old_transactions(
                        config.transaction_archive_days
                    )
                except Exception as exc:
                    report.errors.append(f"Transaction archiving failed: {exc}")
                    logger.exception("Transaction archiving failed", error=str(exc))
        finally:
            report.total_duration_ms = int((time.perf_counter() - started_at) * 1000)
            self._is_running = False

        logger.bind(report=report.as_dict()).info("Cleanup completed")
        return report

    async def emergency_cleanup(self) -> CleanupReport:
        logger.warning("Running emergency cleanup")
        return await self.run_cleanup(replace(EMERGENCY_CLEANUP_CONFIG))

    def schedule_cleanup(self, interval_hours: float = 24, config: CleanupConfig | None = None) -> None:
        """Run cleanup now and then every ``interval_hours`` until stopped."""

        if self.is_scheduled:
            logger.warning("Cleanup already scheduled", interval_hours=self.interval_hours)
            return

        self.interval_hours = interval_hours
        self._stop_event.clear()
        self._schedule_task = asyncio.create_task(self._run_loop(interval_hours * 3600, config))
        logger.info("Cleanup scheduled", interval_hours=interval_hours)

    async def stop_scheduled_cleanup(self) -> None:
        """Cancel the recurring timer; an in-flight run is cancelled, not drained."""

        if not self._schedule_task:
            return
        self._stop_event.set()
        self._schedule_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._schedule_task
        self._schedule_task = None
        self.interval_hours = None
        logger.info("Scheduled cleanup stopped")

    async def get_archive_statistics(self) -> Dict[str, Any]:
        session = await self._ensure_session()
        async with session as managed_session:
            archived = (
                await managed_session.execute(
                    select(
                        func.count(),
                        func.min(ArchivedTransaction.created_at),
                        func.max(ArchivedTransaction.created_at),
                        func.coalesce(func.sum(ArchivedTransaction.amount), 0),
                    )
                )
            ).one()
            webhooks = (
                await managed_session.execute(
                    select(
                        func.count(),
                        func.min(WebhookLog.created_at),
                        func.count(case((WebhookLog.status == WebhookStatusEnum.SUCCESS, 1))),
                        func.count(case((WebhookLog.status == WebhookStatusEnum.FAILED, 1))),
                    )
                )
            ).one()

        return {
            "archived_transactions": {
                "total": int(archived[0] or 0),
                "oldest_date": _isoformat(archived[1]),
                "newest_date": _isoformat(archived[2]),
                "total_amount": float(archived[3] or 0),
            },
            "webhook_logs": {
                "total": int(webhooks[0] or 0),
                "oldest_date": _isoformat(webhooks[1]),
                "success_count": int(webhooks[2] or 0),
                "failed_count": int(webhooks[3] or 0),
            },
        }

    async def get_cleanup_recommendations(self) -> Dict[str, Any]:
        stats = await self.get_archive_statistics()
        webhook_total = stats["webhook_logs"]["total"]
        archive_days = self._default_config.transaction_archive_days

        session = await self._ensure_session()
        async with session as managed_session:
            old_transactions = await managed_session.scalar(
                select(func.count()).select_from(Transaction).where(*self._archivable_criteria(archive_days))
            )
        old_transactions = int(old_transactions or 0)

        recommendations: List[str] = []
        if webhook_total > WEBHOOK_LOG_RECOMMENDATION_THRESHOLD:
            recommendations.append(f"High number of webhook logs ({webhook_total}). Consider cleanup.")
        if old_transactions > TRANSACTION_RECOMMENDATION_THRESHOLD:
            recommendations.append(
                f"{old_transactions} old transactions ready for archiving (>{archive_days} days)."
            )

        return {
            "should_cleanup": bool(recommendations),
            "recommendations": recommendations,
            "estimated_savings": {
                "webhook_logs": int(webhook_total * ESTIMATED_WEBHOOK_SAVINGS_RATIO),
                "transactions": old_transactions,
            },
        }

    async def get_cleanup_config_from_settings(self) -> CleanupConfig:
        """Overlay ``system_settings`` cleanup overrides on the default config."""

        config = replace(self._default_config)
        try:
            session = await self._ensure_session()
            async with session as managed_session:
                rows = (
                    await managed_session.execute(
                        select(SystemSetting.setting_key, SystemSetting.setting_value).where(
                            SystemSetting.category == CLEANUP_SETTINGS_CATEGORY
                        )
                    )
                ).all()
            for key, value in rows:
                if key == "webhook_retention_days":
                    config.webhook_retention_days = int(value)
                elif key == "transaction_archive_days":
                    config.transaction_archive_days = int(value)
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            logger.error("Failed to load cleanup config from settings", error=str(exc))
            return replace(self._default_config)
        return config

    async def _delete_old_webhook_logs(self, retention_days: int) -> int:
        cutoff = _utcnow() - timedelta(days=retention_days)
        session = await self._ensure_session()
        async with session as managed_session:
            async with managed_session.begin():
                result = await managed_session.execute(delete(WebhookLog).where(WebhookLog.created_at < cutoff))
        deleted = int(result.rowcount or 0)
        logger.info("Old webhook logs deleted", deleted=deleted, retention_days=retention_days)
        return deleted

    async def _archive_old_transactions(self, archive_days: int) -> int:
        """Copy archivable rows into ``archived_transactions`` and delete them in one transaction."""

        criteria = self._archivable_criteria(archive_days)
        source = Transaction.__table__
        target = ArchivedTransaction.__table__
        copied_columns = [column.name for column in source.columns]

        session = await self._ensure_session()
        async with session as managed_session:
            async with managed_session.begin():
                selection = select(
                    *(source.c[name] for name in copied_columns),
                    literal(_utcnow(), type_=DateTime(timezone=True)),
                ).where(*criteria)
                await managed_session.execute(
                    insert(target).from_select(
                        [*(target.c[name] for name in copied_columns), target.c.archived_at],
                        selection,
                    )
                )
                result = await managed_session.execute(delete(Transaction).where(*criteria))
        archived = int(result.rowcount or 0)
        logger.info("Old transactions archived", archived=archived, archive_days=archive_days)
        return archived

    @staticmethod
    def _archivable_criteria(archive_days: int) -> list:
        cutoff = _utcnow() - timedelta(days=archive_days)
        return [Transaction.created_at < cutoff, Transaction.status == TRANSACTION_STATUS_COMPLETED]

    async def _run_loop(self, interval_seconds: float, config: CleanupConfig | None) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_cleanup(config)
            except CleanupAlreadyRunningError:
                logger.warning("Scheduled cleanup skipped", reason="cleanup already running")
            except Exception as exc:
                logger.exception("Scheduled cleanup iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session


_shared_service: CleanupService | None = None


def get_cleanup_service(session_factory: SessionFactory) -> CleanupService:
    """Process-wide cleanup service so every caller shares one running guard.

    The first caller's ``session_factory`` is kept; later calls return that instance.
    """

    global _shared_service
    if _shared_service is None:
        _shared_service = CleanupService(session_factory)
    return _shared_service


def _isoformat(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return str(value)


__all__ = [
    "CleanupAlreadyRunningError",
    "CleanupConfig",
    "CleanupReport",
    "CleanupService",
    "EMERGENCY_CLEANUP_CONFIG",
    "get_cleanup_service",
]
