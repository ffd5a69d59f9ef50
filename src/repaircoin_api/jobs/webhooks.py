"""Jobs that keep webhook delivery logs moving and report their health."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.core.settings import get_settings
from repaircoin_api.services.webhooks import WebhookHealthAlertNotifier, WebhookLoggingService

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def _open_session(session_factory: SessionFactory) -> AsyncSession:
    maybe_session = session_factory()
    return maybe_session if isinstance(maybe_session, AsyncSession) else await maybe_session


async def run_webhook_retry_sweep(*, session_factory: SessionFactory) -> Dict[str, Any]:
    """Queue eligible failed webhook logs for another delivery attempt."""

    session = await _open_session(session_factory)
    async with session as managed_session:
        service = WebhookLoggingService(managed_session)
        candidates = await service.get_webhooks_for_retry()
        for log in candidates:
            await service.mark_for_retry(log.id)

    summary = {"queued": len(candidates)}
    logger.bind(summary=summary).info("Webhook retry sweep completed")
    return summary


async def run_webhook_health_check(
    *,
    session_factory: SessionFactory,
    notifier: WebhookHealthAlertNotifier | None = None,
) -> Dict[str, Any]:
    """Report per-source webhook health and email operators when issues are found."""

    session = await _open_session(session_factory)
    async with session as managed_session:
        report = await WebhookLoggingService(managed_session).check_webhook_health()

    summary: Dict[str, Any] = {
        "healthy": report.healthy,
        "issues": list(report.issues),
        "sources": len(report.metrics),
        "alerted": 0,
    }
    if report.healthy:
        logger.bind(summary=summary).info("Webhook health check passed")
    else:
        alerts = notifier if notifier is not None else WebhookHealthAlertNotifier(get_settings())
        summary["alerted"] = await alerts.notify(report)
        logger.bind(summary=summary).warning("Webhook health check found issues")
    return summary


__all__ = ["run_webhook_health_check", "run_webhook_retry_sweep"]
