"""Request-scoped service construction for the HTTP layer."""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.db.session import async_session, get_session
from repaircoin_api.services.cleanup import CleanupService, get_cleanup_service
from repaircoin_api.services.no_show import DisputeService, NoShowPolicyService, NoShowService
from repaircoin_api.services.notifications import NoShowNotificationService
from repaircoin_api.services.tiers import JsonRpcBalanceReader, RCGBalanceReader, RCGService
from repaircoin_api.services.webhooks import WebhookLoggingService


def get_balance_reader() -> RCGBalanceReader:
    return JsonRpcBalanceReader()


def get_notifier() -> NoShowNotificationService:
    return NoShowNotificationService()


def get_rcg_service(
    session: AsyncSession = Depends(get_session),
    reader: RCGBalanceReader = Depends(get_balance_reader),
) -> RCGService:
    return RCGService(session, reader)


def get_policy_service(session: AsyncSession = Depends(get_session)) -> NoShowPolicyService:
    return NoShowPolicyService(session)


def get_no_show_service(
    session: AsyncSession = Depends(get_session),
    notifier: NoShowNotificationService = Depends(get_notifier),
) -> NoShowService:
    return NoShowService(session, notifier=notifier)


def get_dispute_service(session: AsyncSession = Depends(get_session)) -> DisputeService:
    return DisputeService(session)


def get_webhook_logging_service(session: AsyncSession = Depends(get_session)) -> WebhookLoggingService:
    return WebhookLoggingService(session)


def get_app_cleanup_service(request: Request) -> CleanupService:
    """The application-scoped cleanup service held on ``app.state``."""

    service = getattr(request.app.state, "cleanup_service", None)
    if service is None:
        service = get_cleanup_service(async_session)
        request.app.state.cleanup_service = service
    return service
