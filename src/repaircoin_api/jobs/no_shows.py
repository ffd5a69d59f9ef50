"""Scheduled automatic no-show detection."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.services.no_show import AutoNoShowDetectionService
from repaircoin_api.services.notifications import NoShowNotificationService

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]

_detection_lock = asyncio.Lock()


async def run_auto_no_show_detection(
    *,
    session_factory: SessionFactory,
    notifier: NoShowNotificationService | None = None,
) -> Dict[str, Any]:
    """Mark overdue paid orders as no-shows; skips when a previous run is still going."""

    if _detection_lock.locked():
        logger.warning("Auto no-show detection skipped", reason="detection already running")
        return {"skipped": True}

    async with _detection_lock:
        maybe_session = session_factory()
        session = maybe_session if isinstance(maybe_session, AsyncSession) else await maybe_session
        async with session as managed_session:
            service = AutoNoShowDetectionService(
                managed_session,
                notifier=notifier if notifier is not None else NoShowNotificationService(),
            )
            report = await service.run_detection()

    summary = report.as_dict()
    logger.bind(summary=summary).info("Auto no-show detection job completed")
    return summary


__all__ = ["run_auto_no_show_detection"]
