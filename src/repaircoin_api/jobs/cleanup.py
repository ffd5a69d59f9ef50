"""Scheduled housekeeping entrypoint."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.services.cleanup import CleanupAlreadyRunningError, CleanupService, get_cleanup_service

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def run_scheduled_cleanup(
    *,
    session_factory: SessionFactory,
    cleanup_service: CleanupService | None = None,
) -> Dict[str, Any]:
    """Run cleanup with ``system_settings`` overrides; skips when a run is already in flight.

    The scheduler passes the application's ``cleanup_service`` so the running
    guard is shared with the admin routes and the interval loop.
    """

    service = cleanup_service if cleanup_service is not None else get_cleanup_service(session_factory)
    config = await service.get_cleanup_config_from_settings()
    try:
        report = await service.run_cleanup(config)
    except CleanupAlreadyRunningError:
        logger.warning("Scheduled cleanup skipped", reason="cleanup already running")
        return {"skipped": True}

    summary = report.as_dict()
    logger.bind(summary=summary).info("Scheduled cleanup job completed")
    return summary


__all__ = ["run_scheduled_cleanup"]
