"""Periodic refresh of cached shop partner tiers."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.services.tiers import JsonRpcBalanceReader, RCGBalanceReader, RCGService

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def refresh_shop_tiers(
    *,
    session_factory: SessionFactory,
    reader: RCGBalanceReader | None = None,
) -> Dict[str, Any]:
    """Re-read RCG balances for active shops; failed reads keep the cached tier."""

    maybe_session = session_factory()
    session = maybe_session if isinstance(maybe_session, AsyncSession) else await maybe_session

    async with session as managed_session:
        service = RCGService(managed_session, reader or JsonRpcBalanceReader())
        summary = await service.refresh_active_shop_tiers()

    logger.bind(summary=summary).info("Shop tier refresh completed")
    return summary


__all__ = ["refresh_shop_tiers"]
