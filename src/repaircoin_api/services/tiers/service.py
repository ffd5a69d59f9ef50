"""Shop tier lookups backed by the RCG balance reader."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.models.shop import Shop, ShopTierEnum

from .balance_reader import RCGBalanceReader
from .classifier import classify_tier, tier_benefits


class ShopNotFoundError(RuntimeError):
    """Raised when a shop id does not resolve to a shop row."""


@dataclass(slots=True)
class ShopTierInfo:
    shop_id: str
    wallet_address: str
    rcg_balance: str
    tier: ShopTierEnum
    rcn_price: Decimal
    tier_benefits: List[str] = field(default_factory=list)


@dataclass(slots=True)
class TierDistribution:
    none: int = 0
    standard: int = 0
    premium: int = 0
    elite: int = 0
    total: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "none": self.none,
            "standard": self.standard,
            "premium": self.premium,
            "elite": self.elite,
            "total": self.total,
        }


class RCGService:
    """Resolves shop partner tiers from live RCG balances and caches them on the shop row."""

    def __init__(self, session: AsyncSession, reader: RCGBalanceReader) -> None:
        self._db = session
        self._reader = reader

    async def get_shop_tier_info(self, shop_id: str) -> ShopTierInfo | None:
        """Return live tier info, or ``None`` when the shop, its wallet or the balance read is missing."""

        shop = await self._db.get(Shop, shop_id)
        if shop is None or not shop.wallet_address:
            return None

        result = await self._reader.get_balance(shop.wallet_address)
        if not result.ok or result.balance is None:
            logger.warning(
                "Shop tier lookup skipped after failed balance read",
                shop_id=shop_id,
                error=result.error,
            )
            return None

        classification = classify_tier(result.balance)
        return ShopTierInfo(
            shop_id=shop.shop_id,
            wallet_address=shop.wallet_address,
            rcg_balance=str(result.balance),
            tier=classification.tier,
            rcn_price=classification.rcn_price,
            tier_benefits=tier_benefits(classification.tier),
        )

    async def update_shop_tier(self, shop_id: str) -> ShopTierInfo | None:
        """Refresh the cached tier columns; failed reads leave the cached tier untouched."""

        shop = await self._db.get(Shop, shop_id)
        if shop is None:
            raise ShopNotFoundError(f"Shop {shop_id} not found")

        info = await self.get_shop_tier_info(shop_id)
        if info is None:
            return None

        previous_tier = shop.rcg_tier
        shop.rcg_tier = info.tier
        shop.rcg_balance = Decimal(info.rcg_balance)
        shop.tier_updated_at = datetime.now(timezone.utc)
        await self._db.commit()

        if previous_tier != info.tier:
            logger.info(
                "Shop tier changed",
                shop_id=shop_id,
                previous_tier=getattr(previous_tier, "value", previous_tier),
                tier=info.tier.value,
            )
        return info

    async def refresh_active_shop_tiers(self) -> Dict[str, int]:
        """Refresh cached tiers for every active, verified shop with a wallet."""

        shops = await self._active_shops()
        summary = {"checked": 0, "updated": 0, "failed": 0}
        for shop in shops:
            summary["checked"] += 1
            info = await self.update_shop_tier(shop.shop_id)
            if info is None:
                summary["failed"] += 1
            else:
                summary["updated"] += 1
        return summary

    async def get_shop_tier_distribution(self) -> TierDistribution:
        shops = await self._active_shops(require_wallet=False)
        distribution = TierDistribution(total=len(shops))
        for shop in shops:
            if not shop.wallet_address:
                continue
            result = await self._reader.get_balance(shop.wallet_address)
            tier = classify_tier(result.balance if result.ok else None).tier
            setattr(distribution, tier.value, getattr(distribution, tier.value) + 1)
        return distribution

    async def get_rcg_metrics(self) -> Dict[str, Any]:
        stats = await self._reader.get_contract_stats()
        distribution = await self.get_shop_tier_distribution()
        return {
            "contract_address": stats.contract_address,
            "total_supply": str(stats.total_supply),
            "circulating_supply": str(stats.circulating_supply),
            "shop_tier_distribution": distribution.as_dict(),
        }

    async def _active_shops(self, *, require_wallet: bool = True) -> List[Shop]:
        stmt = select(Shop).where(Shop.active.is_(True), Shop.verified.is_(True)).order_by(Shop.shop_id)
        if require_wallet:
            stmt = stmt.where(Shop.wallet_address.is_not(None))
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


__all__ = ["RCGService", "ShopNotFoundError", "ShopTierInfo", "TierDistribution"]
