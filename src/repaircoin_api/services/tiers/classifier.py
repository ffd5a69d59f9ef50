"""Map RCG governance token balances onto partner tiers and RCN pricing."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from repaircoin_api.models.shop import ShopTierEnum


STANDARD_TIER_MINIMUM = Decimal("10000")
PREMIUM_TIER_MINIMUM = Decimal("50000")
ELITE_TIER_MINIMUM = Decimal("200000")

# Ordered from the highest boundary down so the first match wins.
_TIER_BOUNDARIES: tuple[tuple[Decimal, ShopTierEnum], ...] = (
    (ELITE_TIER_MINIMUM, ShopTierEnum.ELITE),
    (PREMIUM_TIER_MINIMUM, ShopTierEnum.PREMIUM),
    (STANDARD_TIER_MINIMUM, ShopTierEnum.STANDARD),
)

RCN_PRICE_BY_TIER: dict[ShopTierEnum, Decimal] = {
    ShopTierEnum.NONE: Decimal("0.10"),
    ShopTierEnum.STANDARD: Decimal("0.10"),
    ShopTierEnum.PREMIUM: Decimal("0.08"),
    ShopTierEnum.ELITE: Decimal("0.06"),
}

TIER_BENEFITS: dict[ShopTierEnum, tuple[str, ...]] = {
    ShopTierEnum.NONE: ("Minimum 10,000 RCG required to become a partner shop",),
    ShopTierEnum.STANDARD: (
        "Basic shop dashboard and analytics",
        "Standard customer support",
        "Cross-shop redemption participation",
        "Basic marketing tools",
    ),
    ShopTierEnum.PREMIUM: (
        "20% discount on RCN purchases",
        "Advanced analytics and reporting",
        "Priority customer support",
        "Premium shop listing in customer app",
        "Custom branding options",
        "Early access to new features",
    ),
    ShopTierEnum.ELITE: (
        "40% discount on RCN purchases",
        "VIP shop status in network",
        "Dedicated account manager",
        "Custom marketing campaigns",
        "Revenue optimization consulting",
        "Beta testing participation",
        "Enhanced cross-shop visibility",
    ),
}


@dataclass(frozen=True, slots=True)
class TierClassification:
    tier: ShopTierEnum
    rcn_price: Decimal


def parse_balance(balance: Any) -> Decimal | None:
    """Return a finite, non-negative balance or ``None`` when the input is unusable."""

    if balance is None or isinstance(balance, bool):
        return None
    try:
        value = balance if isinstance(balance, Decimal) else Decimal(str(balance).strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


def classify_tier(balance: Any) -> TierClassification:
    """Classify a whole-token RCG balance.

    Accepts decimal strings, ``Decimal`` or integers. Input that cannot be read
    as a finite non-negative amount classifies as ``none``.
    """

    value = parse_balance(balance)
    tier = ShopTierEnum.NONE
    if value is not None:
        for minimum, candidate in _TIER_BOUNDARIES:
            if value >= minimum:
                tier = candidate
                break
    return TierClassification(tier=tier, rcn_price=RCN_PRICE_BY_TIER[tier])


def _coerce_tier(tier: ShopTierEnum | str | None) -> ShopTierEnum:
    if isinstance(tier, ShopTierEnum):
        return tier
    try:
        return ShopTierEnum(str(tier).lower())
    except ValueError:
        return ShopTierEnum.NONE


def rcn_price_for_tier(tier: ShopTierEnum | str | None) -> Decimal:
    return RCN_PRICE_BY_TIER[_coerce_tier(tier)]


def tier_benefits(tier: ShopTierEnum | str | None) -> list[str]:
    return list(TIER_BENEFITS[_coerce_tier(tier)])


__all__ = [
    "ELITE_TIER_MINIMUM",
    "PREMIUM_TIER_MINIMUM",
    "RCN_PRICE_BY_TIER",
    "STANDARD_TIER_MINIMUM",
    "TierClassification",
    "classify_tier",
    "parse_balance",
    "rcn_price_for_tier",
    "tier_benefits",
]
