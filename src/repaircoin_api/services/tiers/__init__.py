"""Shop partner tier classification."""

from .balance_reader import BalanceResult, ContractStats, JsonRpcBalanceReader, RCGBalanceReader
from .classifier import TierClassification, classify_tier, rcn_price_for_tier, tier_benefits
from .service import RCGService, ShopNotFoundError, ShopTierInfo, TierDistribution

__all__ = [
    "BalanceResult",
    "ContractStats",
    "JsonRpcBalanceReader",
    "RCGBalanceReader",
    "RCGService",
    "ShopNotFoundError",
    "ShopTierInfo",
    "TierClassification",
    "TierDistribution",
    "classify_tier",
    "rcn_price_for_tier",
    "tier_benefits",
]
