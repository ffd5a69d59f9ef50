from decimal import Decimal

import pytest

from repaircoin_api.models.shop import ShopTierEnum
from repaircoin_api.services.tiers import classify_tier, rcn_price_for_tier, tier_benefits
from repaircoin_api.services.tiers.classifier import parse_balance


@pytest.mark.parametrize(
    ("balance", "tier"),
    [
        ("0", ShopTierEnum.NONE),
        ("9999.99", ShopTierEnum.NONE),
        ("10000", ShopTierEnum.STANDARD),
        ("49999.99", ShopTierEnum.STANDARD),
        ("50000", ShopTierEnum.PREMIUM),
        ("199999.99", ShopTierEnum.PREMIUM),
        ("200000", ShopTierEnum.ELITE),
        ("1000000000", ShopTierEnum.ELITE),
    ],
)
def test_classify_tier_boundaries(balance: str, tier: ShopTierEnum) -> None:
    assert classify_tier(balance).tier == tier


@pytest.mark.parametrize(
    ("balance", "price"),
    [
        ("0", Decimal("0.10")),
        ("10000", Decimal("0.10")),
        ("50000", Decimal("0.08")),
        ("200000", Decimal("0.06")),
    ],
)
def test_classify_tier_prices(balance: str, price: Decimal) -> None:
    assert classify_tier(balance).rcn_price == price


def test_classify_tier_accepts_numeric_types() -> None:
    assert classify_tier(Decimal("75000")).tier == ShopTierEnum.PREMIUM
    assert classify_tier(250000).tier == ShopTierEnum.ELITE


@pytest.mark.parametrize("balance", [None, "", "abc", "-1", "NaN", "Infinity", True])
def test_unusable_balances_classify_as_none(balance) -> None:
    result = classify_tier(balance)
    assert result.tier == ShopTierEnum.NONE
    assert result.rcn_price == Decimal("0.10")


def test_classification_is_monotonic() -> None:
    order = [ShopTierEnum.NONE, ShopTierEnum.STANDARD, ShopTierEnum.PREMIUM, ShopTierEnum.ELITE]
    previous_rank = 0
    previous_price = Decimal("1")
    for balance in range(0, 300_001, 2_500):
        result = classify_tier(balance)
        rank = order.index(result.tier)
        assert rank >= previous_rank
        assert result.rcn_price <= previous_price
        previous_rank, previous_price = rank, result.rcn_price


def test_parse_balance_rejects_negative_and_non_finite() -> None:
    assert parse_balance("12.5") == Decimal("12.5")
    assert parse_balance("-0.01") is None
    assert parse_balance("inf") is None


def test_tier_helpers_accept_strings() -> None:
    assert rcn_price_for_tier("PREMIUM") == Decimal("0.08")
    assert rcn_price_for_tier("unknown") == Decimal("0.10")
    assert "40% discount on RCN purchases" in tier_benefits(ShopTierEnum.ELITE)
    assert tier_benefits("bogus") == ["Minimum 10,000 RCG required to become a partner shop"]
