from decimal import Decimal

import pytest

from factories import create_shop
from repaircoin_api.services.no_show import (
    POLICY_FIELD_COLUMNS,
    NoShowPolicyService,
    PolicyValidationError,
    default_policy,
)
from repaircoin_api.services.no_show.policy import validate_policy_update


def test_field_map_covers_every_policy_column() -> None:
    policy = default_policy("shop-1")
    payload = policy.as_dict()

    assert set(payload) == {"shopId", *POLICY_FIELD_COLUMNS}
    assert payload["depositAmount"] == 25.0
    assert payload["cautionThreshold"] == 2
    assert payload["sendSmsTier2"] is False


@pytest.mark.parametrize(
    ("updates", "field"),
    [
        ({"cautionThreshold": 3, "depositThreshold": 3}, "depositThreshold"),
        ({"suspensionThreshold": 3}, "suspensionThreshold"),
        ({"cautionThreshold": 11}, "cautionThreshold"),
        ({"depositAmount": 501}, "depositAmount"),
        ({"depositAmount": "lots"}, "depositAmount"),
        ({"gracePeriodMinutes": 121}, "gracePeriodMinutes"),
        ({"disputeWindowDays": 0}, "disputeWindowDays"),
        ({"maxRcnRedemptionPercent": 100.5}, "maxRcnRedemptionPercent"),
        ({"allowDisputes": "yes"}, "allowDisputes"),
        ({"favoriteColor": "blue"}, "favoriteColor"),
    ],
)
def test_invalid_updates_are_rejected(updates, field) -> None:
    with pytest.raises(PolicyValidationError) as excinfo:
        validate_policy_update(default_policy("shop-1"), updates)
    assert excinfo.value.field == field


def test_threshold_order_uses_current_values() -> None:
    current = default_policy("shop-1")

    changes = validate_policy_update(current, {"suspensionThreshold": 4})

    assert changes == {"suspension_threshold": 4}


def test_valid_update_maps_to_columns() -> None:
    changes = validate_policy_update(
        default_policy("shop-1"),
        {"shopId": "ignored", "depositAmount": 40, "gracePeriodMinutes": 30, "sendSmsTier2": True},
    )

    assert changes == {
        "deposit_amount": Decimal("40.00"),
        "grace_period_minutes": 30,
        "send_sms_tier2": True,
    }


@pytest.mark.asyncio
async def test_missing_policy_falls_back_to_default(session) -> None:
    policy = await NoShowPolicyService(session).get_shop_policy("shop-1")

    assert policy == default_policy("shop-1")


@pytest.mark.asyncio
async def test_update_round_trip_leaves_other_fields(session) -> None:
    await create_shop(session)
    service = NoShowPolicyService(session)

    updated = await service.update_shop_policy("shop-1", {"depositAmount": 40, "gracePeriodMinutes": 30})
    fetched = await service.get_shop_policy("shop-1")

    assert updated == fetched
    assert fetched.deposit_amount == Decimal("40.00")
    assert fetched.grace_period_minutes == 30
    expected = default_policy("shop-1")
    expected.deposit_amount = Decimal("40.00")
    expected.grace_period_minutes = 30
    assert fetched == expected


@pytest.mark.asyncio
async def test_rejected_update_writes_nothing(session) -> None:
    await create_shop(session)
    service = NoShowPolicyService(session)
    await service.update_shop_policy("shop-1", {"cautionThreshold": 3, "depositThreshold": 4, "suspensionThreshold": 6})

    with pytest.raises(PolicyValidationError):
        await service.update_shop_policy("shop-1", {"gracePeriodMinutes": 20, "depositAmount": 900})

    policy = await service.get_shop_policy("shop-1")
    assert policy.caution_threshold == 3
    assert policy.grace_period_minutes == 15
    assert policy.deposit_amount == Decimal("25.00")


@pytest.mark.asyncio
async def test_initialize_is_idempotent(session) -> None:
    await create_shop(session)
    service = NoShowPolicyService(session)

    first = await service.initialize_shop_policy("shop-1")
    await service.update_shop_policy("shop-1", {"disputeWindowDays": 14})
    second = await service.initialize_shop_policy("shop-1")

    assert first.dispute_window_days == 7
    assert second.dispute_window_days == 14
