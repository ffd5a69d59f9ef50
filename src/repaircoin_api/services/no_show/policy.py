"""Per-shop no-show policy store with platform defaults and validation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.models.no_show import ShopNoShowPolicy


class PolicyValidationError(ValueError):
    """Raised when a policy update violates a field range or threshold ordering."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


@dataclass(slots=True)
class NoShowPolicy:
    """Effective no-show policy for one shop."""

    shop_id: str
    enabled: bool = True
    grace_period_minutes: int = 15
    minimum_cancellation_hours: int = 4
    auto_detection_enabled: bool = False
    auto_detection_delay_hours: int = 2
    caution_threshold: int = 2
    caution_advance_booking_hours: int = 24
    deposit_threshold: int = 3
    deposit_amount: Decimal = Decimal("25.00")
    deposit_advance_booking_hours: int = 48
    deposit_reset_after_successful: int = 3
    max_rcn_redemption_percent: int = 80
    suspension_threshold: int = 5
    suspension_duration_days: int = 30
    send_email_tier1: bool = True
    send_email_tier2: bool = True
    send_email_tier3: bool = True
    send_email_tier4: bool = True
    send_sms_tier2: bool = False
    send_sms_tier3: bool = True
    send_sms_tier4: bool = True
    send_push_notifications: bool = True
    allow_disputes: bool = True
    dispute_window_days: int = 7
    auto_approve_first_offense: bool = True
    require_shop_review: bool = True

    def as_dict(self) -> Dict[str, Any]:
        """Serialize using the public camelCase field names."""

        values = asdict(self)
        payload: Dict[str, Any] = {"shopId": self.shop_id}
        for field_name, column in POLICY_FIELD_COLUMNS.items():
            payload[field_name] = values[column]
        payload["depositAmount"] = float(self.deposit_amount)
        return payload


def default_policy(shop_id: str) -> NoShowPolicy:
    return NoShowPolicy(shop_id=shop_id)


# Public field name -> ``shop_no_show_policy`` column.
POLICY_FIELD_COLUMNS: Dict[str, str] = {
    "enabled": "enabled",
    "gracePeriodMinutes": "grace_period_minutes",
    "minimumCancellationHours": "minimum_cancellation_hours",
    "autoDetectionEnabled": "auto_detection_enabled",
    "autoDetectionDelayHours": "auto_detection_delay_hours",
    "cautionThreshold": "caution_threshold",
    "cautionAdvanceBookingHours": "caution_advance_booking_hours",
    "depositThreshold": "deposit_threshold",
    "depositAmount": "deposit_amount",
    "depositAdvanceBookingHours": "deposit_advance_booking_hours",
    "depositResetAfterSuccessful": "deposit_reset_after_successful",
    "maxRcnRedemptionPercent": "max_rcn_redemption_percent",
    "suspensionThreshold": "suspension_threshold",
    "suspensionDurationDays": "suspension_duration_days",
    "sendEmailTier1": "send_email_tier1",
    "sendEmailTier2": "send_email_tier2",
    "sendEmailTier3": "send_email_tier3",
    "sendEmailTier4": "send_email_tier4",
    "sendSmsTier2": "send_sms_tier2",
    "sendSmsTier3": "send_sms_tier3",
    "sendSmsTier4": "send_sms_tier4",
    "sendPushNotifications": "send_push_notifications",
    "allowDisputes": "allow_disputes",
    "disputeWindowDays": "dispute_window_days",
    "autoApproveFirstOffense": "auto_approve_first_offense",
    "requireShopReview": "require_shop_review",
}

_IGNORED_FIELDS = frozenset({"shopId", "shop_id"})

# Checked in this order; the first failure rejects the update.
_THRESHOLD_RANGES: tuple[tuple[str, int, int, str], ...] = (
    ("cautionThreshold", 1, 10, "Caution threshold must be between 1 and 10"),
    ("depositThreshold", 1, 20, "Deposit threshold must be between 1 and 20"),
    ("suspensionThreshold", 1, 50, "Suspension threshold must be between 1 and 50"),
)

_INTEGER_RANGES: tuple[tuple[str, int, int, str], ...] = (
    ("cautionAdvanceBookingHours", 0, 168, "Caution advance booking hours must be between 0 and 168 (7 days)"),
    ("depositAdvanceBookingHours", 0, 168, "Deposit advance booking hours must be between 0 and 168 (7 days)"),
    ("depositResetAfterSuccessful", 1, 20, "Deposit reset count must be between 1 and 20"),
    ("maxRcnRedemptionPercent", 0, 100, "Max RCN redemption percent must be between 0 and 100"),
    ("suspensionDurationDays", 1, 365, "Suspension duration must be between 1 and 365 days"),
    ("gracePeriodMinutes", 0, 120, "Grace period must be between 0 and 120 minutes"),
    ("minimumCancellationHours", 0, 168, "Minimum cancellation hours must be between 0 and 168 (7 days)"),
    ("disputeWindowDays", 1, 30, "Dispute window must be between 1 and 30 days"),
    ("autoDetectionDelayHours", 0, 24, "Auto-detection delay must be between 0 and 24 hours"),
)

_DEPOSIT_AMOUNT_RANGE = (Decimal("0"), Decimal("500"))

_BOOLEAN_FIELDS: tuple[str, ...] = (
    "enabled",
    "autoDetectionEnabled",
    "sendEmailTier1",
    "sendEmailTier2",
    "sendEmailTier3",
    "sendEmailTier4",
    "sendSmsTier2",
    "sendSmsTier3",
    "sendSmsTier4",
    "sendPushNotifications",
    "allowDisputes",
    "autoApproveFirstOffense",
    "requireShopReview",
)


def _coerce_integer(field_name: str, value: Any, message: str) -> int:
    if isinstance(value, bool):
        raise PolicyValidationError(field_name, message)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise PolicyValidationError(field_name, message)


def _apply_integer_ranges(
    cleaned: Mapping[str, Any],
    ranges: tuple[tuple[str, int, int, str], ...],
    changes: Dict[str, Any],
) -> None:
    for field_name, low, high, message in ranges:
        if field_name not in cleaned:
            continue
        value = _coerce_integer(field_name, cleaned[field_name], message)
        if value < low or value > high:
            raise PolicyValidationError(field_name, message)
        changes[POLICY_FIELD_COLUMNS[field_name]] = value


def _coerce_amount(value: Any) -> Decimal:
    message = "Deposit amount must be between $0 and $500"
    if isinstance(value, bool):
        raise PolicyValidationError("depositAmount", message)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise PolicyValidationError("depositAmount", message) from None
    low, high = _DEPOSIT_AMOUNT_RANGE
    if not amount.is_finite() or amount < low or amount > high:
        raise PolicyValidationError("depositAmount", message)
    return amount.quantize(Decimal("0.01"))


def validate_policy_update(current: NoShowPolicy, updates: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate a partial update against ``current`` and return column -> value changes.

    Nothing is written here; callers persist the returned mapping only when it
    is returned without raising.
    """

    cleaned = {key: value for key, value in updates.items() if key not in _IGNORED_FIELDS}

    for key in cleaned:
        if key not in POLICY_FIELD_COLUMNS:
            raise PolicyValidationError(key, f"Unknown policy field: {key}")

    changes: Dict[str, Any] = {}
    _apply_integer_ranges(cleaned, _THRESHOLD_RANGES, changes)

    caution = changes.get("caution_threshold", current.caution_threshold)
    deposit = changes.get("deposit_threshold", current.deposit_threshold)
    suspension = changes.get("suspension_threshold", current.suspension_threshold)
    if deposit <= caution:
        raise PolicyValidationError("depositThreshold", "Deposit threshold must be greater than caution threshold")
    if suspension <= deposit:
        raise PolicyValidationError("suspensionThreshold", "Suspension threshold must be greater than deposit threshold")

    _apply_integer_ranges(cleaned, _INTEGER_RANGES, changes)

    if "depositAmount" in cleaned:
        changes["deposit_amount"] = _coerce_amount(cleaned["depositAmount"])

    for field_name in _BOOLEAN_FIELDS:
        if field_name not in cleaned:
            continue
        value = cleaned[field_name]
        if not isinstance(value, bool):
            raise PolicyValidationError(field_name, f"{field_name} must be true or false")
        changes[POLICY_FIELD_COLUMNS[field_name]] = value

    return changes


def _policy_from_row(row: ShopNoShowPolicy) -> NoShowPolicy:
    values = {column: getattr(row, column) for column in POLICY_FIELD_COLUMNS.values()}
    values["deposit_amount"] = Decimal(str(values["deposit_amount"]))
    return NoShowPolicy(shop_id=row.shop_id, **values)


class NoShowPolicyService:
    """Reads and writes ``shop_no_show_policy`` rows."""

    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def get_shop_policy(self, shop_id: str) -> NoShowPolicy:
        """Return the shop's policy, or the platform default when none is stored."""

        row = await self._get_row(shop_id)
        if row is None:
            return default_policy(shop_id)
        return _policy_from_row(row)

    async def update_shop_policy(self, shop_id: str, updates: Mapping[str, Any]) -> NoShowPolicy:
        row = await self._get_row(shop_id)
        current = _policy_from_row(row) if row is not None else default_policy(shop_id)
        changes = validate_policy_update(current, updates)

        if row is None:
            row = ShopNoShowPolicy(**self._default_columns(shop_id))
            self._db.add(row)
        for column, value in changes.items():
            setattr(row, column, value)

        await self._db.commit()
        await self._db.refresh(row)
        logger.info("No-show policy updated", shop_id=shop_id, fields=sorted(changes))
        return _policy_from_row(row)

    async def initialize_shop_policy(self, shop_id: str) -> NoShowPolicy:
        """Materialize the default policy row for a shop if it does not exist yet."""

        row = await self._get_row(shop_id)
        if row is None:
            row = ShopNoShowPolicy(**self._default_columns(shop_id))
            self._db.add(row)
            await self._db.commit()
            await self._db.refresh(row)
            logger.info("No-show policy initialized with defaults", shop_id=shop_id)
        return _policy_from_row(row)

    async def _get_row(self, shop_id: str) -> ShopNoShowPolicy | None:
        result = await self._db.execute(select(ShopNoShowPolicy).where(ShopNoShowPolicy.shop_id == shop_id))
        return result.scalar_one_or_none()

    @staticmethod
    def _default_columns(shop_id: str) -> Dict[str, Any]:
        defaults = default_policy(shop_id)
        return {item.name: getattr(defaults, item.name) for item in fields(defaults)}


__all__ = [
    "NoShowPolicy",
    "NoShowPolicyService",
    "POLICY_FIELD_COLUMNS",
    "PolicyValidationError",
    "default_policy",
    "validate_policy_update",
]
