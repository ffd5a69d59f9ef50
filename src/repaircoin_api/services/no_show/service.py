"""Customer no-show status, history recording and shop analytics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.models.customer import Customer, NoShowTierEnum
from repaircoin_api.models.no_show import NoShowHistory, ShopNoShowPolicy
from repaircoin_api.models.service_order import ServiceOrder, ServiceOrderStatusEnum
from repaircoin_api.services.notifications import NoShowNotificationService

from .policy import NoShowPolicy, NoShowPolicyService, default_policy


class CustomerNotFoundError(RuntimeError):
    """Raised when a wallet address has no customer row."""


TIER_ORDER: tuple[NoShowTierEnum, ...] = (
    NoShowTierEnum.NORMAL,
    NoShowTierEnum.WARNING,
    NoShowTierEnum.CAUTION,
    NoShowTierEnum.DEPOSIT_REQUIRED,
    NoShowTierEnum.SUSPENDED,
)
_TIER_RANK = {tier: rank for rank, tier in enumerate(TIER_ORDER)}

_APPOINTMENT_STATUSES = (
    ServiceOrderStatusEnum.PAID,
    ServiceOrderStatusEnum.COMPLETED,
    ServiceOrderStatusEnum.NO_SHOW,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _format_amount(amount: Decimal) -> str:
    return format(amount.normalize(), "f")


def _isoformat(value: datetime | None) -> str | None:
    value = _as_utc(value)
    return value.isoformat() if value else None


def tier_for_count(count: int, policy: NoShowPolicy) -> NoShowTierEnum:
    """Tier implied by a no-show count under a policy's thresholds."""

    if count >= policy.suspension_threshold:
        return NoShowTierEnum.SUSPENDED
    if count >= policy.deposit_threshold:
        return NoShowTierEnum.DEPOSIT_REQUIRED
    if count >= policy.caution_threshold:
        return NoShowTierEnum.CAUTION
    if count >= 1:
        return NoShowTierEnum.WARNING
    return NoShowTierEnum.NORMAL


@dataclass(slots=True)
class CustomerNoShowStatus:
    customer_address: str
    no_show_count: int
    tier: NoShowTierEnum
    deposit_required: bool
    last_no_show_at: datetime | None
    booking_suspended_until: datetime | None
    successful_appointments_since_tier3: int
    can_book: bool
    requires_deposit: bool
    minimum_advance_hours: int
    restrictions: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "customerAddress": self.customer_address,
            "noShowCount": self.no_show_count,
            "tier": self.tier.value,
            "depositRequired": self.deposit_required,
            "lastNoShowAt": _isoformat(self.last_no_show_at),
            "bookingSuspendedUntil": _isoformat(self.booking_suspended_until),
            "successfulAppointmentsSinceTier3": self.successful_appointments_since_tier3,
            "canBook": self.can_book,
            "requiresDeposit": self.requires_deposit,
            "minimumAdvanceHours": self.minimum_advance_hours,
            "restrictions": list(self.restrictions),
        }


@dataclass(slots=True)
class ShopNoShowAnalytics:
    total_no_shows: int = 0
    no_show_rate: float = 0.0
    tier1_customers: int = 0
    tier2_customers: int = 0
    tier3_customers: int = 0
    tier4_customers: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "totalNoShows": self.total_no_shows,
            "noShowRate": self.no_show_rate,
            "tier1Customers": self.tier1_customers,
            "tier2Customers": self.tier2_customers,
            "tier3Customers": self.tier3_customers,
            "tier4Customers": self.tier4_customers,
        }


def evaluate_status(customer: Customer, policy: NoShowPolicy, *, now: datetime | None = None) -> CustomerNoShowStatus:
    """Combine a customer's counters with a shop policy into booking restrictions."""

    now = now or _utcnow()
    tier = NoShowTierEnum(customer.no_show_tier or NoShowTierEnum.NORMAL)
    suspended_until = _as_utc(customer.booking_suspended_until)
    can_book = not (suspended_until is not None and suspended_until > now)

    restrictions: List[str] = []
    minimum_advance_hours = 0
    if tier == NoShowTierEnum.CAUTION:
        minimum_advance_hours = policy.caution_advance_booking_hours
        restrictions.append(f"Must book at least {policy.caution_advance_booking_hours} hours in advance")
    elif tier == NoShowTierEnum.DEPOSIT_REQUIRED:
        minimum_advance_hours = policy.deposit_advance_booking_hours
        restrictions.append(f"Must book at least {policy.deposit_advance_booking_hours} hours in advance")
        restrictions.append(f"${_format_amount(policy.deposit_amount)} refundable deposit required")
        restrictions.append(f"Maximum {policy.max_rcn_redemption_percent}% RCN redemption")
    elif tier == NoShowTierEnum.SUSPENDED:
        until_label = suspended_until.date().isoformat() if suspended_until else "unknown"
        restrictions.append(f"Booking suspended until {until_label}")

    deposit_required = bool(customer.deposit_required)
    return CustomerNoShowStatus(
        customer_address=customer.address,
        no_show_count=customer.no_show_count or 0,
        tier=tier,
        deposit_required=deposit_required,
        last_no_show_at=_as_utc(customer.last_no_show_at),
        booking_suspended_until=suspended_until,
        successful_appointments_since_tier3=customer.successful_appointments_since_tier3 or 0,
        can_book=can_book,
        requires_deposit=deposit_required,
        minimum_advance_hours=minimum_advance_hours,
        restrictions=restrictions,
    )


def evaluate_overall_status(customer: Customer, *, now: datetime | None = None) -> CustomerNoShowStatus:
    """Shop-agnostic status using the platform default policy and customer-facing wording."""

    policy = default_policy("default")
    status = evaluate_status(customer, policy, now=now)
    amount = _format_amount(policy.deposit_amount)

    restrictions: List[str] = []
    if status.tier == NoShowTierEnum.CAUTION:
        restrictions.append(f"Must book at least {policy.caution_advance_booking_hours} hours in advance")
        restrictions.append(f"Limited to {policy.max_rcn_redemption_percent}% RCN redemption per booking")
    elif status.tier == NoShowTierEnum.DEPOSIT_REQUIRED:
        restrictions.append(f"${amount} refundable deposit required for all bookings")
        restrictions.append(f"Must book at least {policy.deposit_advance_booking_hours} hours in advance")
        restrictions.append(f"Limited to {policy.max_rcn_redemption_percent}% RCN redemption per booking")
    elif status.tier == NoShowTierEnum.SUSPENDED:
        until = status.booking_suspended_until
        until_label = f"{until:%A, %B} {until.day}, {until.year}" if until else "unknown date"
        restrictions.append(f"Booking privileges suspended until {until_label}")
        restrictions.append(f"After suspension: ${amount} deposit required for all bookings")
        restrictions.append(
            f"After suspension: Must book at least {policy.deposit_advance_booking_hours} hours in advance"
        )
    status.restrictions = restrictions
    return status


class NoShowService:
    """No-show status evaluation and bookkeeping for customers."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        notifier: NoShowNotificationService | None = None,
    ) -> None:
        self._db = session
        self._policies = NoShowPolicyService(session)
        self._notifier = notifier

    async def get_customer_status(self, customer_address: str, shop_id: str) -> CustomerNoShowStatus:
        customer = await self._get_customer(customer_address)
        policy = await self._policies.get_shop_policy(shop_id)
        return evaluate_status(customer, policy)

    async def get_overall_customer_status(self, customer_address: str) -> CustomerNoShowStatus:
        customer = await self._get_customer(customer_address)
        return evaluate_overall_status(customer)

    async def record_no_show_history(
        self,
        *,
        customer_address: str,
        order_id: str,
        shop_id: str,
        scheduled_time: datetime,
        marked_by: str,
        service_id: str | None = None,
        notes: str | None = None,
    ) -> NoShowHistory:
        """Append a history row, bump the customer's count and advance their tier."""

        customer = await self._get_customer(customer_address)
        policy = await self._policies.get_shop_policy(shop_id)
        previous_tier = NoShowTierEnum(customer.no_show_tier or NoShowTierEnum.NORMAL)
        now = _utcnow()

        entry = NoShowHistory(
            customer_address=customer.address,
            order_id=order_id,
            service_id=service_id,
            shop_id=shop_id,
            scheduled_time=scheduled_time,
            marked_no_show_at=now,
            marked_by=marked_by.lower(),
            notes=notes,
            grace_period_minutes=policy.grace_period_minutes,
            customer_tier_at_time=previous_tier.value,
        )
        self._db.add(entry)

        await self._db.execute(
            update(Customer)
            .where(Customer.address == customer.address)
            .values(no_show_count=Customer.no_show_count + 1, last_no_show_at=now)
        )
        await self._db.refresh(customer)

        target_tier = tier_for_count(customer.no_show_count, policy)
        advanced = _TIER_RANK[target_tier] > _TIER_RANK[previous_tier]
        if advanced:
            customer.no_show_tier = target_tier
            if target_tier == NoShowTierEnum.SUSPENDED:
                customer.booking_suspended_until = now + timedelta(days=policy.suspension_duration_days)
                customer.deposit_required = True
            elif target_tier == NoShowTierEnum.DEPOSIT_REQUIRED:
                customer.deposit_required = True
                customer.successful_appointments_since_tier3 = 0

        await self._db.commit()
        await self._db.refresh(entry)

        logger.info(
            "No-show recorded",
            customer_address=customer.address,
            shop_id=shop_id,
            order_id=order_id,
            no_show_count=customer.no_show_count,
            previous_tier=previous_tier.value,
            tier=NoShowTierEnum(customer.no_show_tier).value,
        )

        if advanced and self._notifier is not None:
            await self._notifier.notify_tier_change(customer, target_tier, policy)
        return entry

    async def record_successful_appointment(self, customer_address: str, shop_id: str | None = None) -> bool:
        """Count a completed appointment toward deposit reset; return ``True`` when the reset applied."""

        address = customer_address.lower()
        result = await self._db.execute(
            update(Customer)
            .where(
                Customer.address == address,
                Customer.no_show_tier == NoShowTierEnum.DEPOSIT_REQUIRED,
            )
            .values(successful_appointments_since_tier3=Customer.successful_appointments_since_tier3 + 1)
        )
        if not result.rowcount:
            await self._db.commit()
            return False

        threshold = await self._reset_threshold(shop_id)
        reset = await self._db.execute(
            update(Customer)
            .where(
                Customer.address == address,
                Customer.no_show_tier == NoShowTierEnum.DEPOSIT_REQUIRED,
                Customer.successful_appointments_since_tier3 >= threshold,
            )
            .values(
                no_show_tier=NoShowTierEnum.CAUTION,
                deposit_required=False,
                successful_appointments_since_tier3=0,
            )
        )
        await self._db.commit()

        applied = bool(reset.rowcount)
        if applied:
            logger.info(
                "Deposit requirement lifted after successful appointments",
                customer_address=address,
                shop_id=shop_id,
                threshold=threshold,
            )
        return applied

    async def get_customer_history(self, customer_address: str, limit: int = 10) -> List[NoShowHistory]:
        stmt = (
            select(NoShowHistory)
            .where(NoShowHistory.customer_address == customer_address.lower())
            .order_by(NoShowHistory.marked_no_show_at.desc())
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_shop_analytics(self, shop_id: str, days: int = 30) -> ShopNoShowAnalytics:
        since = _utcnow() - timedelta(days=days)

        total_no_shows = await self._db.scalar(
            select(func.count())
            .select_from(NoShowHistory)
            .where(NoShowHistory.shop_id == shop_id, NoShowHistory.marked_no_show_at >= since)
        )
        total_appointments = await self._db.scalar(
            select(func.count())
            .select_from(ServiceOrder)
            .where(
                ServiceOrder.shop_id == shop_id,
                ServiceOrder.created_at >= since,
                ServiceOrder.status.in_(_APPOINTMENT_STATUSES),
            )
        )

        shop_customers = select(ServiceOrder.customer_address).where(ServiceOrder.shop_id == shop_id).distinct()
        tier_rows = await self._db.execute(
            select(Customer.no_show_tier, func.count())
            .where(Customer.address.in_(shop_customers))
            .group_by(Customer.no_show_tier)
        )
        tier_counts = {NoShowTierEnum(tier): count for tier, count in tier_rows.all()}

        total_no_shows = int(total_no_shows or 0)
        total_appointments = int(total_appointments or 0)
        rate = round(total_no_shows / total_appointments * 100, 2) if total_appointments else 0.0
        return ShopNoShowAnalytics(
            total_no_shows=total_no_shows,
            no_show_rate=rate,
            tier1_customers=tier_counts.get(NoShowTierEnum.WARNING, 0),
            tier2_customers=tier_counts.get(NoShowTierEnum.CAUTION, 0),
            tier3_customers=tier_counts.get(NoShowTierEnum.DEPOSIT_REQUIRED, 0),
            tier4_customers=tier_counts.get(NoShowTierEnum.SUSPENDED, 0),
        )

    async def _get_customer(self, customer_address: str) -> Customer:
        customer = await self._db.get(Customer, customer_address.lower())
        if customer is None:
            raise CustomerNotFoundError("Customer not found")
        return customer

    async def _reset_threshold(self, shop_id: str | None) -> int:
        """Successful appointments needed to lift the deposit requirement.

        Uses the given shop's policy; without a shop, the first stored policy
        (by shop id) applies, falling back to the platform default.
        """

        if shop_id is not None:
            policy = await self._policies.get_shop_policy(shop_id)
            return policy.deposit_reset_after_successful

        stored = await self._db.scalar(
            select(ShopNoShowPolicy.deposit_reset_after_successful).order_by(ShopNoShowPolicy.shop_id).limit(1)
        )
        if stored is None:
            return default_policy("default").deposit_reset_after_successful
        return int(stored)


__all__ = [
    "CustomerNoShowStatus",
    "CustomerNotFoundError",
    "NoShowService",
    "ShopNoShowAnalytics",
    "TIER_ORDER",
    "evaluate_overall_status",
    "evaluate_status",
    "tier_for_count",
]
