"""Automatic no-show marking for paid appointments that were never completed."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.models.no_show import NoShowHistory, ShopNoShowPolicy
from repaircoin_api.models.service_order import ServiceOrder, ServiceOrderStatusEnum
from repaircoin_api.services.notifications import NoShowNotificationService

from .service import CustomerNotFoundError, NoShowService

SYSTEM_MARKER = "system"
AUTO_DETECTION_NOTE = "Automatically marked as no-show by system"


@dataclass(slots=True)
class AutoDetectionReport:
    orders_checked: int = 0
    orders_marked: int = 0
    shops_processed: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ordersChecked": self.orders_checked,
            "ordersMarked": self.orders_marked,
            "shopsProcessed": list(self.shops_processed),
            "errors": list(self.errors),
        }


class AutoNoShowDetectionService:
    """Marks overdue paid orders as no-shows for shops that opted into auto-detection."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        notifier: NoShowNotificationService | None = None,
    ) -> None:
        self._db = session
        self._no_shows = NoShowService(session, notifier=notifier)

    async def get_eligible_orders(self, *, now: datetime | None = None) -> List[ServiceOrder]:
        """Paid orders whose booking time plus grace period and detection delay has passed.

        Only shops with a stored policy that is enabled and has auto-detection
        switched on are considered. Orders already in the no-show history are skipped.
        """

        now = now or datetime.now(timezone.utc)
        policies = (
            await self._db.execute(
                select(ShopNoShowPolicy).where(
                    ShopNoShowPolicy.enabled.is_(True),
                    ShopNoShowPolicy.auto_detection_enabled.is_(True),
                )
            )
        ).scalars().all()

        already_marked = select(NoShowHistory.order_id)
        eligible: List[ServiceOrder] = []
        for policy in policies:
            cutoff = now - timedelta(
                minutes=policy.grace_period_minutes,
                hours=policy.auto_detection_delay_hours,
            )
            result = await self._db.execute(
                select(ServiceOrder)
                .where(
                    ServiceOrder.shop_id == policy.shop_id,
                    ServiceOrder.status == ServiceOrderStatusEnum.PAID,
                    ServiceOrder.booking_time.is_not(None),
                    ServiceOrder.booking_time < cutoff,
                    ServiceOrder.order_id.not_in(already_marked),
                )
                .order_by(ServiceOrder.booking_time)
            )
            eligible.extend(result.scalars().all())
        return eligible

    async def run_detection(self, *, now: datetime | None = None) -> AutoDetectionReport:
        report = AutoDetectionReport()
        orders = [
            (order.order_id, order.shop_id, order.customer_address, order.booking_time, order.service_id)
            for order in await self.get_eligible_orders(now=now)
        ]
        report.orders_checked = len(orders)

        for order_id, shop_id, customer_address, booking_time, service_id in orders:
            await self._db.execute(
                update(ServiceOrder)
                .where(ServiceOrder.order_id == order_id)
                .values(status=ServiceOrderStatusEnum.NO_SHOW)
            )
            try:
                await self._no_shows.record_no_show_history(
                    customer_address=customer_address,
                    order_id=order_id,
                    shop_id=shop_id,
                    scheduled_time=booking_time,
                    marked_by=SYSTEM_MARKER,
                    service_id=service_id,
                    notes=AUTO_DETECTION_NOTE,
                )
            except CustomerNotFoundError as exc:
                await self._db.rollback()
                logger.warning("Auto no-show detection skipped order", order_id=order_id, error=str(exc))
                report.errors.append(f"Failed to process order {order_id}: {exc}")
                continue

            report.orders_marked += 1
            if shop_id not in report.shops_processed:
                report.shops_processed.append(shop_id)

        logger.info(
            "Auto no-show detection run completed",
            orders_checked=report.orders_checked,
            orders_marked=report.orders_marked,
            shops_processed=len(report.shops_processed),
        )
        return report


__all__ = ["AUTO_DETECTION_NOTE", "AutoDetectionReport", "AutoNoShowDetectionService", "SYSTEM_MARKER"]
