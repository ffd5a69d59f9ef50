"""Booked service appointments referenced by no-show tracking."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Column, DateTime, Enum as SqlEnum, Numeric, String, func

from repaircoin_api.db.base import Base


class ServiceOrderStatusEnum(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"


class ServiceOrder(Base):
    __tablename__ = "service_orders"

    order_id = Column(String, primary_key=True)
    shop_id = Column(String, nullable=False, index=True)
    service_id = Column(String, nullable=True)
    customer_address = Column(String, nullable=False, index=True)
    status = Column(
        SqlEnum(
            ServiceOrderStatusEnum,
            name="service_order_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=ServiceOrderStatusEnum.PENDING,
    )
    total_amount = Column(Numeric(12, 2), nullable=True)
    booking_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
