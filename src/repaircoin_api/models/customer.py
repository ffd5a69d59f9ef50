"""Customer accounts keyed by lower-cased wallet address."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Enum as SqlEnum, Integer, String, func

from repaircoin_api.db.base import Base


class NoShowTierEnum(str, Enum):
    """Escalating booking restriction levels driven by missed appointments."""

    NORMAL = "normal"
    WARNING = "warning"
    CAUTION = "caution"
    DEPOSIT_REQUIRED = "deposit_required"
    SUSPENDED = "suspended"


class Customer(Base):
    __tablename__ = "customers"

    address = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    no_show_count = Column(Integer, nullable=False, default=0, server_default="0")
    no_show_tier = Column(
        SqlEnum(
            NoShowTierEnum,
            name="customer_no_show_tier_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=NoShowTierEnum.NORMAL,
        server_default=NoShowTierEnum.NORMAL.value,
    )
    deposit_required = Column(Boolean, nullable=False, default=False, server_default="false")
    last_no_show_at = Column(DateTime(timezone=True), nullable=True)
    booking_suspended_until = Column(DateTime(timezone=True), nullable=True)
    successful_appointments_since_tier3 = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
