"""Per-shop no-show policy and the append-only no-show history."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from repaircoin_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DisputeStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ShopNoShowPolicy(Base):
    """Customized no-show thresholds for a single shop."""

    __tablename__ = "shop_no_show_policy"

    shop_id = Column(String, ForeignKey("shops.shop_id", ondelete="CASCADE"), primary_key=True)

    enabled = Column(Boolean, nullable=False, default=True)
    grace_period_minutes = Column(Integer, nullable=False, default=15)
    minimum_cancellation_hours = Column(Integer, nullable=False, default=4)

    auto_detection_enabled = Column(Boolean, nullable=False, default=False)
    auto_detection_delay_hours = Column(Integer, nullable=False, default=2)

    caution_threshold = Column(Integer, nullable=False, default=2)
    caution_advance_booking_hours = Column(Integer, nullable=False, default=24)

    deposit_threshold = Column(Integer, nullable=False, default=3)
    deposit_amount = Column(Numeric(10, 2), nullable=False, default=25)
    deposit_advance_booking_hours = Column(Integer, nullable=False, default=48)
    deposit_reset_after_successful = Column(Integer, nullable=False, default=3)

    max_rcn_redemption_percent = Column(Integer, nullable=False, default=80)

    suspension_threshold = Column(Integer, nullable=False, default=5)
    suspension_duration_days = Column(Integer, nullable=False, default=30)

    send_email_tier1 = Column(Boolean, nullable=False, default=True)
    send_email_tier2 = Column(Boolean, nullable=False, default=True)
    send_email_tier3 = Column(Boolean, nullable=False, default=True)
    send_email_tier4 = Column(Boolean, nullable=False, default=True)
    send_sms_tier2 = Column(Boolean, nullable=False, default=False)
    send_sms_tier3 = Column(Boolean, nullable=False, default=True)
    send_sms_tier4 = Column(Boolean, nullable=False, default=True)
    send_push_notifications = Column(Boolean, nullable=False, default=True)

    allow_disputes = Column(Boolean, nullable=False, default=True)
    dispute_window_days = Column(Integer, nullable=False, default=7)
    auto_approve_first_offense = Column(Boolean, nullable=False, default=True)
    require_shop_review = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )


class NoShowHistory(Base):
    """One missed appointment; only dispute columns and notes change after insert."""

    __tablename__ = "no_show_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_address = Column(String, nullable=False, index=True)
    order_id = Column(String, nullable=False, index=True)
    service_id = Column(String, nullable=True)
    shop_id = Column(String, nullable=False, index=True)
    scheduled_time = Column(DateTime(timezone=True), nullable=False)
    marked_no_show_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    marked_by = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    grace_period_minutes = Column(Integer, nullable=True)
    customer_tier_at_time = Column(String, nullable=True)

    disputed = Column(Boolean, nullable=False, default=False)
    dispute_status = Column(
        SqlEnum(
            DisputeStatusEnum,
            name="no_show_dispute_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=True,
    )
    dispute_reason = Column(Text, nullable=True)
    dispute_submitted_at = Column(DateTime(timezone=True), nullable=True)
    dispute_resolved_at = Column(DateTime(timezone=True), nullable=True)
    dispute_resolved_by = Column(String, nullable=True)
    dispute_resolution_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
