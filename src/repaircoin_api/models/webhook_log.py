"""Inbound webhook delivery attempts."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from repaircoin_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebhookSourceEnum(str, Enum):
    STRIPE = "stripe"
    FIXFLOW = "fixflow"
    THIRDWEB = "thirdweb"
    OTHER = "other"


class WebhookStatusEnum(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    RETRY = "retry"


class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    webhook_id = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)
    source = Column(
        SqlEnum(
            WebhookSourceEnum,
            name="webhook_log_source_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        index=True,
    )
    status = Column(
        SqlEnum(
            WebhookStatusEnum,
            name="webhook_log_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=WebhookStatusEnum.PENDING,
        index=True,
    )
    http_status = Column(Integer, nullable=True)
    payload = Column(JSON, nullable=True)
    response = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    last_retry_at = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )
