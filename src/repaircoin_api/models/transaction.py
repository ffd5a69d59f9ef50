"""Token transactions and their archived counterparts."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from repaircoin_api.db.base import Base


TRANSACTION_STATUS_COMPLETED = "completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    type = Column(String, nullable=False)
    customer_address = Column(String, nullable=True, index=True)
    shop_id = Column(String, nullable=True, index=True)
    amount = Column(Numeric(20, 8), nullable=False, default=0)
    reason = Column(String, nullable=True)
    transaction_hash = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending", index=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True)


class ArchivedTransaction(Base):
    """Completed transactions moved out of the hot table by cleanup."""

    __tablename__ = "archived_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True)
    type = Column(String, nullable=False)
    customer_address = Column(String, nullable=True)
    shop_id = Column(String, nullable=True)
    amount = Column(Numeric(20, 8), nullable=False, default=0)
    reason = Column(String, nullable=True)
    transaction_hash = Column(String, nullable=True)
    status = Column(String, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    archived_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
