from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field

from repaircoin_api.models.no_show import DisputeStatusEnum

from .common import CamelModel


class NoShowHistoryRecord(CamelModel):
    id: UUID
    customer_address: str
    order_id: str
    service_id: str | None = None
    shop_id: str
    scheduled_time: datetime
    marked_no_show_at: datetime
    marked_by: str | None = None
    notes: str | None = None
    grace_period_minutes: int | None = None
    customer_tier_at_time: str | None = None
    disputed: bool = False
    dispute_status: DisputeStatusEnum | None = None
    dispute_reason: str | None = None
    dispute_submitted_at: datetime | None = None
    dispute_resolved_at: datetime | None = None
    dispute_resolved_by: str | None = None
    dispute_resolution_notes: str | None = None


class NoShowRecordRequest(CamelModel):
    order_id: str = Field(..., min_length=1)
    customer_address: str = Field(..., min_length=1)
    scheduled_time: datetime
    marked_by: str = Field(..., min_length=1)
    service_id: str | None = None
    notes: str | None = Field(default=None, max_length=2000)


class DisputeSubmitRequest(CamelModel):
    customer_address: str = Field(..., min_length=1, description="Wallet address of the disputing customer")
    reason: str = Field(..., description="Why the no-show should be reversed (10+ characters)")


class DisputeSubmitResponse(CamelModel):
    dispute: NoShowHistoryRecord
    auto_approved: bool
    message: str


class DisputeDecisionRequest(CamelModel):
    resolver: str = Field(..., min_length=1, description="Wallet or user id of the reviewer")
    notes: str | None = None


class AdminDisputeResolveRequest(CamelModel):
    resolution: Literal["approved", "rejected"]
    resolver: str = Field(..., min_length=1)
    notes: str


class DisputeStats(CamelModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0


class DisputeListResponse(CamelModel):
    disputes: list[NoShowHistoryRecord]
    stats: DisputeStats
