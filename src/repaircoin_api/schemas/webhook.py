from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from repaircoin_api.models.webhook_log import WebhookSourceEnum, WebhookStatusEnum

from .common import CamelModel


class WebhookLogRecord(CamelModel):
    id: UUID
    webhook_id: str
    event_type: str
    source: WebhookSourceEnum
    status: WebhookStatusEnum
    http_status: int | None = None
    payload: dict[str, Any] | list[Any] | None = None
    response: dict[str, Any] | list[Any] | None = None
    error_message: str | None = None
    retry_count: int = 0
    last_retry_at: datetime | None = None
    processed_at: datetime | None = None
    processing_time_ms: int | None = None
    created_at: datetime


class WebhookLogPageResponse(CamelModel):
    items: list[WebhookLogRecord]
    total: int
    page: int
    limit: int
    total_pages: int
