"""Admin views over webhook delivery logs."""

from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from repaircoin_api.api.dependencies.security import require_admin_api_key
from repaircoin_api.api.dependencies.services import get_webhook_logging_service
from repaircoin_api.models.webhook_log import WebhookSourceEnum, WebhookStatusEnum
from repaircoin_api.schemas.webhook import WebhookLogPageResponse, WebhookLogRecord
from repaircoin_api.services.webhooks import WebhookLoggingService, WebhookLogNotFoundError


router = APIRouter(
    prefix="/admin/webhooks",
    tags=["Webhooks"],
    dependencies=[Depends(require_admin_api_key)],
)


@router.get("/logs", response_model=WebhookLogPageResponse, summary="Paginated webhook delivery logs")
async def list_webhook_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    source: WebhookSourceEnum | None = Query(None),
    log_status: WebhookStatusEnum | None = Query(None, alias="status"),
    event_type: str | None = Query(None, alias="eventType"),
    service: WebhookLoggingService = Depends(get_webhook_logging_service),
) -> WebhookLogPageResponse:
    result = await service.get_webhook_logs(
        page=page,
        limit=limit,
        source=source,
        status=log_status,
        event_type=event_type,
    )
    return WebhookLogPageResponse(
        items=[WebhookLogRecord.model_validate(log) for log in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/health", summary="Per-source webhook health over the last 24 hours")
async def get_webhook_health(
    service: WebhookLoggingService = Depends(get_webhook_logging_service),
) -> Dict[str, Any]:
    report = await service.check_webhook_health()
    return {
        "healthy": report.healthy,
        "issues": list(report.issues),
        "metrics": [metric.as_dict() for metric in report.metrics],
    }


@router.post(
    "/logs/{log_id}/retry",
    response_model=WebhookLogRecord,
    summary="Queue a webhook log for retry",
)
async def retry_webhook_log(
    log_id: UUID,
    service: WebhookLoggingService = Depends(get_webhook_logging_service),
) -> WebhookLogRecord:
    try:
        log = await service.mark_for_retry(log_id)
    except WebhookLogNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return WebhookLogRecord.model_validate(log)
