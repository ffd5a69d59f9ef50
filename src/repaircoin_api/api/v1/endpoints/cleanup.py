"""Admin controls for webhook log purging and transaction archiving."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field

from repaircoin_api.api.dependencies.security import require_admin_api_key
from repaircoin_api.api.dependencies.services import get_app_cleanup_service
from repaircoin_api.schemas.common import CamelModel
from repaircoin_api.services.cleanup import CleanupAlreadyRunningError, CleanupConfig, CleanupService


router = APIRouter(
    prefix="/admin/cleanup",
    tags=["Cleanup"],
    dependencies=[Depends(require_admin_api_key)],
)


class CleanupRunRequest(CamelModel):
    webhook_retention_days: int | None = Field(default=None, ge=1)
    transaction_archive_days: int | None = Field(default=None, ge=1)
    enable_webhook_cleanup: bool = True
    enable_transaction_archiving: bool = True


def _already_running(exc: CleanupAlreadyRunningError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.post("/run", summary="Run cleanup now")
async def run_cleanup(
    payload: CleanupRunRequest | None = None,
    service: CleanupService = Depends(get_app_cleanup_service),
) -> Dict[str, Any]:
    """Runs with ``system_settings`` overrides; request fields take precedence."""

    config: CleanupConfig = await service.get_cleanup_config_from_settings()
    if payload is not None:
        if payload.webhook_retention_days is not None:
            config.webhook_retention_days = payload.webhook_retention_days
        if payload.transaction_archive_days is not None:
            config.transaction_archive_days = payload.transaction_archive_days
        config.enable_webhook_cleanup = payload.enable_webhook_cleanup
        config.enable_transaction_archiving = payload.enable_transaction_archiving

    try:
        report = await service.run_cleanup(config)
    except CleanupAlreadyRunningError as exc:
        raise _already_running(exc) from exc
    return report.as_dict()


@router.post("/emergency", summary="Run cleanup with aggressive retention windows")
async def run_emergency_cleanup(service: CleanupService = Depends(get_app_cleanup_service)) -> Dict[str, Any]:
    try:
        report = await service.emergency_cleanup()
    except CleanupAlreadyRunningError as exc:
        raise _already_running(exc) from exc
    return report.as_dict()


@router.get("/statistics", summary="Archive and webhook log volumes")
async def get_cleanup_statistics(service: CleanupService = Depends(get_app_cleanup_service)) -> Dict[str, Any]:
    stats = await service.get_archive_statistics()
    archived = stats["archived_transactions"]
    webhooks = stats["webhook_logs"]
    return {
        "archivedTransactions": {
            "total": archived["total"],
            "oldestDate": archived["oldest_date"],
            "newestDate": archived["newest_date"],
            "totalAmount": archived["total_amount"],
        },
        "webhookLogs": {
            "total": webhooks["total"],
            "oldestDate": webhooks["oldest_date"],
            "successCount": webhooks["success_count"],
            "failedCount": webhooks["failed_count"],
        },
        "isRunning": service.is_cleanup_running(),
        "scheduled": service.is_scheduled,
    }


@router.get("/recommendations", summary="Whether a cleanup run is advisable")
async def get_cleanup_recommendations(service: CleanupService = Depends(get_app_cleanup_service)) -> Dict[str, Any]:
    result = await service.get_cleanup_recommendations()
    return {
        "shouldCleanup": result["should_cleanup"],
        "recommendations": result["recommendations"],
        "estimatedSavings": {
            "webhookLogs": result["estimated_savings"]["webhook_logs"],
            "transactions": result["estimated_savings"]["transactions"],
        },
    }
