from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.api.dependencies.security import require_admin_api_key
from repaircoin_api.core.settings import settings
from repaircoin_api.db.session import get_session
from repaircoin_api.observability.scheduler import get_job_scheduler_store


router = APIRouter()

ComponentState = Literal["ready", "starting", "disabled", "error"]


class ComponentStatus(BaseModel):
    status: ComponentState
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        components["database"] = ComponentStatus(status="error", detail=f"Database unreachable ({exc})")
    else:
        components["database"] = ComponentStatus(status="ready")

    cleanup_service = getattr(request.app.state, "cleanup_service", None)
    if settings.cleanup_schedule_enabled and cleanup_service is not None:
        scheduled = bool(cleanup_service.is_scheduled)
        components["scheduled_cleanup"] = ComponentStatus(
            status="ready" if scheduled else "starting",
            detail=None if scheduled else "Scheduled cleanup not running",
        )
    else:
        components["scheduled_cleanup"] = ComponentStatus(
            status="disabled",
            detail="Scheduled cleanup disabled via settings",
        )

    scheduler = getattr(request.app.state, "job_scheduler", None)
    if settings.job_scheduler_enabled and scheduler is not None:
        running = bool(scheduler.is_running)
        failing_jobs = get_job_scheduler_store().snapshot().failing_jobs
        if failing_jobs:
            components["job_scheduler"] = ComponentStatus(
                status="error",
                detail=f"Jobs failing: {', '.join(failing_jobs)}",
            )
        else:
            components["job_scheduler"] = ComponentStatus(
                status="ready" if running else "starting",
                detail=None if running else "Job scheduler not running",
            )
    else:
        components["job_scheduler"] = ComponentStatus(
            status="disabled",
            detail="Job scheduler disabled via settings",
        )

    states = {component.status for component in components.values()}
    overall: Literal["ready", "degraded", "error"] = "ready"
    if "error" in states:
        overall = "error"
    elif "starting" in states:
        overall = "degraded"
    return ReadinessPayload(status=overall, components=components)


@router.get(
    "/admin/scheduler",
    dependencies=[Depends(require_admin_api_key)],
    summary="Recurring job scheduler diagnostics",
)
async def scheduler_health(request: Request) -> dict[str, object]:
    scheduler = getattr(request.app.state, "job_scheduler", None)
    if scheduler is None:
        return {"running": False, "configuredJobs": 0, "jobs": []}
    return scheduler.health()
