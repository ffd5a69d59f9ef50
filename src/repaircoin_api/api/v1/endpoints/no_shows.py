"""Customer no-show status, history and shop analytics."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from repaircoin_api.api.dependencies.services import get_no_show_service
from repaircoin_api.schemas.no_show import NoShowHistoryRecord, NoShowRecordRequest
from repaircoin_api.services.no_show import CustomerNotFoundError, NoShowService


router = APIRouter(tags=["No-shows"])


@router.get("/customers/{address}/no-show-status", summary="Customer booking restrictions")
async def get_no_show_status(
    address: str,
    shop_id: str | None = Query(None, alias="shopId", description="Evaluate against this shop's policy"),
    service: NoShowService = Depends(get_no_show_service),
) -> Dict[str, Any]:
    """Shop-scoped status when ``shopId`` is given, otherwise the platform-wide view."""

    try:
        if shop_id:
            result = await service.get_customer_status(address, shop_id)
        else:
            result = await service.get_overall_customer_status(address)
    except CustomerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return result.as_dict()


@router.get(
    "/customers/{address}/no-show-history",
    response_model=List[NoShowHistoryRecord],
    summary="Most recent no-shows for a customer",
)
async def get_no_show_history(
    address: str,
    limit: int = Query(10, ge=1, le=100),
    service: NoShowService = Depends(get_no_show_service),
) -> List[NoShowHistoryRecord]:
    records = await service.get_customer_history(address, limit=limit)
    return [NoShowHistoryRecord.model_validate(record) for record in records]


@router.post(
    "/customers/{address}/successful-appointments",
    summary="Count a completed appointment toward lifting the deposit requirement",
)
async def record_successful_appointment(
    address: str,
    shop_id: str | None = Query(None, alias="shopId"),
    service: NoShowService = Depends(get_no_show_service),
) -> Dict[str, bool]:
    reset = await service.record_successful_appointment(address, shop_id)
    return {"depositRequirementLifted": reset}


@router.post(
    "/shops/{shop_id}/no-shows",
    status_code=status.HTTP_201_CREATED,
    response_model=NoShowHistoryRecord,
    summary="Mark an appointment as a no-show",
)
async def record_no_show(
    shop_id: str,
    payload: NoShowRecordRequest,
    service: NoShowService = Depends(get_no_show_service),
) -> NoShowHistoryRecord:
    try:
        record = await service.record_no_show_history(
            customer_address=payload.customer_address,
            order_id=payload.order_id,
            shop_id=shop_id,
            scheduled_time=payload.scheduled_time,
            marked_by=payload.marked_by,
            service_id=payload.service_id,
            notes=payload.notes,
        )
    except CustomerNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return NoShowHistoryRecord.model_validate(record)


@router.get("/shops/{shop_id}/no-show-analytics", summary="No-show rate and tier distribution")
async def get_no_show_analytics(
    shop_id: str,
    days: int = Query(30, ge=1, le=365),
    service: NoShowService = Depends(get_no_show_service),
) -> Dict[str, Any]:
    analytics = await service.get_shop_analytics(shop_id, days=days)
    return analytics.as_dict()
