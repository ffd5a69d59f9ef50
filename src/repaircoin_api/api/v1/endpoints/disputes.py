"""No-show dispute submission and review."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from repaircoin_api.api.dependencies.security import require_admin_api_key
from repaircoin_api.api.dependencies.services import get_dispute_service
from repaircoin_api.models.no_show import DisputeStatusEnum
from repaircoin_api.schemas.no_show import (
    AdminDisputeResolveRequest,
    DisputeDecisionRequest,
    DisputeListResponse,
    DisputeStats,
    DisputeSubmitRequest,
    DisputeSubmitResponse,
    NoShowHistoryRecord,
)
from repaircoin_api.services.no_show import (
    DisputeConflictError,
    DisputeListing,
    DisputeNotAllowedError,
    DisputeService,
    DisputeValidationError,
    NoShowRecordNotFoundError,
)


router = APIRouter(tags=["Disputes"])

_ERROR_STATUS = (
    (NoShowRecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (DisputeConflictError, status.HTTP_409_CONFLICT),
    (DisputeNotAllowedError, status.HTTP_403_FORBIDDEN),
    (DisputeValidationError, status.HTTP_400_BAD_REQUEST),
)


def _http_error(exc: Exception) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _listing_response(listing: DisputeListing) -> DisputeListResponse:
    return DisputeListResponse(
        disputes=[NoShowHistoryRecord.model_validate(record) for record in listing.disputes],
        stats=DisputeStats(**listing.stats),
    )


@router.post(
    "/orders/{order_id}/dispute",
    status_code=status.HTTP_201_CREATED,
    response_model=DisputeSubmitResponse,
    summary="Dispute a recorded no-show",
)
async def submit_dispute(
    order_id: str,
    payload: DisputeSubmitRequest,
    service: DisputeService = Depends(get_dispute_service),
) -> DisputeSubmitResponse:
    try:
        submission = await service.submit_dispute(order_id, payload.customer_address, payload.reason)
    except (DisputeValidationError, NoShowRecordNotFoundError, DisputeConflictError, DisputeNotAllowedError) as exc:
        raise _http_error(exc) from exc

    message = (
        "Dispute automatically approved. Your no-show record has been removed."
        if submission.auto_approved
        else "Dispute submitted. The shop will review your request."
    )
    return DisputeSubmitResponse(
        dispute=NoShowHistoryRecord.model_validate(submission.record),
        auto_approved=submission.auto_approved,
        message=message,
    )


@router.get(
    "/orders/{order_id}/dispute",
    response_model=NoShowHistoryRecord,
    summary="Dispute status for an order",
)
async def get_dispute(
    order_id: str,
    customer_address: str | None = Query(None, alias="customerAddress"),
    shop_id: str | None = Query(None, alias="shopId"),
    service: DisputeService = Depends(get_dispute_service),
) -> NoShowHistoryRecord:
    try:
        record = await service.get_dispute(order_id, customer_address=customer_address, shop_id=shop_id)
    except NoShowRecordNotFoundError as exc:
        raise _http_error(exc) from exc
    return NoShowHistoryRecord.model_validate(record)


@router.get(
    "/shops/{shop_id}/disputes",
    response_model=DisputeListResponse,
    summary="Disputes raised against a shop's no-shows",
)
async def list_shop_disputes(
    shop_id: str,
    dispute_status: DisputeStatusEnum | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: DisputeService = Depends(get_dispute_service),
) -> DisputeListResponse:
    listing = await service.list_shop_disputes(shop_id, status=dispute_status, limit=limit, offset=offset)
    return _listing_response(listing)


@router.put(
    "/shops/{shop_id}/disputes/{dispute_id}/approve",
    response_model=NoShowHistoryRecord,
    summary="Approve a pending dispute and reverse the penalty",
)
async def approve_dispute(
    shop_id: str,
    dispute_id: UUID,
    payload: DisputeDecisionRequest,
    service: DisputeService = Depends(get_dispute_service),
) -> NoShowHistoryRecord:
    try:
        record = await service.approve_dispute(shop_id, dispute_id, resolver=payload.resolver, notes=payload.notes)
    except (NoShowRecordNotFoundError, DisputeConflictError, DisputeValidationError) as exc:
        raise _http_error(exc) from exc
    return NoShowHistoryRecord.model_validate(record)


@router.put(
    "/shops/{shop_id}/disputes/{dispute_id}/reject",
    response_model=NoShowHistoryRecord,
    summary="Reject a pending dispute",
)
async def reject_dispute(
    shop_id: str,
    dispute_id: UUID,
    payload: DisputeDecisionRequest,
    service: DisputeService = Depends(get_dispute_service),
) -> NoShowHistoryRecord:
    try:
        record = await service.reject_dispute(shop_id, dispute_id, resolver=payload.resolver, notes=payload.notes or "")
    except (NoShowRecordNotFoundError, DisputeConflictError, DisputeValidationError) as exc:
        raise _http_error(exc) from exc
    return NoShowHistoryRecord.model_validate(record)


@router.get(
    "/admin/disputes",
    response_model=DisputeListResponse,
    dependencies=[Depends(require_admin_api_key)],
    summary="Platform-wide dispute queue",
)
async def list_disputes(
    dispute_status: DisputeStatusEnum | None = Query(None, alias="status"),
    shop_id: str | None = Query(None, alias="shopId"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: DisputeService = Depends(get_dispute_service),
) -> DisputeListResponse:
    listing = await service.list_disputes(status=dispute_status, shop_id=shop_id, limit=limit, offset=offset)
    return _listing_response(listing)


@router.put(
    "/admin/disputes/{dispute_id}/resolve",
    response_model=NoShowHistoryRecord,
    dependencies=[Depends(require_admin_api_key)],
    summary="Override a dispute decision",
)
async def admin_resolve_dispute(
    dispute_id: UUID,
    payload: AdminDisputeResolveRequest,
    service: DisputeService = Depends(get_dispute_service),
) -> NoShowHistoryRecord:
    try:
        record = await service.admin_resolve_dispute(
            dispute_id,
            resolution=payload.resolution,
            resolver=payload.resolver,
            notes=payload.notes,
        )
    except (NoShowRecordNotFoundError, DisputeValidationError) as exc:
        raise _http_error(exc) from exc
    return NoShowHistoryRecord.model_validate(record)
