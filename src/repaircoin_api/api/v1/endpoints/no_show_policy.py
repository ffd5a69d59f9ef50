"""Shop no-show policy configuration."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from repaircoin_api.api.dependencies.services import get_policy_service
from repaircoin_api.db.session import get_session
from repaircoin_api.models.shop import Shop
from repaircoin_api.services.no_show import NoShowPolicyService, PolicyValidationError


router = APIRouter(prefix="/shops", tags=["No-show policy"])


async def _ensure_shop(session: AsyncSession, shop_id: str) -> None:
    if await session.get(Shop, shop_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop not found")


@router.get("/{shop_id}/no-show-policy", summary="Effective no-show policy for a shop")
async def get_no_show_policy(
    shop_id: str,
    service: NoShowPolicyService = Depends(get_policy_service),
) -> Dict[str, Any]:
    policy = await service.get_shop_policy(shop_id)
    return policy.as_dict()


@router.put("/{shop_id}/no-show-policy", summary="Update a shop's no-show policy")
async def update_no_show_policy(
    shop_id: str,
    updates: Dict[str, Any] = Body(..., description="camelCase policy fields to change"),
    session: AsyncSession = Depends(get_session),
    service: NoShowPolicyService = Depends(get_policy_service),
) -> Dict[str, Any]:
    await _ensure_shop(session, shop_id)
    try:
        policy = await service.update_shop_policy(shop_id, updates)
    except PolicyValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"field": exc.field, "message": exc.message},
        ) from exc
    return policy.as_dict()


@router.post(
    "/{shop_id}/no-show-policy/initialize",
    status_code=status.HTTP_201_CREATED,
    summary="Persist the default policy for a shop",
)
async def initialize_no_show_policy(
    shop_id: str,
    session: AsyncSession = Depends(get_session),
    service: NoShowPolicyService = Depends(get_policy_service),
) -> Dict[str, Any]:
    await _ensure_shop(session, shop_id)
    policy = await service.initialize_shop_policy(shop_id)
    return policy.as_dict()
