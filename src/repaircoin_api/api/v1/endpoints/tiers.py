"""Shop partner tier lookups backed by RCG balances."""

from __future__ import annotations

from typing import Any, Dict

import httpx
from fastapi import APIRouter, Depends, HTTPException, status

from repaircoin_api.api.dependencies.security import require_admin_api_key
from repaircoin_api.api.dependencies.services import get_rcg_service
from repaircoin_api.services.tiers import RCGService, ShopNotFoundError, ShopTierInfo
from repaircoin_api.services.tiers.balance_reader import BalanceReadError


router = APIRouter(tags=["Shop tiers"])


def _tier_payload(info: ShopTierInfo) -> Dict[str, Any]:
    return {
        "shopId": info.shop_id,
        "walletAddress": info.wallet_address,
        "rcgBalance": info.rcg_balance,
        "tier": info.tier.value,
        "rcnPrice": float(info.rcn_price),
        "tierBenefits": list(info.tier_benefits),
    }


@router.get("/shops/{shop_id}/tier", summary="Live partner tier for a shop")
async def get_shop_tier(shop_id: str, service: RCGService = Depends(get_rcg_service)) -> Dict[str, Any]:
    info = await service.get_shop_tier_info(shop_id)
    if info is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tier information unavailable for this shop",
        )
    return _tier_payload(info)


@router.post("/shops/{shop_id}/tier/refresh", summary="Re-read the shop's balance and cache its tier")
async def refresh_shop_tier(shop_id: str, service: RCGService = Depends(get_rcg_service)) -> Dict[str, Any]:
    try:
        info = await service.update_shop_tier(shop_id)
    except ShopNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if info is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="RCG balance unavailable; cached tier left unchanged",
        )
    return _tier_payload(info)


@router.get(
    "/admin/rcg/metrics",
    dependencies=[Depends(require_admin_api_key)],
    summary="RCG supply and shop tier distribution",
)
async def get_rcg_metrics(service: RCGService = Depends(get_rcg_service)) -> Dict[str, Any]:
    try:
        return await service.get_rcg_metrics()
    except (BalanceReadError, httpx.HTTPError) as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"RCG contract unavailable: {exc}",
        ) from exc
