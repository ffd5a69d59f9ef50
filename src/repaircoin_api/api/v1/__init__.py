from fastapi import APIRouter

from .endpoints import (
    cleanup,
    disputes,
    health,
    no_show_policy,
    no_shows,
    tiers,
    webhooks,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(no_show_policy.router)
router.include_router(no_shows.router)
router.include_router(disputes.router)
router.include_router(tiers.router)
router.include_router(webhooks.router)
router.include_router(cleanup.router)
