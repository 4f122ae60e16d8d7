from fastapi import APIRouter

from .endpoints import (
    health,
    manager,
    observability,
    referrals,
    social_tasks,
    spins,
    vouchers,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(spins.router)
router.include_router(referrals.router)
router.include_router(social_tasks.router)
router.include_router(manager.router)
router.include_router(vouchers.router)
router.include_router(observability.router)
