from fastapi import APIRouter

from .endpoints import (
    accounts,
    activities,
    health,
    ledger,
    notifications,
    observability,
    referrals,
    rewards,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(accounts.router)
router.include_router(rewards.router)
router.include_router(ledger.router)
router.include_router(activities.router)
router.include_router(referrals.router)
router.include_router(notifications.router)
router.include_router(observability.router)
