from fastapi import APIRouter

from .endpoints import (
    customers,
    health,
    kitchen,
    observability,
    orders,
    realtime,
    redemptions,
    staff,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(staff.router)
router.include_router(redemptions.router)
router.include_router(kitchen.router)
router.include_router(orders.router)
router.include_router(customers.router)
router.include_router(realtime.router)
router.include_router(observability.router)
