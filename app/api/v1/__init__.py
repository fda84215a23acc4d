"""API v1 routes aggregation"""

from fastapi import APIRouter

from .payments.router import router as payments_router
from .payouts.router import router as payouts_router
from .coupons.router import router as coupons_router
from .orders.router import router as orders_router

# Create v1 router
api_router = APIRouter()

# Include all routers
api_router.include_router(payments_router, prefix="/payments", tags=["Payments"])
api_router.include_router(payouts_router, prefix="/payouts", tags=["Payouts"])
api_router.include_router(coupons_router, prefix="/coupons", tags=["Coupons"])
api_router.include_router(orders_router, prefix="/orders", tags=["Orders"])

# Export router
router = api_router
