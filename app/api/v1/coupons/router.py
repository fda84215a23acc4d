"""
Coupon API routes
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import uuid

from app.core.database import get_db
from app.middleware.rate_limit import coupon_validation_limit
from app.models import Vendor
from app.services.coupon_service import CouponService
from app.utils.dependencies import get_vendor_or_404
from .schemas import (
    CouponValidateRequest,
    CouponValidateResponse,
    CouponCreate,
    CouponUpdate,
    CouponResponse,
    CouponWithStats,
    CouponDeleteResponse,
    CouponAnalytics
)

router = APIRouter()

@router.post(
    "/validate",
    response_model=CouponValidateResponse,
    summary="Validate coupon",
    description="Check a coupon against a cart and return the discount. Has no side effects."
)
@coupon_validation_limit
async def validate_coupon(
    request: Request,
    cart: CouponValidateRequest,
    db: AsyncSession = Depends(get_db)
):
    """Validate a coupon for checkout"""
    service = CouponService(db)
    result = await service.validate_coupon(
        code=cart.code,
        vendor_id=cart.vendor_id,
        subtotal=cart.subtotal,
        product_ids=cart.product_ids,
        user_id=cart.user_id,
        email=cart.email
    )
    return result.to_dict()

@router.post(
    "/vendors/{vendor_id}",
    response_model=CouponResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create coupon"
)
async def create_coupon(
    coupon_data: CouponCreate,
    vendor: Vendor = Depends(get_vendor_or_404),
    db: AsyncSession = Depends(get_db)
):
    """Create a coupon for the vendor's store"""
    service = CouponService(db)
    coupon = await service.create_coupon(coupon_data.model_dump(), vendor_id=vendor.id)
    await db.commit()
    return coupon

@router.get(
    "/vendors/{vendor_id}",
    response_model=List[CouponWithStats],
    summary="List vendor coupons"
)
async def list_vendor_coupons(
    vendor: Vendor = Depends(get_vendor_or_404),
    db: AsyncSession = Depends(get_db)
):
    """List the vendor's coupons with usage stats"""
    service = CouponService(db)
    return await service.list_vendor_coupons(vendor.id)

@router.patch(
    "/vendors/{vendor_id}/{coupon_id}",
    response_model=CouponResponse,
    summary="Update coupon"
)
async def update_coupon(
    coupon_id: uuid.UUID,
    coupon_data: CouponUpdate,
    vendor: Vendor = Depends(get_vendor_or_404),
    db: AsyncSession = Depends(get_db)
):
    """Update one of the vendor's coupons"""
    service = CouponService(db)
    coupon = await service.update_coupon(coupon_id, vendor.id, coupon_data.model_dump(exclude_unset=True))
    await db.commit()
    return coupon

@router.delete(
    "/vendors/{vendor_id}/{coupon_id}",
    response_model=CouponDeleteResponse,
    summary="Delete coupon",
    description="Deletes an unused coupon; a coupon with usage history is deactivated instead"
)
async def delete_coupon(
    coupon_id: uuid.UUID,
    vendor: Vendor = Depends(get_vendor_or_404),
    db: AsyncSession = Depends(get_db)
):
    """Delete or deactivate a coupon"""
    service = CouponService(db)
    result = await service.delete_coupon(coupon_id, vendor.id)
    await db.commit()
    return {"result": result}

@router.get(
    "/vendors/{vendor_id}/{coupon_id}/analytics",
    response_model=CouponAnalytics,
    summary="Coupon analytics"
)
async def get_coupon_analytics(
    coupon_id: uuid.UUID,
    vendor: Vendor = Depends(get_vendor_or_404),
    db: AsyncSession = Depends(get_db)
):
    """Usage analytics for a coupon"""
    service = CouponService(db)
    return await service.get_coupon_analytics(coupon_id, vendor.id)
