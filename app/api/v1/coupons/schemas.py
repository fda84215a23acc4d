"""
Coupon schemas for request/response validation
"""

from pydantic import BaseModel, Field, EmailStr, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
import uuid

from app.models.coupon import DiscountType
from app.services.coupon_service import CouponRejection

class CouponValidateRequest(BaseModel):
    """Cart to check a coupon against"""
    code: str = Field(..., min_length=1, max_length=50)
    vendor_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    email: Optional[EmailStr] = None
    subtotal: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    product_ids: List[uuid.UUID] = Field(default_factory=list)

class CouponValidateResponse(BaseModel):
    """Validation outcome; rejections carry a reason code"""
    valid: bool
    discount: Decimal
    free_shipping: bool = False
    error: Optional[CouponRejection] = None
    message: Optional[str] = None
    coupon_id: Optional[uuid.UUID] = None
    code: Optional[str] = None

class CouponBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    discount_type: DiscountType
    value: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    minimum_order_amount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    maximum_discount_amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    usage_limit: Optional[int] = Field(None, gt=0)
    user_usage_limit: int = Field(1, gt=0)
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    restrict_to_products: List[uuid.UUID] = Field(default_factory=list)
    restrict_to_first_time_customers: bool = False
    is_active: bool = True

class CouponCreate(CouponBase):
    """Schema for creating a coupon"""
    code: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    
    @model_validator(mode="after")
    def check_discount(self):
        if self.discount_type == DiscountType.PERCENTAGE and not (0 < self.value <= 100):
            raise ValueError("Percentage discounts must be between 0 and 100")
        if self.discount_type == DiscountType.FIXED_AMOUNT and self.value <= 0:
            raise ValueError("Fixed discounts must be positive")
        if self.starts_at and self.expires_at and self.expires_at <= self.starts_at:
            raise ValueError("expires_at must be after starts_at")
        return self
    
    class Config:
        use_enum_values = True

class CouponUpdate(BaseModel):
    """Schema for updating a coupon; omitted fields are left alone"""
    code: Optional[str] = Field(None, min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    value: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    minimum_order_amount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    maximum_discount_amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    usage_limit: Optional[int] = Field(None, gt=0)
    user_usage_limit: Optional[int] = Field(None, gt=0)
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    restrict_to_products: Optional[List[uuid.UUID]] = None
    restrict_to_first_time_customers: Optional[bool] = None
    is_active: Optional[bool] = None

class CouponResponse(BaseModel):
    """Schema for coupon response"""
    id: uuid.UUID
    code: str
    name: str
    description: Optional[str] = None
    vendor_id: Optional[uuid.UUID] = None
    discount_type: str
    value: Decimal
    minimum_order_amount: Optional[Decimal] = None
    maximum_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    user_usage_limit: int
    usage_count: int
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    restrict_to_products: List[str] = Field(default_factory=list)
    restrict_to_first_time_customers: bool
    is_active: bool
    created_at: datetime
    
    class Config:
        from_attributes = True

class CouponWithStats(BaseModel):
    coupon: CouponResponse
    total_uses: int
    total_discount: Decimal

class CouponDeleteResponse(BaseModel):
    result: str  # deleted, deactivated

class CouponAnalytics(BaseModel):
    coupon_id: uuid.UUID
    code: str
    total_uses: int
    total_discount: Decimal
    unique_users: int
    recent_usages: List[Dict[str, Any]]
