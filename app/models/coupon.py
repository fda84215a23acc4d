"""
Coupon and discount models
"""

from sqlalchemy import Column, String, Integer, Numeric, Boolean, ForeignKey, Index, CheckConstraint, Text, DateTime, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from .base import Base, TimestampedModel, UUIDModel, SerializableMixin

class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_SHIPPING = "free_shipping"

class Coupon(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Discount coupons and promo codes"""
    
    __tablename__ = "coupons"
    
    # Stored uppercased; lookups normalise the input the same way
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    
    # NULL vendor means a platform-wide coupon
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=True)
    
    # Discount details
    discount_type = Column(String(20), nullable=False)  # percentage, fixed_amount, free_shipping
    value = Column(Numeric(12, 2), nullable=False)
    
    # Conditions
    minimum_order_amount = Column(Numeric(12, 2), nullable=True)
    maximum_discount_amount = Column(Numeric(12, 2), nullable=True)
    
    # Usage limits
    usage_limit = Column(Integer, nullable=True)  # Total usage limit
    user_usage_limit = Column(Integer, default=1, nullable=False)
    usage_count = Column(Integer, default=0, nullable=False)
    
    # Validity
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    
    # Applicability
    restrict_to_products = Column(JSON, default=list)  # product ids as strings
    restrict_to_first_time_customers = Column(Boolean, default=False, nullable=False)
    
    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Relationships
    usages = relationship("CouponUsage", back_populates="coupon")
    
    # Constraints
    __table_args__ = (
        CheckConstraint("value >= 0", name="check_non_negative_value"),
        CheckConstraint("usage_limit IS NULL OR usage_limit > 0", name="check_positive_usage_limit"),
        CheckConstraint("usage_count >= 0", name="check_non_negative_usage_count"),
        Index("idx_coupons_vendor_active", "vendor_id", "is_active"),
    )

class CouponUsage(Base, UUIDModel, SerializableMixin):
    """Append-only record of a coupon redeemed on a paid order"""
    
    __tablename__ = "coupon_usages"
    
    coupon_id = Column(UUID(as_uuid=True), ForeignKey("coupons.id"), nullable=False)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    user_email = Column(String(255), nullable=True)
    
    discount_amount = Column(Numeric(12, 2), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    coupon = relationship("Coupon", back_populates="usages")
    
    __table_args__ = (
        UniqueConstraint("coupon_id", "order_id", name="uq_coupon_usage_order"),
        Index("idx_coupon_usages_user", "coupon_id", "user_id"),
        Index("idx_coupon_usages_email", "coupon_id", "user_email"),
    )
