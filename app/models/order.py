"""Order model with state machine"""

from sqlalchemy import Column, String, Numeric, Integer, Enum, ForeignKey, Index, Text, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import enum

from app.core.config import settings
from .base import Base, TimestampedModel, UUIDModel, SerializableMixin

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class CancellationStatus(str, enum.Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"

class RefundStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class Order(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Single-vendor order; a multi-vendor checkout produces one per vendor"""
    
    __tablename__ = "orders"
    
    # Order identification
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    
    # Parties
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    guest_email = Column(String(255), nullable=True)
    
    # Status
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    
    # Amounts
    subtotal = Column(Numeric(12, 2), nullable=False)
    shipping_amount = Column(Numeric(12, 2), default=0, nullable=False)
    discount_amount = Column(Numeric(12, 2), default=0, nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), default=settings.DEFAULT_CURRENCY, nullable=False)
    
    # Discount
    coupon_id = Column(UUID(as_uuid=True), ForeignKey("coupons.id"), nullable=True)
    
    # Payment references
    payment_intent_id = Column(String(255), nullable=True, index=True)
    checkout_session_id = Column(String(255), nullable=True)
    failure_reason = Column(Text, nullable=True)
    
    # Customer cancellation and its refund
    cancellation_status = Column(String(20), nullable=True)  # CancellationStatus
    cancellation_reason = Column(Text, nullable=True)
    cancellation_requested_by = Column(String(255), nullable=True)
    cancellation_resolved_by = Column(String(255), nullable=True)
    refund_id = Column(String(255), nullable=True, index=True)
    refund_status = Column(String(20), nullable=True)  # RefundStatus
    notes = Column(Text, nullable=True)
    
    # Timestamps
    paid_at = Column(DateTime(timezone=True))
    cancelled_at = Column(DateTime(timezone=True))
    fulfilled_at = Column(DateTime(timezone=True))
    refunded_at = Column(DateTime(timezone=True))
    
    # Inventory guards, each stamped at most once
    stock_decremented_at = Column(DateTime(timezone=True), nullable=True)
    stock_restored_at = Column(DateTime(timezone=True), nullable=True)
    
    # Relationships
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", lazy="selectin")
    
    # Indexes
    __table_args__ = (
        Index("idx_orders_vendor_status", "vendor_id", "status"),
        Index("idx_orders_user_payment", "user_id", "payment_status"),
    )

class OrderItem(Base, UUIDModel):
    """Individual items within an order"""
    
    __tablename__ = "order_items"
    
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    
    # Snapshot at time of order
    product_name = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    
    # Relationships
    order = relationship("Order", back_populates="items")
