"""
Ledger models
Transactions mirror money movement for a vendor; platform fees track the
marketplace's cut of each order
"""

from sqlalchemy import Column, String, Numeric, ForeignKey, Index, DateTime, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
import enum

from app.core.config import settings
from .base import Base, TimestampedModel, UUIDModel, SerializableMixin

class TransactionType(str, enum.Enum):
    """Transaction type enumeration"""
    SALE = "sale"
    REFUND = "refund"
    TRANSFER = "transfer"
    PAYOUT = "payout"

class TransactionStatus(str, enum.Enum):
    """Transaction status enumeration"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"

# Types whose completed amounts make up the available balance
BALANCE_AFFECTING_TYPES = {
    TransactionType.SALE.value,
    TransactionType.REFUND.value,
    TransactionType.PAYOUT.value,
}

class PlatformFeeStatus(str, enum.Enum):
    PENDING = "pending"
    COLLECTED = "collected"
    TRANSFERRED = "transferred"

class Transaction(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Signed ledger entry for a vendor"""
    
    __tablename__ = "transactions"
    
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=True)
    
    type = Column(String(20), nullable=False)  # sale, refund, transfer, payout
    amount = Column(Numeric(12, 2), nullable=False)  # negative for money leaving the vendor
    currency = Column(String(3), default=settings.DEFAULT_CURRENCY, nullable=False)
    status = Column(String(20), default=TransactionStatus.PENDING.value, nullable=False)
    description = Column(Text, nullable=True)
    
    # Derived from the external object id, e.g. "refund:re_123"
    idempotency_key = Column(String(255), unique=True, nullable=False)
    
    # Stripe references
    stripe_charge_id = Column(String(255), nullable=True)
    stripe_refund_id = Column(String(255), nullable=True)
    stripe_transfer_id = Column(String(255), nullable=True)
    stripe_payout_id = Column(String(255), nullable=True)
    
    failure_reason = Column(Text, nullable=True)
    transaction_metadata = Column("metadata", JSON, default=dict)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    
    # Indexes
    __table_args__ = (
        Index("idx_transactions_vendor_status", "vendor_id", "status"),
        Index("idx_transactions_vendor_type", "vendor_id", "type"),
        Index("idx_transactions_order", "order_id"),
    )

class PlatformFee(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Marketplace commission and vendor earnings for one order"""
    
    __tablename__ = "platform_fees"
    
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), unique=True, nullable=False)
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False)
    
    gross_amount = Column(Numeric(12, 2), nullable=False)
    fee_amount = Column(Numeric(12, 2), nullable=False)
    vendor_earnings = Column(Numeric(12, 2), nullable=False)
    
    status = Column(String(20), default=PlatformFeeStatus.PENDING.value, nullable=False)  # pending, collected, transferred
    stripe_transfer_id = Column(String(255), nullable=True)
    
    collected_at = Column(DateTime(timezone=True), nullable=True)
    transferred_at = Column(DateTime(timezone=True), nullable=True)
    
    __table_args__ = (
        Index("idx_platform_fees_vendor_status", "vendor_id", "status"),
    )
