"""
Vendor models
Vendor identity, mirrored balance, Stripe Connect account and payouts
"""

from sqlalchemy import Column, String, Boolean, Numeric, ForeignKey, Index, DateTime, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import enum

from app.core.config import settings
from .base import Base, TimestampedModel, UUIDModel, SerializableMixin

class OnboardingStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    RESTRICTED = "restricted"

class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    PAID = "paid"
    FAILED = "failed"
    CANCELED = "canceled"

# A terminal payout only moves again when Stripe reports a paid payout as failed
TERMINAL_PAYOUT_STATUSES = {PayoutStatus.PAID.value, PayoutStatus.FAILED.value, PayoutStatus.CANCELED.value}

class Vendor(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Marketplace seller"""
    
    __tablename__ = "vendors"
    
    business_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Relationships
    products = relationship("Product", back_populates="vendor")
    balance = relationship("VendorBalance", back_populates="vendor", uselist=False)
    stripe_account = relationship("VendorStripeAccount", back_populates="vendor", uselist=False)

class VendorBalance(Base, UUIDModel, SerializableMixin):
    """
    Running balance per vendor.
    Only the ledger service writes to it, always together with the
    transaction row that justifies the change.
    """
    
    __tablename__ = "vendor_balances"
    
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id"), unique=True, nullable=False)
    
    available_balance = Column(Numeric(12, 2), default=0, nullable=False)
    pending_balance = Column(Numeric(12, 2), default=0, nullable=False)
    # Balance carried over from before the ledger existed
    opening_balance = Column(Numeric(12, 2), default=0, nullable=False)
    reserved_balance = Column(Numeric(12, 2), default=0, nullable=False)
    currency = Column(String(3), default=settings.DEFAULT_CURRENCY, nullable=False)
    
    updated_at = Column(DateTime(timezone=True), nullable=True)
    
    # Relationships
    vendor = relationship("Vendor", back_populates="balance")

class VendorStripeAccount(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Mirror of the vendor's Stripe Connect account"""
    
    __tablename__ = "vendor_stripe_accounts"
    
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id"), unique=True, nullable=False)
    stripe_account_id = Column(String(255), unique=True, nullable=False, index=True)
    
    # Capability flags as reported by Stripe
    charges_enabled = Column(Boolean, default=False, nullable=False)
    payouts_enabled = Column(Boolean, default=False, nullable=False)
    details_submitted = Column(Boolean, default=False, nullable=False)
    capabilities = Column(JSON, default=dict)
    requirements = Column(JSON, default=dict)
    
    onboarding_status = Column(String(20), default=OnboardingStatus.PENDING.value, nullable=False)
    onboarding_completed_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    
    # Relationships
    vendor = relationship("Vendor", back_populates="stripe_account")

class Payout(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Mirror of a Stripe payout to a vendor's bank account"""
    
    __tablename__ = "payouts"
    
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False)
    stripe_payout_id = Column(String(255), unique=True, nullable=False)
    
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), default=settings.DEFAULT_CURRENCY, nullable=False)
    status = Column(String(20), default=PayoutStatus.PENDING.value, nullable=False)  # pending, in_transit, paid, failed, canceled
    method = Column(String(20), default="standard", nullable=False)  # standard, instant
    description = Column(Text, nullable=True)
    
    arrival_date = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    
    # Failure details for support
    failure_code = Column(String(100), nullable=True)
    failure_reason = Column(Text, nullable=True)
    
    __table_args__ = (
        Index("idx_payouts_vendor_status", "vendor_id", "status"),
    )
