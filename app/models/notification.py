"""
Notification model for vendor communications
"""

from sqlalchemy import Column, String, Text, Boolean, ForeignKey, Index, DateTime, JSON
from sqlalchemy.dialects.postgresql import UUID

from .base import Base, TimestampedModel, UUIDModel, SerializableMixin

class Notification(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Vendor notifications"""
    
    __tablename__ = "notifications"
    
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False)
    
    # Notification content
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False)  # payout, order, system
    
    # One notification per triggering event, e.g. "payout.paid:po_123"
    dedupe_key = Column(String(255), unique=True, nullable=True)
    
    # Status
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    
    # Metadata
    notification_metadata = Column(JSON, default=dict)
    
    # Indexes
    __table_args__ = (
        Index("idx_notifications_vendor_unread", "vendor_id", "is_read"),
        Index("idx_notifications_type", "type"),
    )
