"""
Product model
Only the fields the settlement layer needs: ownership, price and stock
"""

from sqlalchemy import Column, String, Integer, Numeric, Boolean, ForeignKey, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from .base import Base, TimestampedModel, UUIDModel, SerializableMixin

class Product(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Product listed by a vendor"""
    
    __tablename__ = "products"
    
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False)
    name = Column(String(500), nullable=False)
    sku = Column(String(100), nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    
    # Inventory
    stock = Column(Integer, default=0, nullable=False)
    track_inventory = Column(Boolean, default=True, nullable=False)
    
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Relationships
    vendor = relationship("Vendor", back_populates="products")
    
    __table_args__ = (
        CheckConstraint("stock >= 0", name="check_non_negative_stock"),
        CheckConstraint("price >= 0", name="check_non_negative_price"),
        Index("idx_products_vendor", "vendor_id"),
    )
