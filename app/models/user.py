"""
User model
Purchaser identity; authentication lives outside this service
"""

from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship

from .base import Base, TimestampedModel, UUIDModel, SerializableMixin

class User(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Marketplace customer"""
    
    __tablename__ = "users"
    
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    
    # Relationships
    orders = relationship("Order", back_populates="user")
