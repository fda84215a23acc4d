"""
Order cancellation schemas
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal
import uuid

from app.models.order import OrderStatus, PaymentStatus

class CancellationRequest(BaseModel):
    """Customer asks to cancel an order"""
    reason: str = Field(..., min_length=3, max_length=500)
    requested_by: Optional[str] = Field(None, max_length=255, description="User id or email of the requester")

class CancellationApproval(BaseModel):
    approved_by: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)

class CancellationRejection(BaseModel):
    rejected_by: str = Field(..., min_length=1, max_length=255)
    reason: str = Field(..., min_length=3, max_length=500)

class OrderRefundResponse(BaseModel):
    """Order with its cancellation and refund state"""
    id: uuid.UUID
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    total: Decimal
    currency: str
    cancellation_status: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancellation_resolved_by: Optional[str] = None
    refund_id: Optional[str] = None
    refund_status: Optional[str] = None
    refunded_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True
