"""
Payout schemas for request/response validation
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal
import uuid

from app.utils.pagination import PaginatedResponse
from .services import PayoutError

class PayoutRequest(BaseModel):
    """Schema for a manual payout request"""
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Amount to pay out")

class PayoutRequestResponse(BaseModel):
    """Outcome of a manual payout request"""
    success: bool
    payout_id: Optional[str] = None
    error: Optional[PayoutError] = None
    message: Optional[str] = None

class BalanceResponse(BaseModel):
    """Schema for vendor balance"""
    vendor_id: uuid.UUID
    available_balance: Decimal
    pending_balance: Decimal
    reserved_balance: Decimal
    currency: str
    updated_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True

class TransactionResponse(BaseModel):
    """Schema for a ledger transaction"""
    id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    type: str
    amount: Decimal
    currency: str
    status: str
    description: Optional[str] = None
    failure_reason: Optional[str] = None
    stripe_refund_id: Optional[str] = None
    stripe_transfer_id: Optional[str] = None
    stripe_payout_id: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True

TransactionListResponse = PaginatedResponse[TransactionResponse]

class PayoutResponse(BaseModel):
    """Schema for a payout"""
    id: uuid.UUID
    stripe_payout_id: str
    amount: Decimal
    currency: str
    status: str
    method: str
    arrival_date: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    failure_code: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    
    class Config:
        from_attributes = True

PayoutListResponse = PaginatedResponse[PayoutResponse]

class ReconciliationResponse(BaseModel):
    """Stored balance compared with the ledger"""
    vendor_id: uuid.UUID
    expected: Decimal
    actual: Decimal
    consistent: bool
