"""
Payment schemas for request/response validation
"""

from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime
import uuid

class WebhookAck(BaseModel):
    """Response returned to Stripe for every accepted delivery"""
    received: bool = True
    handled: bool = True

class StripeAccountResponse(BaseModel):
    """Mirrored Stripe Connect account of a vendor"""
    vendor_id: uuid.UUID
    stripe_account_id: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    onboarding_status: str
    capabilities: Optional[Dict[str, Any]] = None
    requirements: Optional[Dict[str, Any]] = None
    onboarding_completed_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True
