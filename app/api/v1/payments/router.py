"""
Payment API routes
"""

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import uuid
import logging

from app.core.database import get_db
from app.core.exceptions import InternalServerException, NotFoundException
from app.models import VendorStripeAccount
from .schemas import WebhookAck, StripeAccountResponse
from .services import PaymentReconciler
from .stripe_client import StripeClient, get_stripe_client

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post(
    "/webhooks/stripe",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Stripe webhook",
    description="Verify and apply a Stripe webhook event"
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client)
):
    """
    Handle Stripe webhook

    Bad signatures are rejected with 400 before anything is read from the
    database. Any failure while applying the event rolls the whole event
    back and answers 500 so Stripe delivers it again.
    """
    payload = await request.body()
    event = stripe_client.construct_event(payload, stripe_signature)

    reconciler = PaymentReconciler(db, stripe_client)
    try:
        result = await reconciler.process_event(event)
        await db.commit()
    except Exception as e:
        await db.rollback()
        raise InternalServerException(
            "Webhook processing failed",
            error_code="WEBHOOK_PROCESSING_FAILED"
        ) from e

    return result

@router.get(
    "/accounts/{vendor_id}",
    response_model=StripeAccountResponse,
    summary="Get vendor Stripe account",
    description="Mirrored Stripe Connect capability flags for a vendor"
)
async def get_vendor_stripe_account(
    vendor_id: uuid.UUID,
    db: AsyncSession = Depends(get_db)
):
    """Get a vendor's mirrored Stripe account"""
    result = await db.execute(
        select(VendorStripeAccount).where(VendorStripeAccount.vendor_id == vendor_id)
    )
    account = result.scalar_one_or_none()
    if not account:
        raise NotFoundException("Stripe account not found", error_code="STRIPE_ACCOUNT_NOT_FOUND")
    return account
