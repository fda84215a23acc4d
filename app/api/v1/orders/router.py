"""
Order cancellation API routes
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from app.core.database import get_db
from app.api.v1.payments.stripe_client import StripeClient, get_stripe_client
from .schemas import CancellationRequest, CancellationApproval, CancellationRejection, OrderRefundResponse
from .services import RefundService

router = APIRouter()

@router.post(
    "/{order_id}/cancellation",
    response_model=OrderRefundResponse,
    summary="Request cancellation",
    description="Ask the vendor to cancel and refund an order"
)
async def request_cancellation(
    order_id: uuid.UUID,
    cancel_request: CancellationRequest,
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client)
):
    service = RefundService(db, stripe_client)
    return await service.request_refund(order_id, cancel_request.reason, cancel_request.requested_by)

@router.post(
    "/{order_id}/cancellation/approve",
    response_model=OrderRefundResponse,
    summary="Approve cancellation",
    description="Refund the payment through Stripe, cancel the order and restock its items"
)
async def approve_cancellation(
    order_id: uuid.UUID,
    approval: CancellationApproval,
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client)
):
    """Approve a pending cancellation"""
    service = RefundService(db, stripe_client)
    return await service.approve_refund(order_id, approval.approved_by, approval.notes)

@router.post(
    "/{order_id}/cancellation/reject",
    response_model=OrderRefundResponse,
    summary="Reject cancellation"
)
async def reject_cancellation(
    order_id: uuid.UUID,
    rejection: CancellationRejection,
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client)
):
    service = RefundService(db, stripe_client)
    return await service.reject_refund(order_id, rejection.rejected_by, rejection.reason)
