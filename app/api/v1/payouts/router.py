"""
Vendor payout API routes
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models import Vendor
from app.utils.dependencies import get_pagination_params, get_vendor_or_404
from app.utils.pagination import PaginationParams
from app.api.v1.payments.stripe_client import StripeClient, get_stripe_client
from .schemas import (
    PayoutRequest,
    PayoutRequestResponse,
    BalanceResponse,
    TransactionListResponse,
    PayoutListResponse,
    ReconciliationResponse
)
from .services import PayoutService

router = APIRouter()

@router.post(
    "/vendors/{vendor_id}",
    response_model=PayoutRequestResponse,
    summary="Request payout",
    description="Pay out part of the vendor's available balance"
)
async def request_payout(
    payout_data: PayoutRequest,
    vendor: Vendor = Depends(get_vendor_or_404),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client)
):
    """Request a manual payout"""
    service = PayoutService(db, stripe_client)
    return await service.request_payout(vendor.id, payout_data.amount)

@router.get(
    "/vendors/{vendor_id}/balance",
    response_model=BalanceResponse,
    summary="Get balance"
)
async def get_balance(
    vendor: Vendor = Depends(get_vendor_or_404),
    db: AsyncSession = Depends(get_db)
):
    """Get vendor balance"""
    service = PayoutService(db)
    return await service.get_balance(vendor.id)

@router.get(
    "/vendors/{vendor_id}/transactions",
    response_model=TransactionListResponse,
    summary="List transactions"
)
async def list_transactions(
    type: Optional[str] = Query(None, description="sale, refund, transfer or payout"),
    status: Optional[str] = Query(None, description="pending, completed, failed or reversed"),
    vendor: Vendor = Depends(get_vendor_or_404),
    pagination: PaginationParams = Depends(get_pagination_params),
    db: AsyncSession = Depends(get_db)
):
    """List vendor ledger transactions"""
    service = PayoutService(db)
    return await service.list_transactions(vendor.id, pagination, type=type, status=status)

@router.get(
    "/vendors/{vendor_id}/payouts",
    response_model=PayoutListResponse,
    summary="List payouts"
)
async def list_payouts(
    status: Optional[str] = Query(None, description="Payout status"),
    vendor: Vendor = Depends(get_vendor_or_404),
    pagination: PaginationParams = Depends(get_pagination_params),
    db: AsyncSession = Depends(get_db)
):
    """List vendor payouts"""
    service = PayoutService(db)
    return await service.list_payouts(vendor.id, pagination, status=status)

@router.get(
    "/vendors/{vendor_id}/reconciliation",
    response_model=ReconciliationResponse,
    summary="Reconcile balance",
    description="Compare the stored balance with the sum of completed transactions"
)
async def reconcile_balance(
    vendor: Vendor = Depends(get_vendor_or_404),
    db: AsyncSession = Depends(get_db)
):
    """Reconcile vendor balance"""
    service = PayoutService(db)
    return await service.reconcile_balance(vendor.id)
