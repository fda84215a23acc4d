"""
Vendor payout service
Manual payouts and read access to the vendor ledger
"""

from typing import Optional, Dict, Any
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import enum
import uuid
import logging

from app.models import (
    Payout,
    PayoutStatus,
    Transaction,
    TransactionType,
    TransactionStatus,
    VendorBalance,
    VendorStripeAccount,
)
from app.core.config import settings
from app.core.exceptions import NotFoundException, PaymentGatewayException
from app.core.monitoring import payout_requests
from app.services.ledger import LedgerService
from app.utils.helpers import round_money, from_timestamp
from app.utils.pagination import paginate, PaginationParams
from app.api.v1.payments.stripe_client import StripeClient

logger = logging.getLogger(__name__)

class PayoutError(str, enum.Enum):
    BELOW_MINIMUM = "below_minimum"
    BALANCE_NOT_FOUND = "balance_not_found"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    PAYOUTS_NOT_ENABLED = "payouts_not_enabled"
    PAYOUT_FAILED = "payout_failed"

PAYOUT_ERROR_MESSAGES = {
    PayoutError.BELOW_MINIMUM: "Minimum payout amount is {minimum}",
    PayoutError.BALANCE_NOT_FOUND: "Vendor balance not found",
    PayoutError.INSUFFICIENT_BALANCE: "Insufficient available balance",
    PayoutError.PAYOUTS_NOT_ENABLED: "Payouts are not enabled for this vendor",
    PayoutError.PAYOUT_FAILED: "Payout could not be created",
}

class PayoutService:
    """Payout service for vendor settlements"""
    
    def __init__(self, db: AsyncSession, stripe_client: Optional[StripeClient] = None):
        self.db = db
        self.stripe = stripe_client or StripeClient()
        self.ledger = LedgerService(db)
    
    async def _fail(self, error: PayoutError, message: Optional[str] = None) -> Dict[str, Any]:
        # Releases the balance row lock
        await self.db.rollback()
        payout_requests.labels(outcome=error.value).inc()
        return {
            "success": False,
            "error": error,
            "message": message or PAYOUT_ERROR_MESSAGES[error].format(minimum=settings.MINIMUM_PAYOUT_AMOUNT),
        }
    
    async def request_payout(self, vendor_id: uuid.UUID, amount: Decimal) -> Dict[str, Any]:
        """
        Pay out part of a vendor's available balance
        
        The balance row stays locked from the check until commit, so two
        concurrent requests can't both spend the same funds. Stripe is
        called before anything is written; if it fails nothing changes.
        
        Args:
            vendor_id: Vendor ID
            amount: Amount to pay out
            
        Returns:
            {"success": True, "payout_id": ...} or
            {"success": False, "error": PayoutError, "message": ...}
        """
        amount = round_money(amount)
        if amount <= 0 or amount < settings.MINIMUM_PAYOUT_AMOUNT:
            return await self._fail(PayoutError.BELOW_MINIMUM)
        
        balance = await self.ledger.lock_balance(vendor_id)
        if balance is None:
            return await self._fail(PayoutError.BALANCE_NOT_FOUND)
        
        if Decimal(balance.available_balance) < amount:
            return await self._fail(PayoutError.INSUFFICIENT_BALANCE)
        
        result = await self.db.execute(
            select(VendorStripeAccount).where(VendorStripeAccount.vendor_id == vendor_id)
        )
        account = result.scalar_one_or_none()
        if not account or not account.payouts_enabled:
            return await self._fail(PayoutError.PAYOUTS_NOT_ENABLED)
        
        try:
            stripe_payout = await self.stripe.create_payout(
                stripe_account_id=account.stripe_account_id,
                amount=amount,
                currency=balance.currency,
                metadata={"vendorId": str(vendor_id), "source": "manual"},
                idempotency_key=f"payout-{vendor_id}-{uuid.uuid4().hex}"
            )
        except PaymentGatewayException as e:
            logger.error(f"Payout of {amount} for vendor {vendor_id} failed: {e.detail}")
            return await self._fail(PayoutError.PAYOUT_FAILED, e.detail)
        
        payout_id = stripe_payout["id"]
        payout = Payout(
            vendor_id=vendor_id,
            stripe_payout_id=payout_id,
            amount=amount,
            currency=balance.currency,
            status=stripe_payout.get("status") or PayoutStatus.PENDING.value,
            method=stripe_payout.get("method") or "standard",
            description="Manual payout",
            arrival_date=from_timestamp(stripe_payout.get("arrival_date"))
        )
        self.db.add(payout)
        
        await self.ledger.ensure_transaction(
            idempotency_key=f"payout:{payout_id}",
            vendor_id=vendor_id,
            type=TransactionType.PAYOUT.value,
            amount=-amount,
            status=TransactionStatus.COMPLETED.value,
            currency=balance.currency,
            stripe_payout_id=payout_id,
            description="Manual payout"
        )
        await self.db.commit()
        
        payout_requests.labels(outcome="success").inc()
        logger.info(f"Payout {payout_id} of {amount} created for vendor {vendor_id}")
        return {"success": True, "payout_id": payout_id}
    
    async def get_balance(self, vendor_id: uuid.UUID) -> VendorBalance:
        """
        Get vendor balance
        
        Raises:
            NotFoundException: If the vendor has no balance yet
        """
        result = await self.db.execute(
            select(VendorBalance).where(VendorBalance.vendor_id == vendor_id)
        )
        balance = result.scalar_one_or_none()
        if not balance:
            raise NotFoundException("Vendor balance not found", error_code="BALANCE_NOT_FOUND")
        return balance
    
    async def list_transactions(
        self,
        vendor_id: uuid.UUID,
        pagination: PaginationParams,
        type: Optional[str] = None,
        status: Optional[str] = None
    ) -> Dict[str, Any]:
        """Vendor ledger, newest first"""
        query = select(Transaction).where(Transaction.vendor_id == vendor_id)
        if type:
            query = query.where(Transaction.type == type)
        if status:
            query = query.where(Transaction.status == status)
        query = query.order_by(Transaction.created_at.desc())
        
        return await paginate(self.db, query, pagination)
    
    async def list_payouts(
        self,
        vendor_id: uuid.UUID,
        pagination: PaginationParams,
        status: Optional[str] = None
    ) -> Dict[str, Any]:
        """Vendor payouts, newest first"""
        query = select(Payout).where(Payout.vendor_id == vendor_id)
        if status:
            query = query.where(Payout.status == status)
        query = query.order_by(Payout.created_at.desc())
        
        return await paginate(self.db, query, pagination)
    
    async def reconcile_balance(self, vendor_id: uuid.UUID) -> Dict[str, Any]:
        """Check the stored balance against the completed transactions"""
        return await self.ledger.reconcile(vendor_id)
