"""
Ledger service
Keeps each vendor's available balance equal to the opening balance plus
the completed sale, refund and payout transactions
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple, Dict, Any
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.core.config import settings
from app.models.order import Order
from app.models.payment import Transaction, TransactionStatus, TransactionType, BALANCE_AFFECTING_TYPES
from app.models.vendor import VendorBalance
from app.utils.helpers import from_minor_units, round_money, utcnow

logger = logging.getLogger(__name__)

COMPLETED = TransactionStatus.COMPLETED.value


class LedgerService:
    """
    Writes transactions and the balance changes they justify.
    
    Callers own the database transaction; nothing here commits, so the
    balance row and its transaction row land (or roll back) together.
    """
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def lock_balance(self, vendor_id: UUID, create: bool = False) -> Optional[VendorBalance]:
        """
        Read the vendor's balance row with a row lock
        
        Args:
            vendor_id: Vendor ID
            create: Create an empty balance if the vendor has none
            
        Returns:
            Locked VendorBalance, or None when missing and create is False
        """
        result = await self.db.execute(
            select(VendorBalance)
            .where(VendorBalance.vendor_id == vendor_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        balance = result.scalar_one_or_none()
        
        if balance is None and create:
            balance = VendorBalance(
                vendor_id=vendor_id,
                available_balance=Decimal("0.00"),
                pending_balance=Decimal("0.00"),
                reserved_balance=Decimal("0.00"),
                opening_balance=Decimal("0.00"),
                currency=settings.DEFAULT_CURRENCY,
                updated_at=utcnow()
            )
            self.db.add(balance)
            await self.db.flush()
            logger.info(f"Created balance for vendor {vendor_id}")
        
        return balance
    
    async def get_by_key(self, idempotency_key: str) -> Optional[Transaction]:
        result = await self.db.execute(
            select(Transaction).where(Transaction.idempotency_key == idempotency_key)
        )
        return result.scalar_one_or_none()
    
    async def ensure_transaction(
        self,
        idempotency_key: str,
        vendor_id: UUID,
        type: str,
        amount: Decimal,
        status: str = TransactionStatus.PENDING.value,
        **fields: Any
    ) -> Tuple[Transaction, bool]:
        """
        Insert a transaction unless one with the same key exists
        
        An existing row is returned untouched, so a late "created" event
        never rolls back a status that a later event already applied.
        
        Returns:
            (transaction, created)
        """
        existing = await self.get_by_key(idempotency_key)
        if existing:
            return existing, False
        
        transaction = Transaction(
            idempotency_key=idempotency_key,
            vendor_id=vendor_id,
            type=type,
            amount=round_money(amount),
            currency=fields.pop("currency", None) or settings.DEFAULT_CURRENCY,
            status=TransactionStatus.PENDING.value,
            transaction_metadata=fields.pop("metadata", None) or {},
            **fields
        )
        self.db.add(transaction)
        await self.db.flush()
        
        if status != TransactionStatus.PENDING.value:
            await self.transition(transaction, status)
        
        return transaction, True
    
    async def transition(
        self,
        transaction: Transaction,
        status: str,
        failure_reason: Optional[str] = None
    ) -> bool:
        """
        Move a transaction to a new status and apply the balance delta
        
        Entering completed adds the amount to the available balance and
        leaving it takes the amount back out. Transfers never move the
        balance.
        
        Returns:
            True if the status changed
        """
        if failure_reason:
            transaction.failure_reason = failure_reason
        
        previous = transaction.status
        if previous == status:
            return False
        
        delta = Decimal("0.00")
        if transaction.type in BALANCE_AFFECTING_TYPES:
            if status == COMPLETED:
                delta = Decimal(transaction.amount)
            elif previous == COMPLETED:
                delta = -Decimal(transaction.amount)
        
        if delta:
            balance = await self.lock_balance(transaction.vendor_id, create=True)
            balance.available_balance = round_money(Decimal(balance.available_balance) + delta)
            balance.updated_at = utcnow()
        
        transaction.status = status
        if status == COMPLETED:
            transaction.completed_at = utcnow()
        
        await self.db.flush()
        logger.info(
            f"Transaction {transaction.idempotency_key} {previous} -> {status}"
            + (f" (balance {delta:+})" if delta else "")
        )
        return True
    
    async def record_refund(self, order: Order, refund: Dict[str, Any]) -> Tuple[Transaction, bool]:
        """
        Pending refund debit for an order, keyed by the Stripe refund id

        The refund API response and the refund webhooks share the key, so
        whichever arrives first creates the row.
        """
        charge = refund.get("charge")
        return await self.ensure_transaction(
            idempotency_key=f"refund:{refund['id']}",
            vendor_id=order.vendor_id,
            type=TransactionType.REFUND.value,
            amount=-from_minor_units(refund.get("amount")),
            order_id=order.id,
            currency=refund.get("currency") or order.currency,
            stripe_refund_id=refund["id"],
            stripe_charge_id=charge.get("id") if isinstance(charge, dict) else charge,
            description=f"Refund for order {order.order_number}",
            metadata={"reason": refund.get("reason")}
        )
    
    async def completed_sum(self, vendor_id: UUID) -> Decimal:
        total = await self.db.scalar(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.vendor_id == vendor_id,
                Transaction.status == COMPLETED,
                Transaction.type.in_(BALANCE_AFFECTING_TYPES)
            )
        )
        return round_money(total or 0)
    
    async def reconcile(self, vendor_id: UUID) -> Dict[str, Any]:
        """
        Compare the stored balance with the one the ledger implies
        
        Returns:
            expected, actual and whether they agree
        """
        result = await self.db.execute(
            select(VendorBalance).where(VendorBalance.vendor_id == vendor_id)
        )
        balance = result.scalar_one_or_none()
        
        opening = Decimal(balance.opening_balance) if balance else Decimal("0.00")
        actual = round_money(balance.available_balance) if balance else Decimal("0.00")
        expected = round_money(opening + await self.completed_sum(vendor_id))
        
        if expected != actual:
            logger.error(f"Balance drift for vendor {vendor_id}: expected {expected}, stored {actual}")
        
        return {
            "vendor_id": vendor_id,
            "expected": expected,
            "actual": actual,
            "consistent": expected == actual,
        }
