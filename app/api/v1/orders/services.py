"""
Order cancellation and refund workflow

A customer asks to cancel, the vendor approves or rejects. Approval
refunds the payment through Stripe, cancels the order and puts its stock
back; the vendor's balance is debited once Stripe confirms the refund.
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import uuid
import logging

from app.models import Order, OrderStatus, PaymentStatus, CancellationStatus, RefundStatus, TransactionStatus
from app.models.inventory import InventoryManager
from app.core.exceptions import NotFoundException, OrderNotCancellableException, NoCancellationRequestException
from app.services.ledger import LedgerService
from app.services.notification import NotificationService
from app.api.v1.payments.services import REFUND_STATUS_MAP
from app.api.v1.payments.stripe_client import StripeClient
from app.utils.helpers import utcnow
from .state_machine import OrderStateMachine

logger = logging.getLogger(__name__)

REFUND_STATUS_FOR_TRANSACTION = {
    TransactionStatus.PENDING.value: RefundStatus.PENDING,
    TransactionStatus.COMPLETED.value: RefundStatus.SUCCEEDED,
    TransactionStatus.FAILED.value: RefundStatus.FAILED,
}


class RefundService:
    """Cancellation requests and the refunds they lead to"""

    def __init__(self, db: AsyncSession, stripe_client: Optional[StripeClient] = None):
        self.db = db
        self.stripe = stripe_client or StripeClient()
        self.ledger = LedgerService(db)
        self.inventory = InventoryManager()
        self.notifications = NotificationService(db)
        self.state_machine = OrderStateMachine()

    async def _get_order(self, order_id: uuid.UUID, lock: bool = False) -> Order:
        query = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        if lock:
            query = query.with_for_update()
        order = await self.db.scalar(query)
        if not order:
            raise NotFoundException("Order not found", error_code="ORDER_NOT_FOUND")
        return order

    async def request_refund(self, order_id: uuid.UUID, reason: str, requested_by: Optional[str] = None) -> Order:
        """
        Record a customer's cancellation request for the vendor to review

        Raises:
            NotFoundException: If the order doesn't exist
            OrderNotCancellableException: If the order is fulfilled, already
                cancelled, or has a request awaiting review
        """
        order = await self._get_order(order_id, lock=True)

        if not self.state_machine.is_cancellable(order.status):
            raise OrderNotCancellableException(f"Orders that are {order.status.value} can't be cancelled")
        if order.cancellation_status == CancellationStatus.REQUESTED.value:
            raise OrderNotCancellableException("A cancellation request is already awaiting review")

        order.cancellation_status = CancellationStatus.REQUESTED.value
        order.cancellation_reason = reason
        order.cancellation_requested_by = requested_by
        order.cancellation_resolved_by = None

        await self.notifications.send_cancellation_requested(order)
        await self.db.commit()

        logger.info(f"Cancellation requested for order {order.order_number}")
        return order

    async def approve_refund(self, order_id: uuid.UUID, approved_by: str, notes: Optional[str] = None) -> Order:
        """
        Approve a pending cancellation

        A paid order is refunded in full through Stripe first; if Stripe
        refuses, nothing is written. The refund's ledger debit starts
        pending under the same key the refund webhooks use.

        Raises:
            NotFoundException: If the order doesn't exist
            NoCancellationRequestException: If no request is awaiting review
            OrderNotCancellableException: If the order was fulfilled meanwhile
            PaymentGatewayException: If Stripe rejects the refund
        """
        order = await self._get_order(order_id, lock=True)

        if order.cancellation_status != CancellationStatus.REQUESTED.value:
            raise NoCancellationRequestException()
        if not self.state_machine.is_cancellable(order.status):
            raise OrderNotCancellableException(f"Order {order.order_number} is already {order.status.value}")

        if order.payment_status == PaymentStatus.SUCCEEDED and order.payment_intent_id:
            refund = await self.stripe.create_refund(
                payment_intent_id=order.payment_intent_id,
                amount=order.total,
                metadata={
                    "orderId": str(order.id),
                    "orderNumber": order.order_number,
                    "approvedBy": approved_by,
                },
                idempotency_key=f"refund-{order.id}"
            )
            await self._record_refund(order, refund)

        order.cancellation_status = CancellationStatus.APPROVED.value
        order.cancellation_resolved_by = approved_by
        if notes:
            order.notes = notes
        self.state_machine.apply(order, OrderStatus.CANCELLED)
        await self.db.flush()

        await self.inventory.restore_for_order(self.db, order.id)
        await self.db.commit()

        logger.info(f"Cancellation of order {order.order_number} approved by {approved_by} (refund {order.refund_id or 'none'})")
        return await self._get_order(order_id)

    async def _record_refund(self, order: Order, refund: dict) -> None:
        transaction, _ = await self.ledger.record_refund(order, refund)

        # Stripe often settles card refunds synchronously
        status = REFUND_STATUS_MAP.get(refund.get("status"), TransactionStatus.PENDING.value)
        failure_reason = refund.get("failure_reason") if status == TransactionStatus.FAILED.value else None
        await self.ledger.transition(transaction, status, failure_reason=failure_reason)

        order.refund_id = refund["id"]
        order.refund_status = REFUND_STATUS_FOR_TRANSACTION[transaction.status].value
        if order.refund_status == RefundStatus.SUCCEEDED.value:
            order.refunded_at = utcnow()
        elif order.refund_status == RefundStatus.FAILED.value:
            order.notes = f"Refund failed: {failure_reason or 'unknown reason'}"
            await self.notifications.send_refund_failed(order, refund["id"], failure_reason or "Refund failed")

    async def reject_refund(self, order_id: uuid.UUID, rejected_by: str, reason: str) -> Order:
        """
        Turn down a pending cancellation; the order carries on as before

        Raises:
            NotFoundException: If the order doesn't exist
            NoCancellationRequestException: If no request is awaiting review
        """
        order = await self._get_order(order_id, lock=True)

        if order.cancellation_status != CancellationStatus.REQUESTED.value:
            raise NoCancellationRequestException()

        order.cancellation_status = CancellationStatus.REJECTED.value
        order.cancellation_resolved_by = rejected_by
        order.notes = f"Cancellation rejected: {reason}"
        await self.db.commit()

        logger.info(f"Cancellation of order {order.order_number} rejected by {rejected_by}")
        return order
