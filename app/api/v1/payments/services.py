"""
Payment reconciliation service
Mirrors Stripe webhook events into orders, the vendor ledger, connected
accounts and payouts
"""

from typing import List, Optional, Dict, Any, Tuple
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import time
import uuid
import logging

from app.models import (
    Order,
    OrderStatus,
    PaymentStatus,
    CancellationStatus,
    RefundStatus,
    PlatformFee,
    PlatformFeeStatus,
    Transaction,
    TransactionType,
    TransactionStatus,
    VendorStripeAccount,
    OnboardingStatus,
    Payout,
    PayoutStatus,
)
from app.models.inventory import InventoryManager
from app.models.vendor import TERMINAL_PAYOUT_STATUSES
from app.core.config import settings
from app.core.exceptions import PaymentGatewayException, ServiceUnavailableException
from app.core.monitoring import webhook_events, webhook_duration
from app.services.coupon_service import CouponService
from app.services.ledger import LedgerService
from app.services.notification import NotificationService
from app.utils.helpers import from_minor_units, from_timestamp, parse_order_ids, utcnow
from app.api.v1.orders.state_machine import OrderStateMachine
from .stripe_client import StripeClient
from .webhooks import WebhookHandler

logger = logging.getLogger(__name__)

REFUND_STATUS_MAP = {
    "succeeded": TransactionStatus.COMPLETED.value,
    "failed": TransactionStatus.FAILED.value,
    "canceled": TransactionStatus.FAILED.value,
}

def _object_id(value: Any) -> Optional[str]:
    """Stripe references arrive as ids, or as objects when expanded"""
    if isinstance(value, dict):
        return value.get("id")
    return value

def _parse_uuid(value: Any) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None

class PaymentReconciler:
    """
    Applies Stripe events to local state.

    Stripe redelivers events and gives no ordering guarantee, so every
    handler re-reads what it needs and writes through upserts keyed by
    Stripe object ids. Nothing here commits; the webhook route commits
    once the whole event has been applied.
    """

    def __init__(self, db: AsyncSession, stripe_client: Optional[StripeClient] = None):
        self.db = db
        self.stripe = stripe_client or StripeClient()
        self.ledger = LedgerService(db)
        self.coupons = CouponService(db)
        self.notifications = NotificationService(db)
        self.inventory = InventoryManager()
        self.state_machine = OrderStateMachine()

    async def process_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply one verified event

        Args:
            event: Parsed Stripe event

        Returns:
            {"received": True, "handled": bool}
        """
        event_type = event.get("type", "")
        handler = WebhookHandler.get_event_handler(self, event_type)

        if handler is None:
            logger.info(f"Unhandled webhook event: {event_type}")
            webhook_events.labels(event_type=event_type, outcome="unhandled").inc()
            return {"received": True, "handled": False}

        if not WebhookHandler.validate_event_data(event):
            logger.warning(f"Webhook event {event.get('id')} ({event_type}) has no data object")
            webhook_events.labels(event_type=event_type, outcome="malformed").inc()
            return {"received": True, "handled": False}

        started = time.time()
        try:
            await handler(event)
        except Exception:
            webhook_events.labels(event_type=event_type, outcome="failed").inc()
            logger.exception(f"Failed to process webhook event {event.get('id')} ({event_type})")
            raise
        finally:
            webhook_duration.labels(event_type=event_type).observe(time.time() - started)

        webhook_events.labels(event_type=event_type, outcome="processed").inc()
        logger.info(f"Processed webhook event {event.get('id')} ({event_type})")
        return {"received": True, "handled": True}

    # Lookups

    async def _get_order(self, order_id: Any) -> Optional[Order]:
        parsed = _parse_uuid(order_id)
        if parsed is None:
            return None
        result = await self.db.execute(select(Order).where(Order.id == parsed))
        return result.scalar_one_or_none()

    async def _orders_for_payment_intent(self, payment_intent_id: Optional[str]) -> List[Order]:
        if not payment_intent_id:
            return []
        result = await self.db.execute(
            select(Order)
            .where(Order.payment_intent_id == payment_intent_id)
            .order_by(Order.created_at)
        )
        return list(result.scalars().all())

    async def _account_by_stripe_id(self, stripe_account_id: Optional[str]) -> Optional[VendorStripeAccount]:
        if not stripe_account_id:
            return None
        result = await self.db.execute(
            select(VendorStripeAccount).where(VendorStripeAccount.stripe_account_id == stripe_account_id)
        )
        return result.scalar_one_or_none()

    async def _account_for_vendor(self, vendor_id: uuid.UUID) -> Optional[VendorStripeAccount]:
        result = await self.db.execute(
            select(VendorStripeAccount).where(VendorStripeAccount.vendor_id == vendor_id)
        )
        return result.scalar_one_or_none()

    async def _platform_fee(self, order_id: uuid.UUID) -> Optional[PlatformFee]:
        result = await self.db.execute(
            select(PlatformFee).where(PlatformFee.order_id == order_id)
        )
        return result.scalar_one_or_none()

    # Checkout and payment intents

    async def handle_checkout_completed(self, event: Dict[str, Any]) -> None:
        """Mark the session's orders paid and settle vendor earnings"""
        session = event["data"]["object"]
        metadata = session.get("metadata") or {}
        order_ids = parse_order_ids(metadata)

        if not order_ids:
            logger.warning(f"Checkout session {session.get('id')} carries no order ids")
            return

        # Delayed payment methods complete the session before the money arrives
        if session.get("payment_status") == "unpaid":
            logger.info(f"Checkout session {session.get('id')} completed but awaiting payment")
            return

        payment_intent_id = _object_id(session.get("payment_intent"))
        orders = []

        for order_id in order_ids:
            order = await self._get_order(order_id)
            if not order:
                logger.warning(f"Order {order_id} from session {session.get('id')} not found")
                continue

            # Stock was already returned when the cancellation was approved
            if order.cancellation_status == CancellationStatus.APPROVED.value:
                logger.info(f"Order {order.order_number} was cancelled and refunded; session {session.get('id')} ignored")
                continue

            self._mark_order_paid(order, payment_intent_id, session.get("id"))
            await self.db.flush()

            await self.inventory.decrement_for_order(self.db, order.id)

            if order.coupon_id:
                await self.coupons.record_usage(
                    coupon_id=order.coupon_id,
                    order_id=order.id,
                    discount_amount=order.discount_amount or Decimal("0.00"),
                    user_id=order.user_id,
                    user_email=order.guest_email
                )

            await self._collect_platform_fee(order)
            orders.append(order)

        if metadata.get("isMultiVendor") == "true" or len(order_ids) > 1:
            await self._transfer_vendor_splits(orders, session.get("id"))

    def _mark_order_paid(self, order: Order, payment_intent_id: Optional[str], session_id: Optional[str]) -> None:
        if payment_intent_id:
            order.payment_intent_id = payment_intent_id
        if session_id:
            order.checkout_session_id = session_id

        if order.payment_status == PaymentStatus.SUCCEEDED:
            return

        order.payment_status = PaymentStatus.SUCCEEDED
        order.failure_reason = None
        order.paid_at = utcnow()

        self.state_machine.apply(order, OrderStatus.PROCESSING)

        logger.info(f"Order {order.order_number} paid")

    async def _collect_platform_fee(self, order: Order) -> None:
        """Credit the vendor's share of a paid order to their balance"""
        fee = await self._platform_fee(order.id)
        if not fee or fee.status != PlatformFeeStatus.PENDING.value:
            return

        await self.ledger.ensure_transaction(
            idempotency_key=f"sale:{order.id}",
            vendor_id=order.vendor_id,
            type=TransactionType.SALE.value,
            amount=Decimal(fee.vendor_earnings),
            status=TransactionStatus.COMPLETED.value,
            order_id=order.id,
            currency=order.currency,
            description=f"Sale for order {order.order_number}",
            metadata={
                "gross_amount": str(fee.gross_amount),
                "platform_fee": str(fee.fee_amount),
                "payment_intent_id": order.payment_intent_id,
            }
        )

        fee.status = PlatformFeeStatus.COLLECTED.value
        fee.collected_at = utcnow()
        await self.db.flush()

    async def _transfer_vendor_splits(self, orders: List[Order], session_id: Optional[str]) -> None:
        """
        Transfer each vendor's earnings for a split checkout

        Vendors are handled independently: a failed transfer is logged and
        its fee stays collected for manual follow-up.
        """
        for order in orders:
            fee = await self._platform_fee(order.id)
            if not fee or fee.status != PlatformFeeStatus.COLLECTED.value:
                continue

            account = await self._account_for_vendor(order.vendor_id)
            if not account:
                logger.warning(f"Vendor {order.vendor_id} has no Stripe account; transfer for order {order.order_number} skipped")
                continue

            try:
                transfer = await self.stripe.create_transfer(
                    amount=Decimal(fee.vendor_earnings),
                    currency=order.currency,
                    destination=account.stripe_account_id,
                    transfer_group=session_id,
                    metadata={
                        "orderId": str(order.id),
                        "vendorId": str(order.vendor_id),
                        "platformFeeId": str(fee.id),
                    },
                    idempotency_key=f"transfer-{fee.id}"
                )
            except PaymentGatewayException as e:
                logger.error(f"Transfer for order {order.order_number} to vendor {order.vendor_id} failed: {e.detail}")
                continue

            fee.status = PlatformFeeStatus.TRANSFERRED.value
            fee.stripe_transfer_id = transfer["id"]
            fee.transferred_at = utcnow()

            await self.ledger.ensure_transaction(
                idempotency_key=f"transfer:{transfer['id']}",
                vendor_id=order.vendor_id,
                type=TransactionType.TRANSFER.value,
                amount=Decimal(fee.vendor_earnings),
                order_id=order.id,
                currency=order.currency,
                stripe_transfer_id=transfer["id"],
                description=f"Transfer for order {order.order_number}"
            )
            logger.info(f"Transferred {fee.vendor_earnings} to vendor {order.vendor_id} ({transfer['id']})")

    async def handle_checkout_failed(self, event: Dict[str, Any]) -> None:
        """Delayed payment for a session failed"""
        session = event["data"]["object"]
        for order_id in parse_order_ids(session.get("metadata")):
            order = await self._get_order(order_id)
            if order:
                await self._fail_order(order, "Payment failed")

    async def handle_payment_succeeded(self, event: Dict[str, Any]) -> None:
        """Orders are settled by the checkout session; only log here"""
        payment_intent = event["data"]["object"]
        logger.info(
            f"Payment {payment_intent.get('id')} succeeded: "
            f"{from_minor_units(payment_intent.get('amount'))} {payment_intent.get('currency', '').upper()}"
        )

    async def handle_payment_failed(self, event: Dict[str, Any]) -> None:
        """Fail the orders paid by this intent, if we know any"""
        payment_intent = event["data"]["object"]
        orders = await self._orders_for_payment_intent(payment_intent.get("id"))

        if not orders:
            logger.info(f"No orders for failed payment {payment_intent.get('id')}")
            return

        error = payment_intent.get("last_payment_error") or {}
        reason = error.get("message") or "Payment failed"
        for order in orders:
            await self._fail_order(order, reason)

    async def _fail_order(self, order: Order, reason: str) -> None:
        if order.payment_status == PaymentStatus.SUCCEEDED:
            logger.info(f"Ignoring payment failure for paid order {order.order_number}")
            return

        order.payment_status = PaymentStatus.FAILED
        order.failure_reason = reason
        if self.state_machine.is_cancellable(order.status):
            self.state_machine.apply(order, OrderStatus.CANCELLED)
        await self.db.flush()

        await self.inventory.restore_for_order(self.db, order.id)
        logger.warning(f"Payment failed for order {order.order_number}: {reason}")

    # Refunds

    async def _refund_order(self, refund: Dict[str, Any]) -> Optional[Order]:
        result = await self.db.execute(select(Order).where(Order.refund_id == refund["id"]))
        order = result.scalars().first()
        if order:
            return order

        metadata = refund.get("metadata") or {}
        order = await self._get_order(metadata.get("orderId"))
        if order:
            return order

        orders = await self._orders_for_payment_intent(_object_id(refund.get("payment_intent")))
        if len(orders) > 1:
            logger.warning(f"Refund {refund['id']} matches {len(orders)} orders; booking it to {orders[0].order_number}")
        return orders[0] if orders else None

    async def _refund_transaction(self, refund: Dict[str, Any]) -> Tuple[Optional[Transaction], Optional[Order]]:
        order = await self._refund_order(refund)
        if not order:
            logger.warning(f"No order for refund {refund['id']}; skipped")
            return None, None

        transaction, _ = await self.ledger.record_refund(order, refund)
        return transaction, order

    def _mirror_refund(self, order: Order, refund_id: str, status: RefundStatus, reason: Optional[str] = None) -> None:
        """Copy a refund's state onto its order without moving it backwards"""
        if order.refund_id not in (None, refund_id):
            # A second refund on the same order lives only in the ledger
            return
        order.refund_id = refund_id

        if status == RefundStatus.PENDING:
            if order.refund_status is None:
                order.refund_status = RefundStatus.PENDING.value
            return
        if order.refund_status == RefundStatus.SUCCEEDED.value and status == RefundStatus.FAILED:
            logger.warning(f"Refund {refund_id} for order {order.order_number} failed after succeeding")

        order.refund_status = status.value
        if status == RefundStatus.SUCCEEDED:
            order.refunded_at = order.refunded_at or utcnow()
        elif reason:
            order.notes = f"Refund failed: {reason}"

    async def handle_refund_created(self, event: Dict[str, Any]) -> None:
        refund = event["data"]["object"]
        _, order = await self._refund_transaction(refund)
        if order:
            self._mirror_refund(order, refund["id"], RefundStatus.PENDING)

    async def handle_refund_updated(self, event: Dict[str, Any]) -> None:
        refund = event["data"]["object"]
        transaction, order = await self._refund_transaction(refund)
        if not transaction:
            return

        status = REFUND_STATUS_MAP.get(refund.get("status"), TransactionStatus.PENDING.value)
        if status == TransactionStatus.FAILED.value:
            await self._fail_refund(transaction, order, refund)
            return

        await self.ledger.transition(transaction, status)
        self._mirror_refund(
            order,
            refund["id"],
            RefundStatus.SUCCEEDED if status == TransactionStatus.COMPLETED.value else RefundStatus.PENDING
        )

    async def handle_refund_failed(self, event: Dict[str, Any]) -> None:
        refund = event["data"]["object"]
        transaction, order = await self._refund_transaction(refund)
        if transaction:
            await self._fail_refund(transaction, order, refund)

    async def _fail_refund(self, transaction: Transaction, order: Order, refund: Dict[str, Any]) -> None:
        reason = refund.get("failure_reason") or "Refund failed"
        await self.ledger.transition(transaction, TransactionStatus.FAILED.value, failure_reason=reason)
        self._mirror_refund(order, refund["id"], RefundStatus.FAILED, reason)
        await self.notifications.send_refund_failed(order, refund["id"], reason)
        logger.warning(f"Refund {refund['id']} for order {order.order_number} failed: {reason}")

    # Transfers

    async def _transfer_transaction(self, transfer: Dict[str, Any]) -> Optional[Transaction]:
        key = f"transfer:{transfer['id']}"
        existing = await self.ledger.get_by_key(key)
        if existing:
            return existing

        metadata = transfer.get("metadata") or {}
        vendor_id = _parse_uuid(metadata.get("vendorId"))
        if vendor_id is None:
            account = await self._account_by_stripe_id(_object_id(transfer.get("destination")))
            vendor_id = account.vendor_id if account else None

        if vendor_id is None:
            logger.warning(f"No vendor for transfer {transfer['id']}; skipped")
            return None

        transaction, _ = await self.ledger.ensure_transaction(
            idempotency_key=key,
            vendor_id=vendor_id,
            type=TransactionType.TRANSFER.value,
            amount=from_minor_units(transfer.get("amount")),
            order_id=_parse_uuid(metadata.get("orderId")),
            currency=transfer.get("currency"),
            stripe_transfer_id=transfer["id"],
            description="Transfer to connected account"
        )
        return transaction

    async def handle_transfer_created(self, event: Dict[str, Any]) -> None:
        await self._transfer_transaction(event["data"]["object"])

    async def handle_transfer_updated(self, event: Dict[str, Any]) -> None:
        transfer = event["data"]["object"]
        transaction = await self._transfer_transaction(transfer)
        if not transaction:
            return

        if transfer.get("reversed") or event.get("type") == "transfer.reversed":
            await self.ledger.transition(transaction, TransactionStatus.REVERSED.value)
        else:
            await self.ledger.transition(transaction, TransactionStatus.COMPLETED.value)

    # Connected accounts

    async def sync_account(self, account: Dict[str, Any]) -> Optional[VendorStripeAccount]:
        """Mirror a Stripe account's capability flags onto the vendor"""
        record = await self._account_by_stripe_id(account.get("id"))

        if record is None:
            vendor_id = _parse_uuid((account.get("metadata") or {}).get("vendorId"))
            if vendor_id is None:
                logger.warning(f"Stripe account {account.get('id')} is not linked to a vendor")
                return None
            record = VendorStripeAccount(vendor_id=vendor_id, stripe_account_id=account["id"])
            self.db.add(record)

        record.charges_enabled = bool(account.get("charges_enabled"))
        record.payouts_enabled = bool(account.get("payouts_enabled"))
        record.details_submitted = bool(account.get("details_submitted"))
        record.capabilities = account.get("capabilities") or {}

        requirements = account.get("requirements") or {}
        record.requirements = {
            "currently_due": requirements.get("currently_due") or [],
            "past_due": requirements.get("past_due") or [],
            "disabled_reason": requirements.get("disabled_reason"),
        }

        if record.charges_enabled and record.payouts_enabled and record.details_submitted:
            record.onboarding_status = OnboardingStatus.COMPLETED.value
            if record.onboarding_completed_at is None:
                record.onboarding_completed_at = utcnow()
        elif requirements.get("disabled_reason"):
            record.onboarding_status = OnboardingStatus.RESTRICTED.value
        elif record.details_submitted:
            record.onboarding_status = OnboardingStatus.IN_PROGRESS.value
        else:
            record.onboarding_status = OnboardingStatus.PENDING.value

        record.last_synced_at = utcnow()
        await self.db.flush()

        logger.info(
            f"Stripe account {record.stripe_account_id} synced: "
            f"charges={record.charges_enabled} payouts={record.payouts_enabled} status={record.onboarding_status}"
        )
        return record

    async def handle_account_updated(self, event: Dict[str, Any]) -> None:
        await self.sync_account(event["data"]["object"])

    async def handle_capability_updated(self, event: Dict[str, Any]) -> None:
        capability = event["data"]["object"]
        account_id = _object_id(capability.get("account")) or event.get("account")
        if not account_id:
            logger.warning(f"Capability {capability.get('id')} has no account")
            return

        account = await self.stripe.retrieve_account(account_id)
        await self.sync_account(account)

    # Payouts

    async def handle_payout_event(self, event: Dict[str, Any]) -> None:
        """Mirror a payout's status and react to paid or failed payouts"""
        data = event["data"]["object"]
        payout_id = data["id"]

        result = await self.db.execute(select(Payout).where(Payout.stripe_payout_id == payout_id))
        payout = result.scalar_one_or_none()

        if payout is None:
            metadata = data.get("metadata") or {}
            if metadata.get("source") == "manual":
                # The payout request that created it hasn't committed yet;
                # fail so Stripe redelivers once the local row exists
                raise ServiceUnavailableException(f"Manual payout {payout_id} not recorded yet")

            vendor_id = _parse_uuid(metadata.get("vendorId"))
            if vendor_id is None:
                account = await self._account_by_stripe_id(event.get("account"))
                vendor_id = account.vendor_id if account else None
            if vendor_id is None:
                logger.warning(f"No vendor for payout {payout_id}; skipped")
                return

            payout = Payout(
                vendor_id=vendor_id,
                stripe_payout_id=payout_id,
                amount=from_minor_units(data.get("amount")),
                currency=data.get("currency") or settings.DEFAULT_CURRENCY,
                status=PayoutStatus.PENDING.value,
                method=data.get("method") or "standard",
                description=data.get("description")
            )
            self.db.add(payout)

        new_status = data.get("status") or payout.status
        if event.get("type") == "payout.paid":
            new_status = PayoutStatus.PAID.value
        elif event.get("type") == "payout.failed":
            new_status = PayoutStatus.FAILED.value
        elif event.get("type") == "payout.canceled":
            new_status = PayoutStatus.CANCELED.value

        # Only a paid payout may still fail; other terminal states are final
        previous = payout.status
        if previous in TERMINAL_PAYOUT_STATUSES and not (
            previous == PayoutStatus.PAID.value and new_status == PayoutStatus.FAILED.value
        ):
            new_status = previous

        payout.status = new_status
        if data.get("arrival_date"):
            payout.arrival_date = from_timestamp(data["arrival_date"])
        await self.db.flush()

        if new_status == PayoutStatus.PAID.value:
            if payout.paid_at is None:
                payout.paid_at = utcnow()
            await self.notifications.send_payout_paid(payout)

        elif new_status in (PayoutStatus.FAILED.value, PayoutStatus.CANCELED.value):
            if new_status == PayoutStatus.FAILED.value:
                payout.failure_code = data.get("failure_code") or payout.failure_code
                payout.failure_reason = data.get("failure_message") or payout.failure_reason or "Payout failed"

            restored = await self._release_payout_funds(payout)
            if new_status == PayoutStatus.FAILED.value:
                await self.notifications.send_payout_failed(payout, balance_restored=restored)
                logger.warning(f"Payout {payout_id} failed: {payout.failure_reason}")

        await self.db.flush()
        if previous != new_status:
            logger.info(f"Payout {payout_id} {previous} -> {new_status}")

    async def _release_payout_funds(self, payout: Payout) -> bool:
        """Return a failed manual payout's amount to the available balance"""
        transaction = await self.ledger.get_by_key(f"payout:{payout.stripe_payout_id}")
        if not transaction:
            return False

        reason = payout.failure_reason or f"Payout {payout.status}"
        return await self.ledger.transition(transaction, TransactionStatus.FAILED.value, failure_reason=reason)
