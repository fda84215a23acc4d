"""
Cancellation and refund workflow tests
"""

import uuid
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.exceptions import (
    NoCancellationRequestException,
    OrderNotCancellableException,
    PaymentGatewayException,
)
from app.models import Notification, Order, OrderStatus, PaymentStatus, Transaction
from app.models.inventory import InventoryManager
from app.api.v1.orders.services import RefundService
from app.api.v1.payments.services import PaymentReconciler
from app.services.ledger import LedgerService
from app.utils.helpers import utcnow

from conftest import make_event


async def paid_order(factory, stock=8, quantity=2):
    """A paid order whose stock has already been taken"""
    vendor = await factory.vendor()
    await factory.balance(vendor, available="500.00")
    product = await factory.product(vendor, stock=stock)
    order = await factory.order(
        vendor,
        items=[(product, quantity)],
        status=OrderStatus.PROCESSING,
        payment_status=PaymentStatus.SUCCEEDED,
        payment_intent_id="pi_paid",
        stock_decremented_at=utcnow(),
    )
    return order, product


async def refund_rows(db_session, order_id):
    return list((await db_session.execute(
        select(Transaction).where(Transaction.order_id == order_id, Transaction.type == "refund")
    )).scalars().all())


@pytest.mark.asyncio
class TestRequestRefund:

    @pytest.fixture
    def service(self, db_session, fake_stripe):
        return RefundService(db_session, fake_stripe)

    async def test_request_notifies_vendor(self, service, factory, db_session):
        order, _ = await paid_order(factory)

        updated = await service.request_refund(order.id, "Arrived too late", requested_by="ana@customers.test")

        assert updated.cancellation_status == "requested"
        assert updated.cancellation_reason == "Arrived too late"
        assert updated.cancellation_requested_by == "ana@customers.test"
        assert updated.status == OrderStatus.PROCESSING

        notifications = (await db_session.execute(
            select(Notification).where(Notification.vendor_id == order.vendor_id)
        )).scalars().all()
        assert len(notifications) == 1

    async def test_fulfilled_order_is_not_cancellable(self, service, factory):
        vendor = await factory.vendor()
        order = await factory.order(vendor, status=OrderStatus.FULFILLED, payment_status=PaymentStatus.SUCCEEDED)

        with pytest.raises(OrderNotCancellableException):
            await service.request_refund(order.id, "Changed my mind")

    async def test_cancelled_order_is_not_cancellable(self, service, factory):
        vendor = await factory.vendor()
        order = await factory.order(vendor, status=OrderStatus.CANCELLED)

        with pytest.raises(OrderNotCancellableException):
            await service.request_refund(order.id, "Changed my mind")

    async def test_second_request_while_pending(self, service, factory):
        order, _ = await paid_order(factory)
        await service.request_refund(order.id, "Changed my mind")

        with pytest.raises(OrderNotCancellableException):
            await service.request_refund(order.id, "Still want to cancel")


@pytest.mark.asyncio
class TestApproveRefund:

    @pytest.fixture
    def service(self, db_session, fake_stripe):
        return RefundService(db_session, fake_stripe)

    async def test_approve_refunds_cancels_and_restocks(self, service, factory, db_session, fake_stripe):
        order, product = await paid_order(factory)
        await service.request_refund(order.id, "Wrong size")

        approved = await service.approve_refund(order.id, approved_by="vendor@casamaya.test", notes="Refund issued")

        assert len(fake_stripe.refunds) == 1
        refund = fake_stripe.refunds[0]
        assert refund["payment_intent"] == "pi_paid"
        assert refund["amount"] == 20000
        assert refund["metadata"]["orderId"] == str(order.id)
        assert refund["idempotency_key"] == f"refund-{order.id}"

        assert approved.status == OrderStatus.CANCELLED
        assert isinstance(approved.cancelled_at, datetime)
        assert approved.cancellation_status == "approved"
        assert approved.cancellation_resolved_by == "vendor@casamaya.test"
        assert approved.refund_id == "re_1"
        assert approved.refund_status == "pending"
        assert approved.refunded_at is None
        assert approved.notes == "Refund issued"

        rows = await refund_rows(db_session, order.id)
        assert len(rows) == 1
        assert rows[0].idempotency_key == "refund:re_1"
        assert rows[0].amount == Decimal("-200.00")
        assert rows[0].status == "pending"

        # The debit waits for Stripe to confirm the refund
        report = await LedgerService(db_session).reconcile(order.vendor_id)
        assert report["actual"] == Decimal("500.00")

        assert await InventoryManager().get_stock(db_session, product.id) == 10

    async def test_refund_webhook_completes_approved_refund(self, service, factory, db_session, fake_stripe):
        order, _ = await paid_order(factory)
        await service.request_refund(order.id, "Wrong size")
        await service.approve_refund(order.id, approved_by="vendor@casamaya.test")

        refund = dict(fake_stripe.refunds[0], status="succeeded")
        reconciler = PaymentReconciler(db_session, fake_stripe)
        await reconciler.process_event(make_event("refund.created", refund))
        await reconciler.process_event(make_event("refund.updated", refund))

        rows = await refund_rows(db_session, order.id)
        assert len(rows) == 1
        assert rows[0].status == "completed"

        reloaded = await db_session.get(Order, order.id)
        assert reloaded.refund_status == "succeeded"
        assert reloaded.refunded_at is not None

        report = await LedgerService(db_session).reconcile(order.vendor_id)
        assert report["actual"] == Decimal("300.00")
        assert report["consistent"] is True

    async def test_refund_settled_immediately(self, service, factory, db_session, fake_stripe):
        fake_stripe.refund_status = "succeeded"
        order, _ = await paid_order(factory)
        await service.request_refund(order.id, "Wrong size")

        approved = await service.approve_refund(order.id, approved_by="vendor@casamaya.test")

        assert approved.refund_status == "succeeded"
        assert approved.refunded_at is not None
        report = await LedgerService(db_session).reconcile(order.vendor_id)
        assert report["actual"] == Decimal("300.00")
        assert report["consistent"] is True

    async def test_gateway_failure_leaves_request_open(self, service, factory, db_session, fake_stripe):
        fake_stripe.fail_refunds = True
        order, product = await paid_order(factory)
        order_id, product_id = order.id, product.id
        await service.request_refund(order_id, "Wrong size")

        with pytest.raises(PaymentGatewayException):
            await service.approve_refund(order_id, approved_by="vendor@casamaya.test")
        await db_session.rollback()

        reloaded = await db_session.scalar(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        assert reloaded.status == OrderStatus.PROCESSING
        assert reloaded.cancellation_status == "requested"
        assert reloaded.refund_id is None
        assert await refund_rows(db_session, order_id) == []
        assert await InventoryManager().get_stock(db_session, product_id) == 8

    async def test_unpaid_order_is_cancelled_without_refund(self, service, factory, fake_stripe):
        vendor = await factory.vendor()
        order = await factory.order(vendor)
        await service.request_refund(order.id, "Ordered twice")

        approved = await service.approve_refund(order.id, approved_by="vendor@casamaya.test")

        assert fake_stripe.refunds == []
        assert approved.status == OrderStatus.CANCELLED
        assert approved.refund_id is None
        assert approved.refund_status is None

    async def test_approve_without_request(self, service, factory):
        order, _ = await paid_order(factory)

        with pytest.raises(NoCancellationRequestException):
            await service.approve_refund(order.id, approved_by="vendor@casamaya.test")

    async def test_checkout_replay_after_cancellation_keeps_stock(self, service, factory, db_session, fake_stripe):
        order, product = await paid_order(factory)
        await service.request_refund(order.id, "Wrong size")
        await service.approve_refund(order.id, approved_by="vendor@casamaya.test")

        reconciler = PaymentReconciler(db_session, fake_stripe)
        await reconciler.process_event(make_event("checkout.session.completed", {
            "id": "cs_replayed",
            "payment_intent": "pi_paid",
            "payment_status": "paid",
            "metadata": {"orderId": str(order.id)},
        }))

        assert await InventoryManager().get_stock(db_session, product.id) == 10
        reloaded = await db_session.get(Order, order.id)
        assert reloaded.status == OrderStatus.CANCELLED


@pytest.mark.asyncio
class TestRejectRefund:

    @pytest.fixture
    def service(self, db_session, fake_stripe):
        return RefundService(db_session, fake_stripe)

    async def test_reject_keeps_order(self, service, factory, fake_stripe):
        order, _ = await paid_order(factory)
        await service.request_refund(order.id, "Changed my mind")

        rejected = await service.reject_refund(order.id, rejected_by="vendor@casamaya.test", reason="Already shipped")

        assert rejected.cancellation_status == "rejected"
        assert rejected.cancellation_resolved_by == "vendor@casamaya.test"
        assert rejected.notes == "Cancellation rejected: Already shipped"
        assert rejected.status == OrderStatus.PROCESSING
        assert fake_stripe.refunds == []

        with pytest.raises(NoCancellationRequestException):
            await service.approve_refund(order.id, approved_by="vendor@casamaya.test")

    async def test_customer_may_ask_again_after_rejection(self, service, factory):
        order, _ = await paid_order(factory)
        await service.request_refund(order.id, "Changed my mind")
        await service.reject_refund(order.id, rejected_by="vendor@casamaya.test", reason="Already packed")

        again = await service.request_refund(order.id, "Item is damaged")

        assert again.cancellation_status == "requested"
        assert again.cancellation_resolved_by is None

    async def test_reject_without_request(self, service, factory):
        order, _ = await paid_order(factory)

        with pytest.raises(NoCancellationRequestException):
            await service.reject_refund(order.id, rejected_by="vendor@casamaya.test", reason="Nothing to review")


@pytest.mark.asyncio
class TestCancellationAPI:

    async def test_request_then_approve(self, client, factory, fake_stripe):
        order, _ = await paid_order(factory)

        response = await client.post(
            f"/api/v1/orders/{order.id}/cancellation",
            json={"reason": "Wrong size", "requested_by": "ana@customers.test"},
        )
        assert response.status_code == 200
        assert response.json()["cancellation_status"] == "requested"

        response = await client.post(
            f"/api/v1/orders/{order.id}/cancellation/approve",
            json={"approved_by": "vendor@casamaya.test"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "cancelled"
        assert body["cancellation_status"] == "approved"
        assert body["refund_id"] == "re_1"
        assert body["refund_status"] == "pending"
        assert len(fake_stripe.refunds) == 1

    async def test_reject(self, client, factory):
        order, _ = await paid_order(factory)
        await client.post(f"/api/v1/orders/{order.id}/cancellation", json={"reason": "Wrong size"})

        response = await client.post(
            f"/api/v1/orders/{order.id}/cancellation/reject",
            json={"rejected_by": "vendor@casamaya.test", "reason": "Already shipped"},
        )
        assert response.status_code == 200
        assert response.json()["cancellation_status"] == "rejected"

    async def test_unknown_order(self, client):
        response = await client.post(f"/api/v1/orders/{uuid.uuid4()}/cancellation", json={"reason": "Wrong size"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ORDER_NOT_FOUND"

    async def test_approve_without_request(self, client, factory):
        order, _ = await paid_order(factory)

        response = await client.post(
            f"/api/v1/orders/{order.id}/cancellation/approve",
            json={"approved_by": "vendor@casamaya.test"},
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "NO_CANCELLATION_REQUEST"

    async def test_fulfilled_order(self, client, factory):
        vendor = await factory.vendor()
        order = await factory.order(vendor, status=OrderStatus.FULFILLED)

        response = await client.post(f"/api/v1/orders/{order.id}/cancellation", json={"reason": "Wrong size"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ORDER_NOT_CANCELLABLE"

    async def test_gateway_failure(self, client, factory, fake_stripe):
        fake_stripe.fail_refunds = True
        order, _ = await paid_order(factory)
        await client.post(f"/api/v1/orders/{order.id}/cancellation", json={"reason": "Wrong size"})

        response = await client.post(
            f"/api/v1/orders/{order.id}/cancellation/approve",
            json={"approved_by": "vendor@casamaya.test"},
        )
        assert response.status_code == 502
        assert response.json()["error"]["code"] == "PAYMENT_GATEWAY_ERROR"
