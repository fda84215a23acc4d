"""
Test configuration - pytest fixtures and shared helpers
"""

import os

# Must be set before the app modules read settings
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import hashlib
import hmac
import json
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import (
    Base,
    Vendor,
    VendorBalance,
    VendorStripeAccount,
    User,
    Product,
    Coupon,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    PlatformFee,
)
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import PaymentGatewayException
from app.api.v1.payments.stripe_client import StripeClient, get_stripe_client
from app.utils.helpers import generate_order_number


class FakeStripeClient(StripeClient):
    """Real signature checks, recorded API calls"""

    def __init__(self):
        super().__init__(api_key="sk_test_dummy", webhook_secret=settings.STRIPE_WEBHOOK_SECRET)
        self.transfers: List[Dict[str, Any]] = []
        self.payouts: List[Dict[str, Any]] = []
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.refunds: List[Dict[str, Any]] = []
        self.failing_destinations: set = set()
        self.fail_payouts = False
        self.fail_refunds = False
        self.refund_status = "pending"

    async def create_transfer(self, amount, currency, destination, transfer_group=None, metadata=None, idempotency_key=None):
        if destination in self.failing_destinations:
            raise PaymentGatewayException(f"Failed to create transfer: destination {destination} rejected")
        transfer = {
            "id": f"tr_{len(self.transfers) + 1}",
            "amount": int(Decimal(amount) * 100),
            "currency": currency,
            "destination": destination,
            "transfer_group": transfer_group,
            "metadata": metadata or {},
            "idempotency_key": idempotency_key,
        }
        self.transfers.append(transfer)
        return transfer

    async def create_payout(self, stripe_account_id, amount, currency, metadata=None, idempotency_key=None):
        if self.fail_payouts:
            raise PaymentGatewayException("Failed to create payout: insufficient funds in Stripe account")
        payout = {
            "id": f"po_{len(self.payouts) + 1}",
            "amount": int(Decimal(amount) * 100),
            "currency": currency,
            "status": "pending",
            "method": "standard",
            "arrival_date": int(time.time()) + 86400,
            "metadata": metadata or {},
            "stripe_account": stripe_account_id,
            "idempotency_key": idempotency_key,
        }
        self.payouts.append(payout)
        return payout

    async def create_refund(self, payment_intent_id, amount, metadata=None, reason="requested_by_customer", idempotency_key=None):
        if self.fail_refunds:
            raise PaymentGatewayException("Failed to create refund: charge already disputed")
        refund = {
            "id": f"re_{len(self.refunds) + 1}",
            "object": "refund",
            "amount": int(Decimal(amount) * 100),
            "currency": "mxn",
            "payment_intent": payment_intent_id,
            "charge": f"ch_{payment_intent_id}",
            "status": self.refund_status,
            "reason": reason,
            "metadata": metadata or {},
            "idempotency_key": idempotency_key,
        }
        self.refunds.append(refund)
        return refund

    async def retrieve_account(self, account_id):
        return self.accounts[account_id]


def sign_payload(payload: bytes, secret: Optional[str] = None, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header the way Stripe does"""
    secret = secret or settings.STRIPE_WEBHOOK_SECRET
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: Dict[str, Any], account: Optional[str] = None) -> Dict[str, Any]:
    event = {
        "id": f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": obj},
    }
    if account:
        event["account"] = account
    return event


@pytest_asyncio.fixture
async def engine():
    """In-memory database shared by every session of a test"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncSession:
    """Test database session"""
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
def fake_stripe() -> FakeStripeClient:
    return FakeStripeClient()


@pytest_asyncio.fixture
async def client(db_session, fake_stripe):
    """HTTP client bound to the app, sharing the test session"""
    from app.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_client] = lambda: fake_stripe

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def post_event(client):
    """Sign and deliver a webhook event"""

    async def _post(event: Dict[str, Any]) -> httpx.Response:
        payload = json.dumps(event).encode("utf-8")
        return await client.post(
            "/api/v1/payments/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"},
        )

    return _post


class Factory:
    """Seed data helpers; every helper commits"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        await self.session.refresh(obj)
        return obj

    async def vendor(self, name: str = "Casa Maya", **kwargs) -> Vendor:
        return await self._save(Vendor(
            business_name=name,
            email=kwargs.pop("email", f"{uuid.uuid4().hex[:8]}@vendors.test"),
            **kwargs
        ))

    async def user(self, **kwargs) -> User:
        return await self._save(User(
            email=kwargs.pop("email", f"{uuid.uuid4().hex[:8]}@customers.test"),
            name=kwargs.pop("name", "Ana"),
            **kwargs
        ))

    async def product(self, vendor: Vendor, stock: int = 10, price: str = "100.00", **kwargs) -> Product:
        return await self._save(Product(
            vendor_id=vendor.id,
            name=kwargs.pop("name", "Talavera mug"),
            price=Decimal(price),
            stock=stock,
            **kwargs
        ))

    async def balance(self, vendor: Vendor, available: str = "0.00") -> VendorBalance:
        amount = Decimal(available)
        return await self._save(VendorBalance(
            vendor_id=vendor.id,
            available_balance=amount,
            opening_balance=amount,
            pending_balance=Decimal("0.00"),
            reserved_balance=Decimal("0.00"),
            currency="mxn",
        ))

    async def stripe_account(self, vendor: Vendor, account_id: Optional[str] = None, **kwargs) -> VendorStripeAccount:
        return await self._save(VendorStripeAccount(
            vendor_id=vendor.id,
            stripe_account_id=account_id or f"acct_{uuid.uuid4().hex[:12]}",
            charges_enabled=kwargs.pop("charges_enabled", True),
            payouts_enabled=kwargs.pop("payouts_enabled", True),
            details_submitted=kwargs.pop("details_submitted", True),
            **kwargs
        ))

    async def coupon(self, code: str = "SAVE10", **kwargs) -> Coupon:
        values = {
            "name": "Ten percent off",
            "discount_type": "percentage",
            "value": Decimal("10"),
            "user_usage_limit": 1,
            "usage_count": 0,
            "restrict_to_products": [],
            "is_active": True,
        }
        values.update(kwargs)
        return await self._save(Coupon(code=code, **values))

    async def order(
        self,
        vendor: Vendor,
        items: Optional[List[tuple]] = None,
        subtotal: str = "200.00",
        **kwargs
    ) -> Order:
        order = Order(
            order_number=generate_order_number(),
            vendor_id=vendor.id,
            status=kwargs.pop("status", OrderStatus.PENDING),
            payment_status=kwargs.pop("payment_status", PaymentStatus.PENDING),
            subtotal=Decimal(subtotal),
            shipping_amount=Decimal("0.00"),
            discount_amount=kwargs.pop("discount_amount", Decimal("0.00")),
            total=Decimal(subtotal),
            currency="mxn",
            **kwargs
        )
        for product, quantity in items or []:
            order.items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price=product.price,
                total=product.price * quantity,
            ))
        return await self._save(order)

    async def platform_fee(self, order: Order, fee: str = "20.00") -> PlatformFee:
        gross = Decimal(order.total)
        return await self._save(PlatformFee(
            order_id=order.id,
            vendor_id=order.vendor_id,
            gross_amount=gross,
            fee_amount=Decimal(fee),
            vendor_earnings=gross - Decimal(fee),
            status="pending",
        ))


@pytest.fixture
def factory(db_session) -> Factory:
    return Factory(db_session)
