"""
Money, time and metadata helper tests
"""

from datetime import datetime, timezone
from decimal import Decimal

from app.core.config import settings
from app.api.v1.orders.state_machine import OrderStateMachine
from app.models.order import Order, OrderStatus
from app.utils.helpers import (
    round_money,
    from_minor_units,
    to_minor_units,
    format_currency,
    ensure_utc,
    from_timestamp,
    parse_order_ids,
)


class TestMoneyHelpers:

    def test_round_money_half_up(self):
        assert round_money(Decimal("10.005")) == Decimal("10.01")
        assert round_money(Decimal("10.004")) == Decimal("10.00")
        assert round_money("7") == Decimal("7.00")

    def test_minor_units(self):
        """Stripe amounts are integer cents"""
        assert from_minor_units(12345) == Decimal("123.45")
        assert from_minor_units(None) == Decimal("0.00")
        assert to_minor_units(Decimal("123.45")) == 12345
        assert to_minor_units(Decimal("0.105")) == 11

    def test_format_currency(self):
        assert format_currency(Decimal("1250"), "mxn") == "$1,250.00 MXN"

    def test_format_currency_defaults_to_configured_currency(self, monkeypatch):
        monkeypatch.setattr(settings, "DEFAULT_CURRENCY", "usd")
        assert format_currency(Decimal("5")) == "$5.00 USD"


class TestTimeHelpers:

    def test_ensure_utc_marks_naive_values(self):
        naive = datetime(2024, 1, 1, 12, 0)
        assert ensure_utc(naive).tzinfo == timezone.utc
        assert ensure_utc(None) is None

    def test_from_timestamp(self):
        assert from_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert from_timestamp(None) is None


class TestParseOrderIds:

    def test_batched_ids(self):
        assert parse_order_ids({"orderIds": "a, b,,a ,c"}) == ["a", "b", "c"]

    def test_single_id(self):
        assert parse_order_ids({"orderId": "a"}) == ["a"]

    def test_batched_ids_take_precedence(self):
        assert parse_order_ids({"orderIds": "a,b", "orderId": "z"}) == ["a", "b"]

    def test_missing_metadata(self):
        assert parse_order_ids(None) == []
        assert parse_order_ids({}) == []


class TestOrderStateMachine:

    def test_paid_order_moves_to_processing(self):
        machine = OrderStateMachine()
        assert machine.can_transition(OrderStatus.PENDING, OrderStatus.PROCESSING)
        assert machine.can_transition(OrderStatus.CANCELLED, OrderStatus.PROCESSING)

    def test_fulfilled_is_terminal(self):
        machine = OrderStateMachine()
        assert machine.is_terminal_state(OrderStatus.FULFILLED)
        assert not machine.can_transition(OrderStatus.FULFILLED, OrderStatus.CANCELLED)
        assert not machine.is_cancellable(OrderStatus.FULFILLED)

    def test_apply_stamps_and_clears_cancellation(self):
        machine = OrderStateMachine()
        order = Order(order_number="ORD1", status=OrderStatus.PENDING)

        assert machine.apply(order, OrderStatus.CANCELLED) is True
        assert order.cancelled_at is not None

        assert machine.apply(order, OrderStatus.PROCESSING) is True
        assert order.cancelled_at is None
        assert machine.apply(order, OrderStatus.PENDING) is False
        assert order.status == OrderStatus.PROCESSING
