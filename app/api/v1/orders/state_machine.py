"""
Order lifecycle rules

Stripe decides when an order is paid or failed; the reconciler asks this
module whether the order's fulfilment status may follow.
"""

from typing import Dict, FrozenSet
import logging

from app.models.order import Order, OrderStatus
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.FULFILLED, OrderStatus.CANCELLED}),
    OrderStatus.FULFILLED: frozenset(),
    # A payment retried after a failure can still be captured
    OrderStatus.CANCELLED: frozenset({OrderStatus.PROCESSING}),
}

# Timestamp stamped when an order enters the status
STATUS_TIMESTAMPS = {
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.FULFILLED: "fulfilled_at",
}


class OrderStateMachine:
    """Allowed order status changes"""

    def can_transition(self, current_status: OrderStatus, new_status: OrderStatus) -> bool:
        return new_status in ORDER_TRANSITIONS.get(current_status, frozenset())

    def is_terminal_state(self, status: OrderStatus) -> bool:
        return not ORDER_TRANSITIONS.get(status)

    def is_cancellable(self, status: OrderStatus) -> bool:
        return self.can_transition(status, OrderStatus.CANCELLED)

    def apply(self, order: Order, new_status: OrderStatus) -> bool:
        """
        Move an order to new_status if the lifecycle allows it

        Stamps cancelled_at / fulfilled_at on entry and clears cancelled_at
        when a cancelled order comes back to processing.

        Returns:
            True if the status changed
        """
        if not self.can_transition(order.status, new_status):
            logger.warning(
                f"Order {order.order_number} can't move from {order.status.value} to {new_status.value}; status kept"
            )
            return False

        if order.status == OrderStatus.CANCELLED:
            order.cancelled_at = None

        order.status = new_status
        stamp = STATUS_TIMESTAMPS.get(new_status)
        if stamp:
            setattr(order, stamp, utcnow())
        return True
