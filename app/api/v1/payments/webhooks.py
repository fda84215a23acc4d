"""
Stripe webhook event routing
"""

from typing import Dict, Any, Callable, Awaitable, Optional
import logging

logger = logging.getLogger(__name__)

# Event type -> PaymentReconciler method. Anything not listed is accepted
# and ignored so new Stripe event types never fail a delivery.
EVENT_HANDLERS: Dict[str, str] = {
    "checkout.session.completed": "handle_checkout_completed",
    "checkout.session.async_payment_succeeded": "handle_checkout_completed",
    "checkout.session.async_payment_failed": "handle_checkout_failed",
    "payment_intent.succeeded": "handle_payment_succeeded",
    "payment_intent.payment_failed": "handle_payment_failed",
    "refund.created": "handle_refund_created",
    "refund.updated": "handle_refund_updated",
    "refund.failed": "handle_refund_failed",
    "transfer.created": "handle_transfer_created",
    "transfer.updated": "handle_transfer_updated",
    "transfer.reversed": "handle_transfer_updated",
    "account.updated": "handle_account_updated",
    "capability.updated": "handle_capability_updated",
    "payout.created": "handle_payout_event",
    "payout.updated": "handle_payout_event",
    "payout.paid": "handle_payout_event",
    "payout.failed": "handle_payout_event",
    "payout.canceled": "handle_payout_event",
}

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]

class WebhookHandler:
    """Route verified Stripe events to reconciler methods"""
    
    @staticmethod
    def validate_event_data(event: Dict[str, Any]) -> bool:
        """
        Validate event structure
        
        Args:
            event: Parsed Stripe event
            
        Returns:
            True if the event carries a type and a data object
        """
        data = event.get("data")
        return (
            isinstance(event.get("type"), str)
            and isinstance(data, dict)
            and isinstance(data.get("object"), dict)
        )
    
    @staticmethod
    def get_event_handler(reconciler: Any, event_type: str) -> Optional[EventHandler]:
        """
        Get handler for specific event
        
        Args:
            reconciler: Object exposing the handler methods
            event_type: Stripe event type
            
        Returns:
            Bound handler, or None for event types we don't act on
        """
        method_name = EVENT_HANDLERS.get(event_type)
        if method_name is None:
            return None
        return getattr(reconciler, method_name)
