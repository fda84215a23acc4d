"""
Notification service for vendor notifications
"""

from typing import Optional, Dict, Any
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Notification, Order, Payout
from app.utils.helpers import format_currency

logger = logging.getLogger(__name__)

class NotificationService:
    """Service for managing notifications"""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def create_notification(
        self,
        vendor_id: UUID,
        title: str,
        message: str,
        type: str,
        dedupe_key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[Notification]:
        """
        Create in-app notification
        
        With a dedupe_key, a second call for the same key is a no-op and
        returns None.
        """
        if dedupe_key:
            result = await self.db.execute(
                select(Notification.id).where(Notification.dedupe_key == dedupe_key)
            )
            if result.first() is not None:
                logger.debug(f"Notification {dedupe_key} already sent")
                return None
        
        notification = Notification(
            vendor_id=vendor_id,
            title=title,
            message=message,
            type=type,
            dedupe_key=dedupe_key,
            notification_metadata=metadata or {}
        )
        
        self.db.add(notification)
        await self.db.flush()
        
        return notification
    
    async def send_payout_paid(self, payout: Payout) -> Optional[Notification]:
        """Tell the vendor a payout reached their bank"""
        return await self.create_notification(
            vendor_id=payout.vendor_id,
            title="Payout completed",
            message=f"Your payout of {format_currency(payout.amount, payout.currency)} has been deposited",
            type="payout",
            dedupe_key=f"payout.paid:{payout.stripe_payout_id}",
            metadata={"payout_id": payout.stripe_payout_id}
        )
    
    async def send_payout_failed(self, payout: Payout, balance_restored: bool = False) -> Optional[Notification]:
        """Tell the vendor a payout bounced"""
        reason = payout.failure_reason or "Unknown reason"
        message = f"Your payout of {format_currency(payout.amount, payout.currency)} failed: {reason}."
        if balance_restored:
            message += " The amount has been returned to your available balance."
        return await self.create_notification(
            vendor_id=payout.vendor_id,
            title="Payout failed",
            message=message,
            type="payout",
            dedupe_key=f"payout.failed:{payout.stripe_payout_id}",
            metadata={"payout_id": payout.stripe_payout_id, "failure_code": payout.failure_code}
        )
    
    async def send_cancellation_requested(self, order: Order) -> Notification:
        """Ask the vendor to approve or reject a customer's cancellation"""
        return await self.create_notification(
            vendor_id=order.vendor_id,
            title="Cancellation requested",
            message=f"The customer asked to cancel order {order.order_number}: {order.cancellation_reason}",
            type="order",
            metadata={"order_id": str(order.id)}
        )
    
    async def send_refund_failed(self, order: Order, refund_id: str, reason: str) -> Optional[Notification]:
        return await self.create_notification(
            vendor_id=order.vendor_id,
            title="Refund failed",
            message=f"The refund for order {order.order_number} failed: {reason}.",
            type="order",
            dedupe_key=f"refund.failed:{refund_id}",
            metadata={"order_id": str(order.id), "refund_id": refund_id}
        )
