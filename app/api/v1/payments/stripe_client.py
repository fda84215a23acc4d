"""
Stripe Connect integration
"""

import json
import logging
from decimal import Decimal
from typing import Dict, Any, Optional

import stripe
from fastapi.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.exceptions import InvalidWebhookSignatureException, PaymentGatewayException
from app.utils.helpers import to_minor_units

logger = logging.getLogger(__name__)

def _to_dict(obj: Any) -> Dict[str, Any]:
    return obj.to_dict() if hasattr(obj, "to_dict") else dict(obj)

class StripeClient:
    """Stripe API client wrapper"""
    
    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None
    ):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET
        stripe.api_key = self.api_key
        if settings.STRIPE_API_VERSION:
            stripe.api_version = settings.STRIPE_API_VERSION
    
    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook delivery and parse its event
        
        Args:
            payload: Raw request body
            signature: Stripe-Signature header
            
        Returns:
            Event as a plain dict
            
        Raises:
            InvalidWebhookSignatureException: Missing or bad signature
        """
        if not signature:
            raise InvalidWebhookSignatureException("Missing Stripe-Signature header")
        if not self.webhook_secret:
            raise InvalidWebhookSignatureException("Webhook secret is not configured")
        
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Rejected webhook with a body that isn't UTF-8")
            raise InvalidWebhookSignatureException("Malformed webhook payload")

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self.webhook_secret,
                tolerance=settings.STRIPE_WEBHOOK_TOLERANCE
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Rejected webhook with bad signature: {e}")
            raise InvalidWebhookSignatureException()
        
        try:
            event = json.loads(body)
        except ValueError:
            raise InvalidWebhookSignatureException("Malformed webhook payload")
        
        if not isinstance(event, dict) or "type" not in event:
            raise InvalidWebhookSignatureException("Malformed webhook payload")
        
        return event
    
    async def create_transfer(
        self,
        amount: Decimal,
        currency: str,
        destination: str,
        transfer_group: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Move vendor earnings from the platform balance to a connected account
        
        Args:
            amount: Amount in major units
            currency: Currency code
            destination: Connected account ID
            transfer_group: Groups the transfers of one checkout
            metadata: Metadata stored on the transfer
            idempotency_key: Key that makes retries safe
            
        Returns:
            Transfer details
        """
        try:
            transfer = await run_in_threadpool(
                stripe.Transfer.create,
                amount=to_minor_units(amount),
                currency=currency,
                destination=destination,
                transfer_group=transfer_group,
                metadata=metadata or {},
                idempotency_key=idempotency_key
            )
            return _to_dict(transfer)
        except stripe.StripeError as e:
            raise PaymentGatewayException(f"Failed to create transfer: {str(e)}")
    
    async def create_payout(
        self,
        stripe_account_id: str,
        amount: Decimal,
        currency: str,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Pay out a connected account's Stripe balance to its bank
        
        Args:
            stripe_account_id: Connected account ID
            amount: Amount in major units
            currency: Currency code
            metadata: Metadata stored on the payout
            idempotency_key: Key that makes retries safe
            
        Returns:
            Payout details
        """
        try:
            payout = await run_in_threadpool(
                stripe.Payout.create,
                amount=to_minor_units(amount),
                currency=currency,
                metadata=metadata or {},
                stripe_account=stripe_account_id,
                idempotency_key=idempotency_key
            )
            return _to_dict(payout)
        except stripe.StripeError as e:
            raise PaymentGatewayException(f"Failed to create payout: {str(e)}")
    
    async def create_refund(
        self,
        payment_intent_id: str,
        amount: Decimal,
        metadata: Optional[Dict[str, str]] = None,
        reason: str = "requested_by_customer",
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Refund a captured payment intent

        Args:
            payment_intent_id: PaymentIntent to refund
            amount: Amount in major units
            metadata: Metadata stored on the refund; orderId routes the webhooks
            reason: Stripe refund reason
            idempotency_key: Key that makes retries safe

        Returns:
            Refund details
        """
        try:
            refund = await run_in_threadpool(
                stripe.Refund.create,
                payment_intent=payment_intent_id,
                amount=to_minor_units(amount),
                reason=reason,
                metadata=metadata or {},
                idempotency_key=idempotency_key
            )
            return _to_dict(refund)
        except stripe.StripeError as e:
            raise PaymentGatewayException(f"Failed to create refund: {str(e)}")

    async def retrieve_account(self, account_id: str) -> Dict[str, Any]:
        """
        Fetch connected account details
        
        Args:
            account_id: Connected account ID
            
        Returns:
            Account details
        """
        try:
            account = await run_in_threadpool(stripe.Account.retrieve, account_id)
            return _to_dict(account)
        except stripe.StripeError as e:
            raise PaymentGatewayException(f"Failed to fetch account: {str(e)}")

_client: Optional[StripeClient] = None

def get_stripe_client() -> StripeClient:
    """FastAPI dependency returning the shared client"""
    global _client
    if _client is None:
        _client = StripeClient()
    return _client
