"""Payments module exports"""

from . import router, schemas, services, stripe_client, webhooks

__all__ = ["router", "schemas", "services", "stripe_client", "webhooks"]
