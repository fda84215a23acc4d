"""
Helper utilities
"""

import random
import string
from typing import Any, List, Mapping, Optional, Union
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone

from app.core.config import settings

CENT = Decimal("0.01")

def round_money(amount: Union[Decimal, int, str]) -> Decimal:
    """
    Round a monetary amount to cents, half-up
    
    Args:
        amount: Amount to round
        
    Returns:
        Amount with exactly two decimal places
    """
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)

def from_minor_units(amount: Optional[int]) -> Decimal:
    """Convert a Stripe integer amount in cents to a decimal amount"""
    return round_money(Decimal(amount or 0) / 100)

def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount to Stripe's integer cents"""
    return int((round_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))

def format_currency(amount: Decimal, currency: Optional[str] = None) -> str:
    """
    Format amount for humans, e.g. "$1,250.00 MXN"
    
    Args:
        amount: Amount to format
        currency: Currency code, DEFAULT_CURRENCY when omitted
        
    Returns:
        Formatted currency string
    """
    return f"${round_money(amount):,} {(currency or settings.DEFAULT_CURRENCY).upper()}"

def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)

def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Make a datetime comparable with utcnow()
    
    SQLite hands back naive datetimes; those are stored in UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to an aware UTC datetime"""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)

def parse_order_ids(metadata: Optional[Mapping[str, Any]]) -> List[str]:
    """
    Order ids carried in checkout metadata
    
    Batched checkouts send a comma-separated "orderIds"; older sessions carry
    a single "orderId". Both come back as a list without blanks or repeats.
    """
    if not metadata:
        return []
    
    raw = metadata.get("orderIds") or metadata.get("orderId") or ""
    order_ids = []
    for part in str(raw).split(","):
        part = part.strip()
        if part and part not in order_ids:
            order_ids.append(part)
    return order_ids

def generate_order_number(prefix: str = "ORD") -> str:
    """
    Generate unique order number
    
    Args:
        prefix: Order number prefix
        
    Returns:
        Order number
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    random_suffix = ''.join(random.choices(string.digits, k=4))
    return f"{prefix}{timestamp}{random_suffix}"
