"""Utilities package"""

from .helpers import round_money, format_currency, utcnow, ensure_utc, parse_order_ids
from .pagination import paginate, PaginationParams, PaginatedResponse

__all__ = [
    "round_money",
    "format_currency",
    "utcnow",
    "ensure_utc",
    "parse_order_ids",
    "paginate",
    "PaginationParams",
    "PaginatedResponse",
]
