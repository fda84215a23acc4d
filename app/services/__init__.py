"""Services package"""

from .coupon_service import CouponService, CouponRejection, CouponValidationResult, UsageRecordResult
from .ledger import LedgerService
from .notification import NotificationService

__all__ = [
    "CouponService",
    "CouponRejection",
    "CouponValidationResult",
    "UsageRecordResult",
    "LedgerService",
    "NotificationService",
]
