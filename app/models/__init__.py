"""Models package initialization"""

from .base import Base
from .user import User
from .vendor import Vendor, VendorBalance, VendorStripeAccount, Payout, PayoutStatus, OnboardingStatus
from .product import Product
from .coupon import Coupon, CouponUsage, DiscountType
from .order import Order, OrderItem, OrderStatus, PaymentStatus, CancellationStatus, RefundStatus
from .payment import Transaction, TransactionType, TransactionStatus, PlatformFee, PlatformFeeStatus
from .notification import Notification


__all__ = [
    "Base",
    "User",
    "Vendor",
    "VendorBalance",
    "VendorStripeAccount",
    "Payout",
    "PayoutStatus",
    "OnboardingStatus",
    "Product",
    "Coupon",
    "CouponUsage",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "CancellationStatus",
    "RefundStatus",
    "Transaction",
    "TransactionType",
    "TransactionStatus",
    "PlatformFee",
    "PlatformFeeStatus",
    "Notification",
]
