"""
Coupon service for managing discount coupons
Validation is read-only; usage is recorded separately once an order is paid
"""

import enum
import logging
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Optional, Dict, Any, List, Iterable
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, or_

from app.core.exceptions import NotFoundException, DuplicateResourceException
from app.core.monitoring import coupon_validations
from app.models.coupon import Coupon, CouponUsage, DiscountType
from app.models.order import Order, PaymentStatus
from app.utils.helpers import round_money, utcnow, ensure_utc

logger = logging.getLogger(__name__)


class CouponRejection(str, enum.Enum):
    """Why a coupon can't be applied, in the order the checks run"""
    INVALID_CODE = "invalid_code"
    INACTIVE = "inactive"
    WRONG_VENDOR = "wrong_vendor"
    NOT_YET_ACTIVE = "not_yet_active"
    EXPIRED = "expired"
    USAGE_EXHAUSTED = "usage_exhausted"
    USER_LIMIT_REACHED = "user_limit_reached"
    BELOW_MINIMUM = "below_minimum"
    PRODUCT_NOT_ELIGIBLE = "product_not_eligible"
    NOT_FIRST_TIME = "not_first_time"


REJECTION_MESSAGES = {
    CouponRejection.INVALID_CODE: "Invalid coupon code",
    CouponRejection.INACTIVE: "This coupon is no longer active",
    CouponRejection.WRONG_VENDOR: "This coupon is not valid for this vendor",
    CouponRejection.NOT_YET_ACTIVE: "This coupon is not available yet",
    CouponRejection.EXPIRED: "This coupon has expired",
    CouponRejection.USAGE_EXHAUSTED: "This coupon has reached its usage limit",
    CouponRejection.USER_LIMIT_REACHED: "You have already used this coupon the maximum number of times",
    CouponRejection.BELOW_MINIMUM: "Minimum purchase amount not reached",
    CouponRejection.PRODUCT_NOT_ELIGIBLE: "This coupon is not valid for the products in your cart",
    CouponRejection.NOT_FIRST_TIME: "This coupon is for first-time customers only",
}


class UsageRecordResult(str, enum.Enum):
    RECORDED = "recorded"
    ALREADY_RECORDED = "already_recorded"
    LIMIT_REACHED = "limit_reached"
    USER_LIMIT_REACHED = "user_limit_reached"


@dataclass
class CouponValidationResult:
    valid: bool
    discount: Decimal = Decimal("0.00")
    free_shipping: bool = False
    error: Optional[CouponRejection] = None
    message: Optional[str] = None
    coupon_id: Optional[UUID] = None
    code: Optional[str] = None

    @classmethod
    def rejected(cls, reason: CouponRejection, message: Optional[str] = None) -> "CouponValidationResult":
        return cls(valid=False, error=reason, message=message or REJECTION_MESSAGES[reason])

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_code(code: str) -> str:
    return code.strip().upper()


def calculate_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """
    Discount a coupon gives on a cart subtotal

    Percentage discounts are capped by maximum_discount_amount, every
    discount is capped by the subtotal, and the result is rounded half-up
    to cents.
    """
    subtotal = Decimal(subtotal)

    if coupon.discount_type == DiscountType.PERCENTAGE.value:
        discount = subtotal * Decimal(coupon.value) / Decimal(100)
        if coupon.maximum_discount_amount is not None:
            discount = min(discount, Decimal(coupon.maximum_discount_amount))
    elif coupon.discount_type == DiscountType.FIXED_AMOUNT.value:
        discount = Decimal(coupon.value)
    else:
        # free_shipping is applied to the shipping line, not the subtotal
        discount = Decimal(0)

    discount = max(min(discount, subtotal), Decimal(0))
    return round_money(discount)


class CouponService:
    """
    Service for managing coupon operations
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_coupon_by_code(self, code: str) -> Optional[Coupon]:
        """
        Get coupon by code, case-insensitively
        """
        result = await self.db.execute(
            select(Coupon)
            .where(Coupon.code == normalize_code(code))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def count_user_usages(
        self,
        coupon_id: UUID,
        user_id: Optional[UUID] = None,
        email: Optional[str] = None
    ) -> int:
        """Usages of a coupon by a user id, falling back to email for guests"""
        query = select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon_id)
        if user_id:
            query = query.where(CouponUsage.user_id == user_id)
        elif email:
            query = query.where(func.lower(CouponUsage.user_email) == email.strip().lower())
        else:
            return 0
        return await self.db.scalar(query) or 0

    async def has_paid_orders(self, user_id: UUID) -> bool:
        result = await self.db.execute(
            select(Order.id).where(
                Order.user_id == user_id,
                Order.payment_status == PaymentStatus.SUCCEEDED
            ).limit(1)
        )
        return result.first() is not None

    async def validate_coupon(
        self,
        code: str,
        vendor_id: UUID,
        subtotal: Decimal,
        product_ids: Iterable[UUID] = (),
        user_id: Optional[UUID] = None,
        email: Optional[str] = None
    ) -> CouponValidationResult:
        """
        Validate coupon against a cart and calculate the discount

        Args:
            code: Coupon code as typed by the customer
            vendor_id: Vendor whose cart is being checked out
            subtotal: Cart subtotal
            product_ids: Products in the cart
            user_id: Authenticated customer, if any
            email: Guest email, used when there is no user id

        Returns:
            CouponValidationResult; rejections carry a CouponRejection code
        """
        result = await self._validate(code, vendor_id, Decimal(subtotal), product_ids, user_id, email)
        coupon_validations.labels(result=result.error.value if result.error else "valid").inc()
        return result

    async def _validate(
        self,
        code: str,
        vendor_id: UUID,
        subtotal: Decimal,
        product_ids: Iterable[UUID],
        user_id: Optional[UUID],
        email: Optional[str]
    ) -> CouponValidationResult:
        coupon = await self.get_coupon_by_code(code)
        if not coupon:
            return CouponValidationResult.rejected(CouponRejection.INVALID_CODE)

        if not coupon.is_active:
            return CouponValidationResult.rejected(CouponRejection.INACTIVE)

        if coupon.vendor_id is not None and coupon.vendor_id != vendor_id:
            return CouponValidationResult.rejected(CouponRejection.WRONG_VENDOR)

        now = utcnow()
        if coupon.starts_at and now < ensure_utc(coupon.starts_at):
            return CouponValidationResult.rejected(CouponRejection.NOT_YET_ACTIVE)
        if coupon.expires_at and now > ensure_utc(coupon.expires_at):
            return CouponValidationResult.rejected(CouponRejection.EXPIRED)

        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            return CouponValidationResult.rejected(CouponRejection.USAGE_EXHAUSTED)

        user_usages = await self.count_user_usages(coupon.id, user_id, email)
        if (user_id or email) and user_usages >= coupon.user_usage_limit:
            return CouponValidationResult.rejected(CouponRejection.USER_LIMIT_REACHED)

        if coupon.minimum_order_amount is not None and subtotal < coupon.minimum_order_amount:
            return CouponValidationResult.rejected(
                CouponRejection.BELOW_MINIMUM,
                f"Minimum purchase amount: ${round_money(coupon.minimum_order_amount)}"
            )

        restricted = {str(pid) for pid in (coupon.restrict_to_products or [])}
        if restricted and not restricted.intersection(str(pid) for pid in product_ids):
            return CouponValidationResult.rejected(CouponRejection.PRODUCT_NOT_ELIGIBLE)

        # Guests have no order history to check against
        if coupon.restrict_to_first_time_customers and user_id:
            if await self.has_paid_orders(user_id):
                return CouponValidationResult.rejected(CouponRejection.NOT_FIRST_TIME)

        return CouponValidationResult(
            valid=True,
            discount=calculate_discount(coupon, subtotal),
            free_shipping=coupon.discount_type == DiscountType.FREE_SHIPPING.value,
            coupon_id=coupon.id,
            code=coupon.code
        )

    async def record_usage(
        self,
        coupon_id: UUID,
        order_id: UUID,
        discount_amount: Decimal,
        user_id: Optional[UUID] = None,
        user_email: Optional[str] = None
    ) -> UsageRecordResult:
        """
        Record that a paid order used a coupon

        Idempotent per (coupon, order). The coupon row is locked first so the
        per-user count and the insert can't interleave with another
        redemption by the same customer. The usage counter is bumped with a
        conditional UPDATE so concurrent redemptions can't push it past
        usage_limit; the usage row is only written when the bump succeeded.
        Runs in the caller's transaction.

        Raises:
            NotFoundException: If coupon doesn't exist
        """
        existing = await self.db.execute(
            select(CouponUsage.id).where(
                CouponUsage.coupon_id == coupon_id,
                CouponUsage.order_id == order_id
            )
        )
        if existing.first() is not None:
            return UsageRecordResult.ALREADY_RECORDED

        coupon = await self.db.scalar(
            select(Coupon)
            .where(Coupon.id == coupon_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if coupon is None:
            raise NotFoundException("Coupon not found", error_code="COUPON_NOT_FOUND")

        if user_id or user_email:
            user_usages = await self.count_user_usages(coupon_id, user_id, user_email)
            if user_usages >= coupon.user_usage_limit:
                logger.warning(
                    f"Coupon {coupon.code} already used {user_usages} time(s) by "
                    f"{user_id or user_email}; order {order_id} not recorded"
                )
                return UsageRecordResult.USER_LIMIT_REACHED

        bumped = await self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit)
            )
            .values(usage_count=Coupon.usage_count + 1)
        )
        if bumped.rowcount != 1:
            logger.warning(f"Coupon {coupon_id} hit its usage limit; order {order_id} not recorded")
            return UsageRecordResult.LIMIT_REACHED

        self.db.add(CouponUsage(
            coupon_id=coupon_id,
            order_id=order_id,
            user_id=user_id,
            user_email=user_email.strip().lower() if user_email else None,
            discount_amount=round_money(discount_amount),
            used_at=utcnow()
        ))
        await self.db.flush()

        logger.info(f"Recorded coupon {coupon_id} usage for order {order_id}")
        return UsageRecordResult.RECORDED

    # Vendor coupon management

    async def create_coupon(self, data: Dict[str, Any], vendor_id: Optional[UUID] = None) -> Coupon:
        """
        Create a coupon owned by a vendor, or a platform-wide one

        Raises:
            DuplicateResourceException: If the code is taken
        """
        code = normalize_code(data["code"])
        if await self.get_coupon_by_code(code):
            raise DuplicateResourceException("Coupon", "code", code)

        values = dict(data)
        values["code"] = code
        values["restrict_to_products"] = [str(pid) for pid in values.get("restrict_to_products") or []]
        if values.get("user_usage_limit") is None:
            values["user_usage_limit"] = 1

        coupon = Coupon(vendor_id=vendor_id, usage_count=0, **values)
        self.db.add(coupon)
        await self.db.flush()
        await self.db.refresh(coupon)

        logger.info(f"Coupon {coupon.code} created for vendor {vendor_id}")
        return coupon

    async def get_vendor_coupon(self, coupon_id: UUID, vendor_id: UUID) -> Coupon:
        result = await self.db.execute(
            select(Coupon)
            .where(Coupon.id == coupon_id, Coupon.vendor_id == vendor_id)
            .execution_options(populate_existing=True)
        )
        coupon = result.scalar_one_or_none()
        if not coupon:
            raise NotFoundException("Coupon not found", error_code="COUPON_NOT_FOUND")
        return coupon

    async def update_coupon(self, coupon_id: UUID, vendor_id: UUID, data: Dict[str, Any]) -> Coupon:
        """
        Update a vendor's coupon

        Raises:
            NotFoundException: If the vendor doesn't own the coupon
            DuplicateResourceException: If the new code is taken
        """
        coupon = await self.get_vendor_coupon(coupon_id, vendor_id)

        if data.get("code"):
            code = normalize_code(data["code"])
            if code != coupon.code and await self.get_coupon_by_code(code):
                raise DuplicateResourceException("Coupon", "code", code)
            data["code"] = code

        if "restrict_to_products" in data:
            data["restrict_to_products"] = [str(pid) for pid in data["restrict_to_products"] or []]

        for field, value in data.items():
            setattr(coupon, field, value)

        await self.db.flush()
        await self.db.refresh(coupon)
        return coupon

    async def delete_coupon(self, coupon_id: UUID, vendor_id: UUID) -> str:
        """
        Delete a coupon, or deactivate it when orders already used it

        Returns:
            "deleted" or "deactivated"
        """
        coupon = await self.get_vendor_coupon(coupon_id, vendor_id)

        used = await self.db.scalar(
            select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon.id)
        )
        if used:
            coupon.is_active = False
            await self.db.flush()
            logger.info(f"Coupon {coupon.code} deactivated; {used} usages keep it referenced")
            return "deactivated"

        await self.db.delete(coupon)
        await self.db.flush()
        return "deleted"

    async def list_vendor_coupons(self, vendor_id: UUID) -> List[Dict[str, Any]]:
        """
        Vendor's coupons, newest first, with usage stats
        """
        stats = (
            select(
                CouponUsage.coupon_id,
                func.count(CouponUsage.id).label("total_uses"),
                func.coalesce(func.sum(CouponUsage.discount_amount), 0).label("total_discount")
            )
            .group_by(CouponUsage.coupon_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Coupon, stats.c.total_uses, stats.c.total_discount)
            .outerjoin(stats, stats.c.coupon_id == Coupon.id)
            .where(Coupon.vendor_id == vendor_id)
            .order_by(Coupon.created_at.desc())
        )

        coupons = []
        for coupon, total_uses, total_discount in result.all():
            coupons.append({
                "coupon": coupon,
                "total_uses": total_uses or 0,
                "total_discount": round_money(total_discount or 0),
            })
        return coupons

    async def get_coupon_analytics(self, coupon_id: UUID, vendor_id: UUID) -> Dict[str, Any]:
        """
        Usage analytics for one of the vendor's coupons

        Returns:
            Totals, unique purchasers and the ten most recent usages
        """
        coupon = await self.get_vendor_coupon(coupon_id, vendor_id)

        result = await self.db.execute(
            select(CouponUsage)
            .where(CouponUsage.coupon_id == coupon.id)
            .order_by(CouponUsage.used_at.desc())
        )
        usages = list(result.scalars().all())

        purchasers = {str(u.user_id) if u.user_id else u.user_email for u in usages}
        purchasers.discard(None)

        return {
            "coupon_id": coupon.id,
            "code": coupon.code,
            "total_uses": len(usages),
            "total_discount": round_money(sum((Decimal(u.discount_amount) for u in usages), Decimal(0))),
            "unique_users": len(purchasers),
            "recent_usages": [u.to_dict() for u in usages[:10]],
        }
