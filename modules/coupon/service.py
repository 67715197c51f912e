"""
Coupon Service
================
Validate a coupon code and calculate its discount for a cart subtotal.

Validation chain:
  1. Code exists & is active
  2. Date range check (starts_at / expires_at)
  3. Min order amount
  4. Calculate discount amount with caps
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from common.exceptions import InvalidInputError
from common.helpers import as_utc, now_utc, to_money
from modules.coupon.models import Coupon, DiscountMode


class CouponValidationError(InvalidInputError):
    """Raised when coupon validation fails."""
    pass


class CouponService:

    def normalize_code(self, code: str) -> str:
        code = (code or "").strip().upper()
        if not code:
            raise CouponValidationError("Coupon code is required")
        return code

    # ------------------------------------------
    # Evaluate coupon (raises CouponValidationError)
    # ------------------------------------------

    def evaluate(self, db: Session, code: str, subtotal: Decimal,
                 now: Optional[datetime] = None) -> Decimal:
        """Return the discount `code` grants on `subtotal`."""
        code = self.normalize_code(code)

        # 1. Exists & active
        coupon = db.query(Coupon).filter(Coupon.code == code).first()
        if not coupon:
            raise CouponValidationError("Invalid coupon code")
        if not coupon.is_active:
            raise CouponValidationError("This coupon is no longer active")

        now = now or now_utc()

        # 2. Date range
        if coupon.starts_at and now < as_utc(coupon.starts_at):
            raise CouponValidationError("This coupon is not active yet")
        if coupon.expires_at and now > as_utc(coupon.expires_at):
            raise CouponValidationError("This coupon has expired")

        # 3. Min order amount
        subtotal = to_money(subtotal)
        if coupon.min_order_amount and subtotal < to_money(coupon.min_order_amount):
            raise CouponValidationError(f"Minimum order amount for this coupon: {to_money(coupon.min_order_amount)}")

        return self._calculate_discount(coupon, subtotal)

    # ------------------------------------------
    # Calculate discount amount
    # ------------------------------------------

    def _calculate_discount(self, coupon: Coupon, order_amount: Decimal) -> Decimal:
        if coupon.discount_mode == DiscountMode.PERCENT:
            raw = to_money(order_amount * Decimal(coupon.discount_value) / 100)
            # Apply cap
            if coupon.max_discount_amount:
                raw = min(raw, to_money(coupon.max_discount_amount))
            return min(raw, order_amount)
        else:
            # Fixed amount - can't exceed order
            return min(to_money(coupon.discount_value), order_amount)


# Singleton
coupon_service = CouponService()
