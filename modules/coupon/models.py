"""
Coupon Module - Models
========================
Discount coupons applied to carts.

Features:
  - Percentage or Fixed amount
  - Optional cap on percentage discounts
  - Min order amount
  - Date range (starts_at / expires_at)
"""

import enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, CheckConstraint
from sqlalchemy.sql import func
from config.database import Base


class DiscountMode(str, enum.Enum):
    PERCENT = "PERCENT"
    FIXED = "FIXED"


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True)
    code = Column(String(40), nullable=False, unique=True, index=True)   # stored upper-case
    title = Column(String, nullable=True)

    discount_mode = Column(String, default=DiscountMode.PERCENT, nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)              # percent (0-100) or amount
    max_discount_amount = Column(Numeric(10, 2), nullable=True)          # cap for PERCENT mode
    min_order_amount = Column(Numeric(10, 2), default=0, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("discount_value >= 0", name="ck_coupon_value"),
    )

    def __repr__(self):
        return f"<Coupon {self.code}>"
