"""
Subscription Module - Models
=============================
Recurring orders: a subscription owns its items and billing schedule.
"""

import enum
from sqlalchemy import (
    Column, Integer, String, Boolean, Numeric, JSON,
    ForeignKey, DateTime, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"
    COMPLETED = "completed"


class SubscriptionFrequency(str, enum.Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    frequency = Column(String, default=SubscriptionFrequency.MONTHLY, nullable=False)
    status = Column(String, default=SubscriptionStatus.ACTIVE, nullable=False)

    amount = Column(Numeric(10, 2), default=0, nullable=False)       # Σ items - discount
    discount = Column(Numeric(10, 2), default=0, nullable=False)
    coupon_code = Column(String(40), nullable=True)

    last_order_date = Column(DateTime(timezone=True), nullable=True)
    next_order_date = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    auto_renew = Column(Boolean, default=True, nullable=False)

    # {"line1", "line2", "city", "state", "postal_code", "country", "name"}
    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)
    payment_method_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "SubscriptionItem", back_populates="subscription",
        cascade="all, delete-orphan", order_by="SubscriptionItem.id",
    )

    __table_args__ = (
        Index("ix_subscription_due", "status", "auto_renew", "next_order_date"),
    )


class SubscriptionItem(Base):
    __tablename__ = "subscription_items"

    id = Column(Integer, primary_key=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)     # snapshot at add / renewal time

    subscription = relationship("Subscription", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_subscription_item_qty"),
    )
