"""
Cart Module - Models
=====================
Shopping cart owned by a user or an anonymous session, with line items.

One active cart per owner (partial unique indexes); exactly one of
user_id / session_id is set (check constraint).
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, Numeric, Text, JSON,
    ForeignKey, DateTime, Index, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=True, index=True)
    session_id = Column(String(128), nullable=True, index=True)

    # Derived amounts, written only by the cart service
    subtotal = Column(Numeric(10, 2), default=0, nullable=False)
    tax = Column(Numeric(10, 2), default=0, nullable=False)
    shipping = Column(Numeric(10, 2), default=0, nullable=False)
    discount = Column(Numeric(10, 2), default=0, nullable=False)
    total = Column(Numeric(10, 2), default=0, nullable=False)

    coupon_code = Column(String(40), nullable=True)
    is_gift = Column(Boolean, default=False, nullable=False)
    gift_message = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "CartItem", back_populates="cart",
        cascade="all, delete-orphan", order_by="CartItem.id",
    )

    __table_args__ = (
        CheckConstraint("(user_id IS NULL) <> (session_id IS NULL)", name="ck_cart_single_owner"),
        Index(
            "uq_active_cart_user", user_id, unique=True,
            postgresql_where=(is_active == True), sqlite_where=(is_active == True),
        ),
        Index(
            "uq_active_cart_session", session_id, unique=True,
            postgresql_where=(is_active == True), sqlite_where=(is_active == True),
        ),
    )


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)       # snapshot at add time
    subtotal = Column(Numeric(10, 2), default=0, nullable=False)
    selected_options = Column(JSON, nullable=True)
    options_key = Column(String, default="{}", nullable=False)   # canonical JSON of selected_options

    cart = relationship("Cart", back_populates="items")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "options_key", name="uq_cart_product_options"),
        CheckConstraint("quantity >= 1", name="ck_cart_qty"),
    )
