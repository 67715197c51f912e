"""
Cart Routes
=============
JSON API for carts: lookup, items, coupon, gift, shipping/tax, guest merge.

Owner headers (auth is handled upstream):
  X-User-Id     : registered customer
  X-Session-Id  : anonymous visitor
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import CommerceError, InvalidInputError, raise_http
from modules.cart.models import Cart
from modules.cart.service import CartOwner, cart_service

router = APIRouter(prefix="/api/carts", tags=["cart"])


# ==========================================
# Schemas
# ==========================================

class AddItemRequest(BaseModel):
    product_id: int
    quantity: int = 1
    options: Optional[Dict[str, Any]] = None


class UpdateQuantityRequest(BaseModel):
    quantity: int


class CouponRequest(BaseModel):
    code: str = Field(..., min_length=1)


class GiftRequest(BaseModel):
    is_gift: bool
    message: Optional[str] = None


class RateRequest(BaseModel):
    country: str = ""
    postal_code: str = ""


class MergeRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    user_id: int


def serialize_cart(cart: Cart) -> dict:
    return {
        "id": cart.id,
        "user_id": cart.user_id,
        "session_id": cart.session_id,
        "items": [
            {
                "id": it.id,
                "product_id": it.product_id,
                "quantity": it.quantity,
                "price": float(it.price),
                "subtotal": float(it.subtotal),
                "selected_options": it.selected_options or {},
            }
            for it in cart.items
        ],
        "subtotal": float(cart.subtotal),
        "shipping": float(cart.shipping),
        "tax": float(cart.tax),
        "discount": float(cart.discount),
        "total": float(cart.total),
        "coupon_code": cart.coupon_code,
        "is_gift": cart.is_gift,
        "gift_message": cart.gift_message,
        "is_active": cart.is_active,
    }


def _owner_from_headers(user_id: Optional[int], session_id: Optional[str]) -> CartOwner:
    if user_id is not None:
        return CartOwner.user(user_id)
    if session_id:
        return CartOwner.session(session_id)
    raise InvalidInputError("X-User-Id or X-Session-Id header is required")


# ==========================================
# 🛒 Lookup
# ==========================================

@router.get("/me")
async def my_cart(
    x_user_id: Optional[int] = Header(None),
    x_session_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    try:
        cart = cart_service.get_or_create(db, _owner_from_headers(x_user_id, x_session_id))
    except CommerceError as e:
        raise_http(e)
    return serialize_cart(cart)


@router.post("/merge")
async def merge_carts(body: MergeRequest, db: Session = Depends(get_db)):
    """Called after login: folds the visitor's session cart into the user's cart."""
    try:
        cart = cart_service.merge_guest_cart(db, body.session_id, body.user_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_cart(cart)


@router.get("/{cart_id}")
async def get_cart(cart_id: int, db: Session = Depends(get_db)):
    try:
        cart = cart_service.get_cart(db, cart_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_cart(cart)


# ==========================================
# ➕➖ Items
# ==========================================

@router.post("/{cart_id}/items")
async def add_item(cart_id: int, body: AddItemRequest, db: Session = Depends(get_db)):
    try:
        cart = cart_service.add_item(db, cart_id, body.product_id, body.quantity, body.options)
    except CommerceError as e:
        raise_http(e)
    return serialize_cart(cart)


@router.patch("/{cart_id}/items/{item_id}")
async def update_item(cart_id: int, item_id: int, body: UpdateQuantityRequest, db: Session = Depends(get_db)):
    try:
        cart = cart_service.update_item_quantity(db, cart_id, item_id, body.quantity)
    except CommerceError as e:
        raise_http(e)
    return serialize_cart(cart)


@router.delete("/{cart_id}/items/{item_id}")
async def remove_item(cart_id: int, item_id: int, db: Session = Depends(get_db)):
    try:
        cart = cart_service.remove_item(db, cart_id, item_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_cart(cart)


@router.delete("/{cart_id}/items")
async def clear_cart(cart_id: int, db: Session = Depends(get_db)):
    try:
        cart = cart_service.clear(db, cart_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_cart(cart)


# ==========================================
# 🎟️ Coupon / 🎁 Gift
# ==========================================

@router.post("/{cart_id}/coupon")
async def apply_coupon(cart_id: int, body: CouponRequest, db: Session = Depends(get_db)):
    try:
        cart = cart_service.apply_coupon(db, cart_id, body.code)
    except CommerceError as e:
        raise_http(e)
    return serialize_cart(cart)


@router.delete("/{cart_id}/coupon")
async def remove_coupon(cart_id: int, db: Session = Depends(get_db)):
    try:
        cart = cart_service.remove_coupon(db, cart_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_cart(cart)


@router.put("/{cart_id}/gift")
async def update_gift(cart_id: int, body: GiftRequest, db: Session = Depends(get_db)):
    try:
        cart = cart_service.update_gift_settings(db, cart_id, body.is_gift, body.message)
    except CommerceError as e:
        raise_http(e)
    return serialize_cart(cart)


# ==========================================
# 🚚 Shipping / Tax
# ==========================================

@router.post("/{cart_id}/shipping")
async def calculate_shipping(cart_id: int, body: RateRequest, db: Session = Depends(get_db)):
    try:
        amount = cart_service.calculate_shipping(db, cart_id, body.country, body.postal_code)
        cart = cart_service.get_cart(db, cart_id)
    except CommerceError as e:
        raise_http(e)
    return {"shipping": float(amount), "cart": serialize_cart(cart)}


@router.post("/{cart_id}/tax")
async def calculate_tax(cart_id: int, body: RateRequest, db: Session = Depends(get_db)):
    try:
        amount = cart_service.calculate_tax(db, cart_id, body.country, body.postal_code)
        cart = cart_service.get_cart(db, cart_id)
    except CommerceError as e:
        raise_http(e)
    return {"tax": float(amount), "cart": serialize_cart(cart)}
