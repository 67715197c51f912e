"""
Subscription Routes
=====================
JSON API for subscriptions: create, list, settings, lifecycle, items.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import CommerceError, InvalidInputError, raise_http
from modules.subscription.models import Subscription
from modules.subscription.service import subscription_service

router = APIRouter(prefix="/api/subscriptions", tags=["subscription"])


# ==========================================
# Schemas
# ==========================================

class AddressBody(BaseModel):
    line1: str = ""
    line2: Optional[str] = None
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""
    name: Optional[str] = None


class ItemBody(BaseModel):
    product_id: int
    quantity: int = 1


class CreateSubscriptionRequest(BaseModel):
    user_id: int
    frequency: str = Field(..., min_length=1)
    items: List[ItemBody]
    shipping_address: AddressBody
    billing_address: Optional[AddressBody] = None
    payment_method_id: Optional[str] = None
    auto_renew: bool = True


class FrequencyRequest(BaseModel):
    frequency: str = Field(..., min_length=1)


class AutoRenewRequest(BaseModel):
    auto_renew: bool


class QuantityRequest(BaseModel):
    quantity: int


def _value(v):
    return getattr(v, "value", v)


def _iso(dt):
    return dt.isoformat() if dt else None


def serialize_subscription(sub: Subscription) -> dict:
    return {
        "id": sub.id,
        "user_id": sub.user_id,
        "frequency": _value(sub.frequency),
        "status": _value(sub.status),
        "amount": float(sub.amount),
        "discount": float(sub.discount or 0),
        "auto_renew": sub.auto_renew,
        "last_order_date": _iso(sub.last_order_date),
        "next_order_date": _iso(sub.next_order_date),
        "cancelled_at": _iso(sub.cancelled_at),
        "shipping_address": sub.shipping_address,
        "billing_address": sub.billing_address,
        "payment_method_id": sub.payment_method_id,
        "items": [
            {
                "id": it.id,
                "product_id": it.product_id,
                "quantity": it.quantity,
                "price": float(it.price),
            }
            for it in sub.items
        ],
    }


def _address(body: Optional[AddressBody]) -> Optional[dict]:
    return body.model_dump(exclude_none=True) if body else None


# ==========================================
# 📋 Create / Query
# ==========================================

@router.post("", status_code=201)
async def create_subscription(body: CreateSubscriptionRequest, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.create_subscription(
            db,
            user_id=body.user_id,
            frequency=body.frequency,
            items=[it.model_dump() for it in body.items],
            shipping_address=_address(body.shipping_address),
            billing_address=_address(body.billing_address),
            payment_method_id=body.payment_method_id,
            auto_renew=body.auto_renew,
        )
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


@router.get("")
async def list_subscriptions(x_user_id: Optional[int] = Header(None), db: Session = Depends(get_db)):
    if x_user_id is None:
        raise_http(InvalidInputError("X-User-Id header is required"))
    subs = subscription_service.list_for_user(db, x_user_id)
    return {"subscriptions": [serialize_subscription(s) for s in subs]}


@router.get("/{subscription_id}")
async def get_subscription(subscription_id: int, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.get_subscription(db, subscription_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


# ==========================================
# ⚙️ Settings
# ==========================================

@router.patch("/{subscription_id}/frequency")
async def update_frequency(subscription_id: int, body: FrequencyRequest, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.update_frequency(db, subscription_id, body.frequency)
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


@router.patch("/{subscription_id}/auto-renew")
async def update_auto_renew(subscription_id: int, body: AutoRenewRequest, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.update_auto_renew(db, subscription_id, body.auto_renew)
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


@router.put("/{subscription_id}/shipping-address")
async def update_shipping_address(subscription_id: int, body: AddressBody, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.update_shipping_address(db, subscription_id, _address(body))
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


@router.put("/{subscription_id}/billing-address")
async def update_billing_address(subscription_id: int, body: AddressBody, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.update_billing_address(db, subscription_id, _address(body))
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


# ==========================================
# ⏯️ Lifecycle
# ==========================================

@router.patch("/{subscription_id}/pause")
async def pause_subscription(subscription_id: int, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.pause(db, subscription_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


@router.patch("/{subscription_id}/resume")
async def resume_subscription(subscription_id: int, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.resume(db, subscription_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


@router.patch("/{subscription_id}/cancel")
async def cancel_subscription(subscription_id: int, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.cancel(db, subscription_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


# ==========================================
# 📦 Items
# ==========================================

@router.post("/{subscription_id}/items")
async def add_item(subscription_id: int, body: ItemBody, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.add_item(db, subscription_id, body.product_id, body.quantity)
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


@router.patch("/{subscription_id}/items/{item_id}")
async def update_item(subscription_id: int, item_id: int, body: QuantityRequest, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.update_item_quantity(db, subscription_id, item_id, body.quantity)
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)


@router.delete("/{subscription_id}/items/{item_id}")
async def remove_item(subscription_id: int, item_id: int, db: Session = Depends(get_db)):
    try:
        sub = subscription_service.remove_item(db, subscription_id, item_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_subscription(sub)
