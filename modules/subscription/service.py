"""
Subscription Module - Service Layer
=====================================
Subscription lifecycle, item management and the renewal batch.

State machine:
    ACTIVE  -> PAUSED          (pause)
    PAUSED  -> ACTIVE          (resume, next date recomputed from now)
    ACTIVE  -> PAYMENT_FAILED  (renewal charge declined)
    ACTIVE  -> COMPLETED       (complete)
    *       -> CANCELLED       (cancel; terminal, cancelling twice is rejected)

Only ACTIVE subscriptions accept item / frequency / address / auto-renew changes.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from common.exceptions import (
    AlreadyCancelledError, InvalidInputError, InvalidStateError,
    MustHaveAtLeastOneItemError, NotFoundError,
)
from common.helpers import as_utc, now_utc, to_money
from common.repository import Repository
from common.transaction import transaction_scope
from modules.catalog.product_catalog import ProductCatalog, product_catalog
from modules.inventory.guard import ensure_available, validate_quantity
from modules.order.service import OrderService, order_service
from modules.payment.gateways import BasePaymentProcessor, ChargeResult
from modules.subscription.billing import calculate_next_order_date, calculate_total, normalize_frequency
from modules.subscription.models import Subscription, SubscriptionItem, SubscriptionStatus

logger = logging.getLogger("storefront.subscription")

REQUIRED_ADDRESS_FIELDS = ("line1", "city", "state", "postal_code", "country")
OPTIONAL_ADDRESS_FIELDS = ("line2", "name")


@dataclass
class RenewalReport:
    processed: int = 0
    renewed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: Dict[int, str] = field(default_factory=dict)
    # subscription id -> charge reference for charges whose renewal was rolled back
    unreconciled: Dict[int, str] = field(default_factory=dict)


def validate_address(address: Optional[dict], label: str = "address") -> dict:
    """Return a cleaned copy; missing required fields raise InvalidInputError."""
    if not isinstance(address, dict):
        raise InvalidInputError(f"{label} is required")
    missing = [f for f in REQUIRED_ADDRESS_FIELDS if not str(address.get(f) or "").strip()]
    if missing:
        raise InvalidInputError(f"{label} is missing required fields: {', '.join(missing)}")
    cleaned = {f: str(address[f]).strip() for f in REQUIRED_ADDRESS_FIELDS}
    for f in OPTIONAL_ADDRESS_FIELDS:
        if address.get(f):
            cleaned[f] = str(address[f]).strip()
    return cleaned


class SubscriptionService:

    def __init__(self, catalog: ProductCatalog = product_catalog, orders: OrderService = order_service):
        self.catalog = catalog
        self.orders = orders

    # ==========================================
    # Query
    # ==========================================

    def get_subscription(self, db: Session, subscription_id: int) -> Subscription:
        sub = db.query(Subscription).filter(Subscription.id == subscription_id).first()
        if not sub:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        return sub

    def list_for_user(self, db: Session, user_id: int) -> List[Subscription]:
        return (
            db.query(Subscription)
            .filter(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .all()
        )

    # ==========================================
    # Create
    # ==========================================

    def create_subscription(
        self,
        db: Session,
        user_id: int,
        frequency: str,
        items: List[dict],
        shipping_address: dict,
        billing_address: Optional[dict] = None,
        payment_method_id: Optional[str] = None,
        discount=0,
        coupon_code: Optional[str] = None,
        auto_renew: bool = True,
        now: Optional[datetime] = None,
    ) -> Subscription:
        """
        items: [{"product_id": 1, "quantity": 2}, ...]; repeated products are combined.
        billing_address defaults to the shipping address.
        """
        frequency = normalize_frequency(frequency)
        if not frequency:
            raise InvalidInputError("Subscription frequency is required")
        if not items:
            raise MustHaveAtLeastOneItemError()
        shipping = validate_address(shipping_address, "Shipping address")
        billing = validate_address(billing_address, "Billing address") if billing_address else dict(shipping)
        discount = to_money(discount)
        if discount < 0:
            raise InvalidInputError("Discount cannot be negative")

        wanted: Dict[int, int] = {}
        for entry in items:
            product_id = entry.get("product_id")
            quantity = validate_quantity(entry.get("quantity", 1))
            wanted[product_id] = wanted.get(product_id, 0) + quantity

        now = now or now_utc()
        with transaction_scope(db) as tx:
            sub = Subscription(
                user_id=user_id,
                frequency=frequency,
                status=SubscriptionStatus.ACTIVE,
                discount=discount,
                coupon_code=coupon_code,
                auto_renew=auto_renew,
                shipping_address=shipping,
                billing_address=billing,
                payment_method_id=payment_method_id,
                last_order_date=now,
                next_order_date=calculate_next_order_date(now, frequency),
            )
            for product_id, quantity in wanted.items():
                product = self.catalog.get_by_id(tx, product_id)
                ensure_available(product.stock, quantity, product.name)
                sub.items.append(SubscriptionItem(product_id=product_id, quantity=quantity, price=product.price))

            sub.amount = calculate_total(sub.items, sub.discount)
            tx.save(sub)
            logger.info(f"Subscription {sub.id} created for user {user_id} ({frequency}, {sub.amount})")
        return sub

    # ==========================================
    # Settings
    # ==========================================

    def update_frequency(self, db: Session, subscription_id: int, frequency: str) -> Subscription:
        frequency = normalize_frequency(frequency)
        if not frequency:
            raise InvalidInputError("Subscription frequency is required")
        with transaction_scope(db) as tx:
            sub = self._lock_active(tx, subscription_id)
            sub.frequency = frequency
            base = as_utc(sub.last_order_date) or now_utc()
            sub.next_order_date = calculate_next_order_date(base, frequency)
            tx.save(sub)
        return sub

    def update_auto_renew(self, db: Session, subscription_id: int, auto_renew: bool) -> Subscription:
        with transaction_scope(db) as tx:
            sub = self._lock_active(tx, subscription_id)
            sub.auto_renew = bool(auto_renew)
            tx.save(sub)
        return sub

    def update_shipping_address(self, db: Session, subscription_id: int, address: dict) -> Subscription:
        cleaned = validate_address(address, "Shipping address")
        with transaction_scope(db) as tx:
            sub = self._lock_active(tx, subscription_id)
            sub.shipping_address = cleaned
            tx.save(sub)
        return sub

    def update_billing_address(self, db: Session, subscription_id: int, address: dict) -> Subscription:
        cleaned = validate_address(address, "Billing address")
        with transaction_scope(db) as tx:
            sub = self._lock_active(tx, subscription_id)
            sub.billing_address = cleaned
            tx.save(sub)
        return sub

    # ==========================================
    # Lifecycle
    # ==========================================

    def pause(self, db: Session, subscription_id: int) -> Subscription:
        with transaction_scope(db) as tx:
            sub = self._lock(tx, subscription_id)
            if sub.status != SubscriptionStatus.ACTIVE:
                raise InvalidStateError(f"Only active subscriptions can be paused (status: {self._status(sub)})")
            sub.status = SubscriptionStatus.PAUSED
            tx.save(sub)
            logger.info(f"Subscription {sub.id} paused")
        return sub

    def resume(self, db: Session, subscription_id: int, now: Optional[datetime] = None) -> Subscription:
        with transaction_scope(db) as tx:
            sub = self._lock(tx, subscription_id)
            if sub.status != SubscriptionStatus.PAUSED:
                raise InvalidStateError(f"Only paused subscriptions can be resumed (status: {self._status(sub)})")
            sub.status = SubscriptionStatus.ACTIVE
            sub.next_order_date = calculate_next_order_date(now or now_utc(), sub.frequency)
            tx.save(sub)
            logger.info(f"Subscription {sub.id} resumed, next order {sub.next_order_date}")
        return sub

    def cancel(self, db: Session, subscription_id: int, now: Optional[datetime] = None) -> Subscription:
        with transaction_scope(db) as tx:
            sub = self._lock(tx, subscription_id)
            if sub.status == SubscriptionStatus.CANCELLED:
                raise AlreadyCancelledError(sub.id)
            sub.status = SubscriptionStatus.CANCELLED
            sub.cancelled_at = now or now_utc()
            tx.save(sub)
            logger.info(f"Subscription {sub.id} cancelled")
        return sub

    def complete(self, db: Session, subscription_id: int) -> Subscription:
        with transaction_scope(db) as tx:
            sub = self._lock(tx, subscription_id)
            if sub.status != SubscriptionStatus.ACTIVE:
                raise InvalidStateError(f"Only active subscriptions can be completed (status: {self._status(sub)})")
            sub.status = SubscriptionStatus.COMPLETED
            tx.save(sub)
        return sub

    # ==========================================
    # Items
    # ==========================================

    def add_item(self, db: Session, subscription_id: int, product_id: int, quantity: int = 1) -> Subscription:
        validate_quantity(quantity)
        with transaction_scope(db) as tx:
            sub = self._lock_active(tx, subscription_id)
            product = self.catalog.get_by_id(tx, product_id)

            item = next((i for i in sub.items if i.product_id == product_id), None)
            existing = item.quantity if item else 0
            ensure_available(product.stock, existing + quantity, product.name)

            if item:
                item.quantity += quantity
            else:
                sub.items.append(SubscriptionItem(product_id=product_id, quantity=quantity, price=product.price))

            sub.amount = calculate_total(sub.items, sub.discount)
            tx.save(sub)
        return sub

    def remove_item(self, db: Session, subscription_id: int, item_id: int) -> Subscription:
        with transaction_scope(db) as tx:
            sub = self._lock_active(tx, subscription_id)
            item = self._get_item(sub, item_id)
            if len(sub.items) <= 1:
                raise MustHaveAtLeastOneItemError()
            sub.items.remove(item)
            sub.amount = calculate_total(sub.items, sub.discount)
            tx.save(sub)
        return sub

    def update_item_quantity(self, db: Session, subscription_id: int, item_id: int, quantity: int) -> Subscription:
        """Zero or less removes the item (subject to the at-least-one-item rule)."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidInputError(f"Quantity must be a whole number, got {quantity!r}")
        if quantity <= 0:
            return self.remove_item(db, subscription_id, item_id)

        with transaction_scope(db) as tx:
            sub = self._lock_active(tx, subscription_id)
            item = self._get_item(sub, item_id)
            product = self.catalog.get_by_id(tx, item.product_id)
            ensure_available(product.stock, quantity, product.name)
            item.quantity = quantity
            sub.amount = calculate_total(sub.items, sub.discount)
            tx.save(sub)
        return sub

    # ==========================================
    # Renewals (scheduled batch)
    # ==========================================

    def process_renewals(
        self,
        db: Session,
        processor: BasePaymentProcessor,
        order_creator: Optional[OrderService] = None,
        now: Optional[datetime] = None,
    ) -> RenewalReport:
        """
        Charge every ACTIVE, auto-renewing subscription whose next_order_date
        has passed. Each subscription is renewed in its own transaction, so a
        failure never affects the others. Declined charges move the
        subscription to PAYMENT_FAILED and keep next_order_date as it was.
        A failure after a successful charge leaves the subscription ACTIVE and
        reports the charge reference in `unreconciled`.
        """
        now = now or now_utc()
        orders = order_creator or self.orders
        report = RenewalReport()

        with transaction_scope(db) as tx:
            due_ids = [
                sub.id for sub in tx.find_many(
                    Subscription,
                    Subscription.status == SubscriptionStatus.ACTIVE,
                    Subscription.auto_renew == True,
                    Subscription.next_order_date <= now,
                    order_by=(Subscription.next_order_date, Subscription.id),
                )
            ]

        # subscription id -> ChargeResult of a charge taken in the current run
        charged: Dict[int, ChargeResult] = {}
        for subscription_id in due_ids:
            report.processed += 1
            try:
                with transaction_scope(db) as tx:
                    outcome = self._renew_one(tx, subscription_id, processor, orders, now, charged)
            except Exception as e:
                report.failed += 1
                report.errors[subscription_id] = str(e)
                charge = charged.get(subscription_id)
                if charge is not None:
                    # Money was taken but the renewal was rolled back: keep the
                    # subscription ACTIVE and leave the charge for reconciliation
                    logger.error(
                        f"Subscription {subscription_id} charged (ref {charge.reference}) "
                        f"but renewal was not recorded: {e}"
                    )
                    report.unreconciled[subscription_id] = charge.reference
                else:
                    logger.error(f"Renewal failed for subscription {subscription_id}: {e}")
                    self._mark_payment_failed(db, subscription_id)
                continue

            if outcome is None:
                report.skipped += 1
            elif outcome:
                report.renewed += 1
            else:
                report.failed += 1

        if report.processed:
            logger.info(
                f"Renewals: {report.renewed} renewed, {report.failed} failed, "
                f"{report.skipped} skipped of {report.processed}"
            )
        return report

    def _renew_one(self, tx: Repository, subscription_id: int, processor: BasePaymentProcessor,
                   orders: OrderService, now: datetime,
                   charged: Dict[int, ChargeResult]) -> Optional[bool]:
        """True = renewed, False = charge declined, None = no longer due (taken elsewhere)."""
        sub = (
            tx.session.query(Subscription)
            .options(selectinload(Subscription.items))
            .filter(Subscription.id == subscription_id)
            .with_for_update(skip_locked=True)
            .populate_existing()
            .first()
        )
        if (
            sub is None
            or sub.status != SubscriptionStatus.ACTIVE
            or not sub.auto_renew
            or sub.next_order_date is None
            or as_utc(sub.next_order_date) > as_utc(now)
        ):
            return None

        for item in sub.items:
            item.price = self.catalog.get_by_id(tx, item.product_id).price
        sub.amount = calculate_total(sub.items, sub.discount)

        result = processor.charge(sub)
        if not result.success:
            sub.status = SubscriptionStatus.PAYMENT_FAILED
            tx.save(sub)
            logger.warning(f"Subscription {sub.id}: payment failed ({result.reason})")
            return False
        charged[sub.id] = result

        orders.create_from_subscription(tx, sub, result, now)
        sub.last_order_date = now
        sub.next_order_date = calculate_next_order_date(now, sub.frequency)
        tx.save(sub)
        logger.info(f"Subscription {sub.id} renewed, next order {sub.next_order_date}")
        return True

    def _mark_payment_failed(self, db: Session, subscription_id: int) -> None:
        try:
            with transaction_scope(db) as tx:
                sub = tx.find(Subscription, subscription_id, for_update=True)
                if sub.status == SubscriptionStatus.ACTIVE:
                    sub.status = SubscriptionStatus.PAYMENT_FAILED
                    tx.save(sub)
        except Exception as e:
            logger.error(f"Could not mark subscription {subscription_id} as payment_failed: {e}")

    # ==========================================
    # Private helpers
    # ==========================================

    def _lock(self, tx: Repository, subscription_id: int) -> Subscription:
        return tx.find(
            Subscription, subscription_id, for_update=True,
            options=(selectinload(Subscription.items),), label="Subscription",
        )

    def _lock_active(self, tx: Repository, subscription_id: int) -> Subscription:
        sub = self._lock(tx, subscription_id)
        if sub.status != SubscriptionStatus.ACTIVE:
            raise InvalidStateError(
                f"Subscription {sub.id} is {self._status(sub)}; only active subscriptions can be modified"
            )
        return sub

    def _get_item(self, sub: Subscription, item_id: int) -> SubscriptionItem:
        for item in sub.items:
            if item.id == item_id:
                return item
        raise NotFoundError(f"Item {item_id} not found in subscription {sub.id}")

    @staticmethod
    def _status(sub: Subscription) -> str:
        return getattr(sub.status, "value", sub.status)


# Singleton
subscription_service = SubscriptionService()
