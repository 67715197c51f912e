"""
Cart Module - Service Layer
==============================
Cart management: get/create, add/update/remove items, coupon, gift,
shipping/tax, guest-cart merge on login, total recalculation.

Every mutation runs inside a transaction_scope with the cart row (and any
product row it checks stock against) locked FOR UPDATE, so concurrent
requests on the same cart are serialized by the database.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from config import settings
from common.exceptions import InvalidInputError, InvalidStateError, NotFoundError
from common.helpers import canonical_json, to_money
from common.repository import Repository
from common.transaction import transaction_scope
from modules.cart.models import Cart, CartItem
from modules.cart.rates import FlatRateCalculator, RateCalculator
from modules.cart.totals import ZERO, compute_cart_totals, line_subtotal
from modules.catalog.product_catalog import ProductCatalog, product_catalog
from modules.coupon.service import CouponService, CouponValidationError, coupon_service
from modules.inventory.guard import clamp_to_stock, ensure_available, validate_quantity

logger = logging.getLogger("storefront.cart")


@dataclass(frozen=True)
class CartOwner:
    """Either a registered user or an anonymous session, never both."""
    kind: str
    value: Union[int, str]

    USER = "user"
    SESSION = "session"

    @classmethod
    def user(cls, user_id: int) -> "CartOwner":
        if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id < 1:
            raise InvalidInputError(f"Invalid user id: {user_id!r}")
        return cls(cls.USER, user_id)

    @classmethod
    def session(cls, session_id: str) -> "CartOwner":
        session_id = (session_id or "").strip()
        if not session_id:
            raise InvalidInputError("Session id is required")
        return cls(cls.SESSION, session_id)

    def column_values(self) -> Dict[str, Any]:
        if self.kind == self.USER:
            return {"user_id": self.value, "session_id": None}
        return {"user_id": None, "session_id": self.value}


class CartService:

    def __init__(
        self,
        catalog: ProductCatalog = product_catalog,
        rates: Optional[RateCalculator] = None,
        coupons: CouponService = coupon_service,
    ):
        self.catalog = catalog
        self.rates = rates or FlatRateCalculator()
        self.coupons = coupons

    # ==========================================
    # Lookup
    # ==========================================

    def get_or_create(self, db: Session, owner: CartOwner) -> Cart:
        """Return the owner's active cart, creating an empty one on first access."""
        with transaction_scope(db) as tx:
            cart = self._get_or_create(tx, owner)
        return cart

    def get_cart(self, db: Session, cart_id: int) -> Cart:
        cart = db.query(Cart).filter(Cart.id == cart_id).first()
        if not cart:
            raise NotFoundError(f"Cart {cart_id} not found")
        return cart

    def find_active_cart(self, db: Session, owner: CartOwner) -> Optional[Cart]:
        return self._active_cart_query(db, owner).first()

    # ==========================================
    # Items
    # ==========================================

    def add_item(self, db: Session, cart_id: int, product_id: int, quantity: int = 1,
                 options: Optional[Dict[str, Any]] = None) -> Cart:
        """
        Add `quantity` of a product. An existing line with the same product and
        options grows instead of being duplicated; new lines snapshot the
        current product price.
        """
        validate_quantity(quantity)
        key = canonical_json(options)

        with transaction_scope(db) as tx:
            cart = self._lock_active_cart(tx, cart_id)
            product = self.catalog.get_by_id(tx, product_id)

            in_cart = sum(i.quantity for i in cart.items if i.product_id == product_id)
            ensure_available(product.stock, in_cart + quantity, product.name)

            item = self._find_line(cart, product_id, key)
            if item:
                item.quantity += quantity
            else:
                item = CartItem(
                    product_id=product_id,
                    quantity=quantity,
                    price=product.price,
                    selected_options=dict(options or {}),
                    options_key=key,
                )
                cart.items.append(item)

            self._recalculate(tx, cart)
            tx.save(cart)
            logger.info(f"Cart {cart.id}: +{quantity} x product {product_id}")
        return cart

    def update_item_quantity(self, db: Session, cart_id: int, item_id: int, quantity: int) -> Cart:
        """Set a line's quantity; zero or less removes the line."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidInputError(f"Quantity must be a whole number, got {quantity!r}")
        if quantity <= 0:
            return self.remove_item(db, cart_id, item_id)

        with transaction_scope(db) as tx:
            cart = self._lock_active_cart(tx, cart_id)
            item = self._get_line(cart, item_id)
            product = self.catalog.get_by_id(tx, item.product_id)

            elsewhere = sum(
                i.quantity for i in cart.items
                if i.product_id == item.product_id and i.id != item.id
            )
            ensure_available(product.stock, elsewhere + quantity, product.name)

            item.quantity = quantity
            self._recalculate(tx, cart)
            tx.save(cart)
        return cart

    def remove_item(self, db: Session, cart_id: int, item_id: int) -> Cart:
        with transaction_scope(db) as tx:
            cart = self._lock_active_cart(tx, cart_id)
            item = self._get_line(cart, item_id)
            cart.items.remove(item)
            self._recalculate(tx, cart)
            tx.save(cart)
            logger.info(f"Cart {cart.id}: removed item {item_id}")
        return cart

    def clear(self, db: Session, cart_id: int) -> Cart:
        """Remove every line and reset all amounts (and the coupon) to zero."""
        with transaction_scope(db) as tx:
            cart = self._lock_active_cart(tx, cart_id)
            cart.items.clear()
            cart.coupon_code = None
            cart.shipping = ZERO
            cart.tax = ZERO
            self._recalculate(tx, cart)
            tx.save(cart)
        return cart

    # ==========================================
    # Coupon / Gift
    # ==========================================

    def apply_coupon(self, db: Session, cart_id: int, code: str) -> Cart:
        """Raises CouponValidationError when the code doesn't apply; the cart is left untouched."""
        code = self.coupons.normalize_code(code)
        with transaction_scope(db) as tx:
            cart = self._lock_active_cart(tx, cart_id)
            subtotal = sum((line_subtotal(i.price, i.quantity) for i in cart.items), ZERO)
            self.coupons.evaluate(tx.session, code, subtotal)
            cart.coupon_code = code
            self._recalculate(tx, cart)
            tx.save(cart)
            logger.info(f"Cart {cart.id}: coupon {code} applied, discount {cart.discount}")
        return cart

    def remove_coupon(self, db: Session, cart_id: int) -> Cart:
        with transaction_scope(db) as tx:
            cart = self._lock_active_cart(tx, cart_id)
            cart.coupon_code = None
            self._recalculate(tx, cart)
            tx.save(cart)
        return cart

    def update_gift_settings(self, db: Session, cart_id: int, is_gift: bool,
                             message: Optional[str] = None) -> Cart:
        """The message is kept only for gift carts."""
        message = (message or "").strip() or None
        if message and len(message) > settings.GIFT_MESSAGE_MAX_LENGTH:
            raise InvalidInputError(f"Gift message is limited to {settings.GIFT_MESSAGE_MAX_LENGTH} characters")

        with transaction_scope(db) as tx:
            cart = self._lock_active_cart(tx, cart_id)
            cart.is_gift = bool(is_gift)
            cart.gift_message = message if cart.is_gift else None
            tx.save(cart)
        return cart

    # ==========================================
    # Shipping / Tax
    # ==========================================

    def calculate_shipping(self, db: Session, cart_id: int, country: str = "", postal_code: str = "") -> Decimal:
        with transaction_scope(db) as tx:
            cart = self._lock_active_cart(tx, cart_id)
            cart.shipping = to_money(self.rates.shipping(cart, country, postal_code))
            self._recalculate(tx, cart)
            tx.save(cart)
            amount = cart.shipping
        return amount

    def calculate_tax(self, db: Session, cart_id: int, country: str = "", postal_code: str = "") -> Decimal:
        with transaction_scope(db) as tx:
            cart = self._lock_active_cart(tx, cart_id)
            cart.tax = to_money(self.rates.tax(cart, country, postal_code))
            self._recalculate(tx, cart)
            tx.save(cart)
            amount = cart.tax
        return amount

    # ==========================================
    # Merge on login
    # ==========================================

    def merge_guest_cart(self, db: Session, session_id: str, user_id: int) -> Cart:
        """
        Fold the session's active cart into the user's cart.

        - Same product + options: quantities are summed
        - Other lines are copied with the guest's price snapshot
        - Each product's total across all its lines is clamped to stock;
          guest quantities are trimmed first and lines clamped to 0 are dropped
        - Guest lines for products no longer sold are dropped
        - Gift / coupon settings only fill in what the user cart lacks
        - The guest cart is deactivated, never deleted
        Missing or empty guest cart: returns the user's cart unchanged.
        """
        guest_owner = CartOwner.session(session_id)
        user_owner = CartOwner.user(user_id)

        with transaction_scope(db) as tx:
            user_cart = self._get_or_create(tx, user_owner)
            guest_cart = self._active_cart_query(tx.session, guest_owner).with_for_update().first()
            if guest_cart is None or not guest_cart.items:
                return user_cart

            user_cart = tx.find(Cart, user_cart.id, for_update=True, options=(selectinload(Cart.items),))

            # Units of each product the guest lines may still add
            budgets: Dict[int, int] = {}
            for guest_item in list(guest_cart.items):
                product_id = guest_item.product_id
                if product_id not in budgets:
                    try:
                        product = self.catalog.get_by_id(tx, product_id)
                    except NotFoundError:
                        logger.info(f"Cart {user_cart.id}: guest line for unavailable product {product_id} dropped")
                        budgets[product_id] = 0
                        continue
                    in_cart = self._trim_to_stock(user_cart, product_id, product.stock)
                    budgets[product_id] = max(product.stock - in_cart, 0)

                take = clamp_to_stock(budgets[product_id], guest_item.quantity)
                if take < guest_item.quantity:
                    logger.info(
                        f"Cart {user_cart.id}: product {product_id} from guest cart clamped to stock "
                        f"({take} of {guest_item.quantity})"
                    )
                if take == 0:
                    continue
                budgets[product_id] -= take

                match = self._find_line(user_cart, product_id, guest_item.options_key)
                if match:
                    match.quantity += take
                else:
                    user_cart.items.append(CartItem(
                        product_id=product_id,
                        quantity=take,
                        price=guest_item.price,
                        selected_options=dict(guest_item.selected_options or {}),
                        options_key=guest_item.options_key,
                    ))

            if guest_cart.is_gift and not user_cart.is_gift:
                user_cart.is_gift = True
                user_cart.gift_message = guest_cart.gift_message
            if guest_cart.coupon_code and not user_cart.coupon_code:
                user_cart.coupon_code = guest_cart.coupon_code

            guest_cart.is_active = False
            self._recalculate(tx, user_cart)
            tx.save(guest_cart)
            tx.save(user_cart)
            logger.info(f"Merged guest cart {guest_cart.id} into cart {user_cart.id} (user {user_id})")
        return user_cart

    # ==========================================
    # Private helpers
    # ==========================================

    def _active_cart_query(self, db: Session, owner: CartOwner):
        q = db.query(Cart).filter(Cart.is_active == True)
        if owner.kind == CartOwner.USER:
            return q.filter(Cart.user_id == owner.value)
        return q.filter(Cart.session_id == owner.value)

    def _get_or_create(self, tx: Repository, owner: CartOwner) -> Cart:
        cart = self._active_cart_query(tx.session, owner).with_for_update().first()
        if cart:
            return cart
        cart = Cart(
            subtotal=ZERO, tax=ZERO, shipping=ZERO, discount=ZERO, total=ZERO,
            is_gift=False, is_active=True,
            **owner.column_values(),
        )
        try:
            tx.save(cart)
        except IntegrityError as e:
            # Lost a race with a concurrent first access for the same owner
            raise InvalidStateError(f"An active cart for this {owner.kind} was created concurrently, retry") from e
        logger.info(f"Cart {cart.id} created for {owner.kind} {owner.value}")
        return cart

    def _lock_active_cart(self, tx: Repository, cart_id: int) -> Cart:
        cart = tx.find(Cart, cart_id, for_update=True, options=(selectinload(Cart.items),), label="Cart")
        if not cart.is_active:
            raise InvalidStateError(f"Cart {cart_id} is no longer active")
        return cart

    def _find_line(self, cart: Cart, product_id: int, options_key: str) -> Optional[CartItem]:
        for item in cart.items:
            if item.product_id == product_id and (item.options_key or "{}") == options_key:
                return item
        return None

    def _get_line(self, cart: Cart, item_id: int) -> CartItem:
        for item in cart.items:
            if item.id == item_id:
                return item
        raise NotFoundError(f"Item {item_id} not found in cart {cart.id}")

    def _trim_to_stock(self, cart: Cart, product_id: int, stock: int) -> int:
        """Cut the product's lines (newest first) down to stock; returns the quantity kept."""
        lines = [i for i in cart.items if i.product_id == product_id]
        excess = sum(i.quantity for i in lines) - max(stock, 0)
        for item in reversed(lines):
            if excess <= 0:
                break
            cut = min(item.quantity, excess)
            excess -= cut
            if cut == item.quantity:
                cart.items.remove(item)
            else:
                item.quantity -= cut
        return sum(i.quantity for i in cart.items if i.product_id == product_id)

    def _coupon_discount(self, tx: Repository, code: Optional[str], subtotal: Decimal) -> Decimal:
        if not code:
            return ZERO
        try:
            return self.coupons.evaluate(tx.session, code, subtotal)
        except CouponValidationError as e:
            # Keep the code so it applies again once the cart qualifies
            logger.info(f"Coupon {code} does not apply to subtotal {subtotal}: {e.message}")
            return ZERO

    def _recalculate(self, tx: Repository, cart: Cart) -> None:
        for item in cart.items:
            item.subtotal = line_subtotal(item.price, item.quantity)
        subtotal = sum((item.subtotal for item in cart.items), ZERO)
        totals = compute_cart_totals(
            cart.items,
            shipping=cart.shipping or ZERO,
            tax=cart.tax or ZERO,
            discount=self._coupon_discount(tx, cart.coupon_code, subtotal),
        )
        cart.subtotal = totals.subtotal
        cart.shipping = totals.shipping
        cart.tax = totals.tax
        cart.discount = totals.discount
        cart.total = totals.total


# Singleton
cart_service = CartService()
