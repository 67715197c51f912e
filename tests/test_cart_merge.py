"""Tests for folding a guest (session) cart into the user's cart on login."""

from decimal import Decimal

import pytest

from modules.cart.models import Cart
from modules.cart.service import CartOwner, cart_service


@pytest.fixture
def guest(db):
    return cart_service.get_or_create(db, CartOwner.session("guest-1"))


@pytest.fixture
def user_cart(db):
    return cart_service.get_or_create(db, CartOwner.user(42))


class TestMergeGuestCart:
    def test_summed_quantity_is_clamped_to_stock(self, db, guest, user_cart, make_product):
        product = make_product(stock=2)
        cart_service.add_item(db, guest.id, product.id, 2)
        cart_service.add_item(db, user_cart.id, product.id, 1)

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)

        assert merged.id == user_cart.id
        assert len(merged.items) == 1
        assert merged.items[0].quantity == 2

    def test_quantities_summed_when_stock_allows(self, db, guest, user_cart, make_product):
        product = make_product(stock=10)
        cart_service.add_item(db, guest.id, product.id, 2)
        cart_service.add_item(db, user_cart.id, product.id, 1)

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)
        assert merged.items[0].quantity == 3

    def test_stock_limit_covers_every_option_line(self, db, guest, user_cart, make_product):
        product = make_product(stock=5)
        cart_service.add_item(db, guest.id, product.id, 3, {"size": "M"})
        cart_service.add_item(db, user_cart.id, product.id, 4, {"size": "L"})

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)

        by_size = {i.selected_options["size"]: i.quantity for i in merged.items}
        assert by_size == {"L": 4, "M": 1}
        assert sum(by_size.values()) == 5

    def test_copied_line_is_clamped_to_current_stock(self, db, guest, user_cart, make_product):
        product = make_product(stock=5)
        cart_service.add_item(db, guest.id, product.id, 5)
        product.stock = 1
        db.commit()

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)

        assert [i.quantity for i in merged.items] == [1]

    def test_guest_line_without_stock_is_dropped(self, db, guest, user_cart, make_product):
        product = make_product(stock=2)
        other = make_product(name="Filter Papers", stock=5)
        cart_service.add_item(db, guest.id, product.id, 2)
        cart_service.add_item(db, guest.id, other.id, 1)
        cart_service.add_item(db, user_cart.id, product.id, 2, {"grind": "fine"})

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)

        quantities = sorted((i.product_id, i.quantity) for i in merged.items)
        assert quantities == sorted([(product.id, 2), (other.id, 1)])

    def test_merged_cart_still_accepts_changes_within_stock(self, db, guest, user_cart, make_product):
        product = make_product(stock=4)
        cart_service.add_item(db, guest.id, product.id, 3, {"size": "M"})
        cart_service.add_item(db, user_cart.id, product.id, 3, {"size": "L"})

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)
        line = next(i for i in merged.items if i.selected_options["size"] == "L")
        updated = cart_service.update_item_quantity(db, merged.id, line.id, 2)

        assert sum(i.quantity for i in updated.items) == 3

    def test_unavailable_guest_product_is_dropped(self, db, guest, user_cart, make_product):
        product = make_product()
        cart_service.add_item(db, guest.id, product.id, 2)
        product.is_active = False
        db.commit()

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)

        assert merged.items == []
        assert db.query(Cart).filter(Cart.id == guest.id).one().is_active is False

    def test_new_lines_copied_with_guest_price(self, db, guest, user_cart, make_product):
        product = make_product(price="9.00", stock=5)
        cart_service.add_item(db, guest.id, product.id, 2, {"grind": "fine"})
        product.price = Decimal("11.00")
        db.commit()

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)

        item = merged.items[0]
        assert item.quantity == 2
        assert item.price == Decimal("9.00")
        assert item.selected_options == {"grind": "fine"}
        assert merged.subtotal == Decimal("18.00")
        assert merged.total == merged.subtotal + merged.shipping + merged.tax - merged.discount

    def test_guest_cart_is_deactivated_not_deleted(self, db, guest, user_cart, make_product):
        product = make_product()
        cart_service.add_item(db, guest.id, product.id, 1)

        cart_service.merge_guest_cart(db, "guest-1", 42)

        old = db.query(Cart).filter(Cart.id == guest.id).one()
        assert old.is_active is False
        fresh = cart_service.get_or_create(db, CartOwner.session("guest-1"))
        assert fresh.id != guest.id

    def test_gift_and_coupon_fill_only_missing_settings(self, db, guest, user_cart, make_product, make_coupon):
        make_coupon(code="GUEST5", value="5")
        make_coupon(code="USER10", value="10")
        product = make_product(price="10.00")
        cart_service.add_item(db, guest.id, product.id, 1)
        cart_service.apply_coupon(db, guest.id, "GUEST5")
        cart_service.update_gift_settings(db, guest.id, True, "From the guest")
        cart_service.add_item(db, user_cart.id, product.id, 1)
        cart_service.apply_coupon(db, user_cart.id, "USER10")

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)

        assert merged.coupon_code == "USER10"
        assert merged.is_gift is True
        assert merged.gift_message == "From the guest"
        assert merged.discount == Decimal("2.00")

    def test_user_gift_message_is_not_overwritten(self, db, guest, user_cart, make_product):
        product = make_product()
        cart_service.add_item(db, guest.id, product.id, 1)
        cart_service.update_gift_settings(db, guest.id, True, "guest note")
        cart_service.update_gift_settings(db, user_cart.id, True, "user note")

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)
        assert merged.gift_message == "user note"

    def test_missing_guest_cart_returns_user_cart(self, db, make_product):
        merged = cart_service.merge_guest_cart(db, "never-seen", 42)
        assert merged.user_id == 42
        assert merged.items == []

    def test_empty_guest_cart_is_noop(self, db, guest, user_cart, make_product):
        product = make_product()
        cart_service.add_item(db, user_cart.id, product.id, 1)

        merged = cart_service.merge_guest_cart(db, "guest-1", 42)

        assert merged.id == user_cart.id
        assert merged.items[0].quantity == 1
        assert db.query(Cart).filter(Cart.id == guest.id).one().is_active is True
