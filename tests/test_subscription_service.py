"""Tests for subscription lifecycle, settings and item management."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from common.exceptions import (
    AlreadyCancelledError, InsufficientStockError, InvalidInputError, InvalidStateError,
    MustHaveAtLeastOneItemError, NotFoundError,
)
from common.helpers import as_utc
from modules.subscription.models import Subscription, SubscriptionStatus
from modules.subscription.service import subscription_service

START = datetime(2024, 1, 31, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def beans(make_product):
    return make_product(name="Coffee Beans", price="12.50", stock=20)


@pytest.fixture
def filters(make_product):
    return make_product(name="Filter Papers", price="3.00", stock=20)


@pytest.fixture
def sub(db, beans, address):
    return subscription_service.create_subscription(
        db, user_id=1, frequency="monthly",
        items=[{"product_id": beans.id, "quantity": 2}],
        shipping_address=address, now=START,
    )


class TestCreate:
    def test_creates_active_subscription_with_schedule(self, sub):
        assert sub.status == SubscriptionStatus.ACTIVE
        assert as_utc(sub.last_order_date) == START
        assert as_utc(sub.next_order_date) == datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc)
        assert sub.amount == Decimal("25.00")
        assert sub.billing_address == sub.shipping_address

    def test_repeated_products_are_combined(self, db, beans, filters, address):
        sub = subscription_service.create_subscription(
            db, user_id=1, frequency="weekly",
            items=[
                {"product_id": beans.id, "quantity": 1},
                {"product_id": filters.id, "quantity": 2},
                {"product_id": beans.id, "quantity": 1},
            ],
            shipping_address=address, discount="5",
        )
        quantities = {i.product_id: i.quantity for i in sub.items}
        assert quantities == {beans.id: 2, filters.id: 2}
        assert sub.amount == Decimal("26.00")

    def test_requires_items(self, db, address):
        with pytest.raises(MustHaveAtLeastOneItemError):
            subscription_service.create_subscription(
                db, user_id=1, frequency="monthly", items=[], shipping_address=address,
            )

    def test_requires_complete_address(self, db, beans, address):
        del address["postal_code"]
        with pytest.raises(InvalidInputError, match="postal_code"):
            subscription_service.create_subscription(
                db, user_id=1, frequency="monthly",
                items=[{"product_id": beans.id, "quantity": 1}], shipping_address=address,
            )

    def test_stock_is_checked(self, db, make_product, address):
        scarce = make_product(stock=1)
        with pytest.raises(InsufficientStockError):
            subscription_service.create_subscription(
                db, user_id=1, frequency="monthly",
                items=[{"product_id": scarce.id, "quantity": 2}], shipping_address=address,
            )
        assert db.query(Subscription).count() == 0

    def test_unknown_frequency_is_scheduled_one_month_out(self, db, beans, address):
        sub = subscription_service.create_subscription(
            db, user_id=1, frequency="every-so-often",
            items=[{"product_id": beans.id, "quantity": 1}], shipping_address=address, now=START,
        )
        assert as_utc(sub.next_order_date) == datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc)

    def test_list_for_user(self, db, sub):
        assert [s.id for s in subscription_service.list_for_user(db, 1)] == [sub.id]
        assert subscription_service.list_for_user(db, 2) == []


class TestLifecycle:
    def test_pause_and_resume_recomputes_next_date(self, db, sub):
        paused = subscription_service.pause(db, sub.id)
        assert paused.status == SubscriptionStatus.PAUSED

        resumed_at = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)
        resumed = subscription_service.resume(db, sub.id, now=resumed_at)

        assert resumed.status == SubscriptionStatus.ACTIVE
        assert as_utc(resumed.next_order_date) == datetime(2024, 7, 10, 12, 0, tzinfo=timezone.utc)

    def test_pause_requires_active(self, db, sub):
        subscription_service.pause(db, sub.id)
        with pytest.raises(InvalidStateError):
            subscription_service.pause(db, sub.id)

    def test_resume_requires_paused(self, db, sub):
        with pytest.raises(InvalidStateError):
            subscription_service.resume(db, sub.id)

    def test_cancel_from_paused(self, db, sub):
        subscription_service.pause(db, sub.id)
        cancelled = subscription_service.cancel(db, sub.id, now=START)
        assert cancelled.status == SubscriptionStatus.CANCELLED
        assert as_utc(cancelled.cancelled_at) == START

    def test_cancel_twice_is_rejected(self, db, sub):
        subscription_service.cancel(db, sub.id)
        with pytest.raises(AlreadyCancelledError):
            subscription_service.cancel(db, sub.id)

    def test_cancelled_is_terminal(self, db, sub):
        subscription_service.cancel(db, sub.id)
        with pytest.raises(InvalidStateError):
            subscription_service.resume(db, sub.id)
        with pytest.raises(InvalidStateError):
            subscription_service.update_auto_renew(db, sub.id, False)

    def test_complete(self, db, sub):
        assert subscription_service.complete(db, sub.id).status == SubscriptionStatus.COMPLETED
        with pytest.raises(InvalidStateError):
            subscription_service.pause(db, sub.id)

    def test_unknown_subscription(self, db):
        with pytest.raises(NotFoundError):
            subscription_service.pause(db, 404)


class TestSettings:
    def test_update_frequency_counts_from_last_order(self, db, sub):
        updated = subscription_service.update_frequency(db, sub.id, "quarterly")
        assert updated.frequency == "quarterly"
        assert as_utc(updated.next_order_date) == datetime(2024, 4, 30, 9, 0, tzinfo=timezone.utc)

    def test_update_auto_renew(self, db, sub):
        assert subscription_service.update_auto_renew(db, sub.id, False).auto_renew is False

    def test_update_addresses(self, db, sub, address):
        new_address = dict(address, line1="1 Dock Road", line2="Unit 4")
        updated = subscription_service.update_shipping_address(db, sub.id, new_address)
        assert updated.shipping_address["line1"] == "1 Dock Road"
        assert updated.shipping_address["line2"] == "Unit 4"
        assert updated.billing_address["line1"] == "12 Harbour Street"

        updated = subscription_service.update_billing_address(db, sub.id, new_address)
        assert updated.billing_address["line1"] == "1 Dock Road"

    def test_invalid_address_leaves_subscription_unchanged(self, db, sub, address):
        with pytest.raises(InvalidInputError):
            subscription_service.update_shipping_address(db, sub.id, dict(address, city="  "))
        assert subscription_service.get_subscription(db, sub.id).shipping_address["city"] == "Portsmouth"

    def test_paused_subscription_cannot_change_settings(self, db, sub):
        subscription_service.pause(db, sub.id)
        with pytest.raises(InvalidStateError):
            subscription_service.update_frequency(db, sub.id, "weekly")


class TestItems:
    def test_add_new_product(self, db, sub, filters):
        updated = subscription_service.add_item(db, sub.id, filters.id, 3)
        assert len(updated.items) == 2
        assert updated.amount == Decimal("34.00")

    def test_add_existing_product_increments(self, db, sub, beans):
        updated = subscription_service.add_item(db, sub.id, beans.id, 1)
        assert len(updated.items) == 1
        assert updated.items[0].quantity == 3
        assert updated.amount == Decimal("37.50")

    def test_add_beyond_stock_rejected(self, db, sub, beans):
        with pytest.raises(InsufficientStockError):
            subscription_service.add_item(db, sub.id, beans.id, 19)

    def test_removing_last_item_is_rejected(self, db, sub):
        item_id = sub.items[0].id
        with pytest.raises(MustHaveAtLeastOneItemError):
            subscription_service.remove_item(db, sub.id, item_id)

        current = subscription_service.get_subscription(db, sub.id)
        assert [i.id for i in current.items] == [item_id]
        assert current.amount == Decimal("25.00")

    def test_zero_quantity_on_last_item_is_rejected(self, db, sub):
        with pytest.raises(MustHaveAtLeastOneItemError):
            subscription_service.update_item_quantity(db, sub.id, sub.items[0].id, 0)

    def test_remove_item(self, db, sub, beans, filters):
        sub = subscription_service.add_item(db, sub.id, filters.id, 1)
        filters_line = next(i for i in sub.items if i.product_id == filters.id)

        updated = subscription_service.remove_item(db, sub.id, filters_line.id)
        assert [i.product_id for i in updated.items] == [beans.id]
        assert updated.amount == Decimal("25.00")

    def test_update_quantity(self, db, sub):
        updated = subscription_service.update_item_quantity(db, sub.id, sub.items[0].id, 4)
        assert updated.items[0].quantity == 4
        assert updated.amount == Decimal("50.00")

    def test_unknown_item(self, db, sub):
        with pytest.raises(NotFoundError):
            subscription_service.update_item_quantity(db, sub.id, 999, 2)
