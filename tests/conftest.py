from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config.database import Base
from modules.catalog.models import Category, Product
from modules.coupon.models import Coupon, DiscountMode
import modules.cart.models  # noqa: F401
import modules.order.models  # noqa: F401
import modules.subscription.models  # noqa: F401
from modules.payment.gateways.fake import FakePaymentProcessor


ADDRESS = {
    "line1": "12 Harbour Street",
    "city": "Portsmouth",
    "state": "Hampshire",
    "postal_code": "PO1 2AB",
    "country": "GB",
}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def address():
    return dict(ADDRESS)


@pytest.fixture
def make_product(db):
    def _make(name="Coffee Beans", price="12.50", stock=10, category_id=None, is_active=True):
        product = Product(
            name=name,
            price=Decimal(price),
            stock=stock,
            category_id=category_id,
            is_active=is_active,
        )
        db.add(product)
        db.commit()
        return product
    return _make


@pytest.fixture
def make_category(db):
    def _make(name, parent=None, sort_order=0, is_active=True):
        category = Category(
            name=name,
            slug=name.lower().replace(" ", "-"),
            parent_id=parent.id if parent is not None else None,
            sort_order=sort_order,
            is_active=is_active,
        )
        db.add(category)
        db.commit()
        return category
    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", mode=DiscountMode.PERCENT, value="10", cap=None, min_order="0", is_active=True):
        coupon = Coupon(
            code=code,
            discount_mode=mode,
            discount_value=Decimal(value),
            max_discount_amount=Decimal(cap) if cap is not None else None,
            min_order_amount=Decimal(min_order),
            is_active=is_active,
        )
        db.add(coupon)
        db.commit()
        return coupon
    return _make


@pytest.fixture
def processor():
    return FakePaymentProcessor()
