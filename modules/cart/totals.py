"""
Cart Module - Totals
=====================
Pure money arithmetic for carts. Works on anything exposing
`price` and `quantity`, so it can be exercised without a database.

    total = subtotal + shipping + tax - discount
    0 <= discount <= subtotal
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from common.helpers import to_money

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal


def line_subtotal(price, quantity: int) -> Decimal:
    return to_money(to_money(price) * int(quantity))


def compute_cart_totals(items: Iterable, shipping=ZERO, tax=ZERO, discount=ZERO) -> CartTotals:
    subtotal = sum((line_subtotal(i.price, i.quantity) for i in items), ZERO)
    shipping = max(to_money(shipping), ZERO)
    tax = max(to_money(tax), ZERO)
    # A coupon can wipe out the item subtotal, never shipping or tax
    discount = min(max(to_money(discount), ZERO), subtotal)
    return CartTotals(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        discount=discount,
        total=subtotal + shipping + tax - discount,
    )
