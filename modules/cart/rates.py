"""
Cart Module - Shipping & Tax Rates
===================================
Pluggable rate calculators. The default uses the flat rates in config.settings.
"""

from decimal import Decimal

from config import settings
from common.helpers import to_money


class RateCalculator:
    """Abstract rate interface."""

    def shipping(self, cart, country: str, postal_code: str) -> Decimal:
        raise NotImplementedError

    def tax(self, cart, country: str, postal_code: str) -> Decimal:
        raise NotImplementedError


class FlatRateCalculator(RateCalculator):
    """Flat shipping (free above a threshold) and a single tax rate on the subtotal."""

    def __init__(self, flat_shipping=None, free_shipping_threshold=None, tax_rate=None):
        self.flat_shipping = to_money(settings.SHIPPING_FLAT_RATE if flat_shipping is None else flat_shipping)
        self.free_shipping_threshold = Decimal(
            settings.FREE_SHIPPING_THRESHOLD if free_shipping_threshold is None else free_shipping_threshold
        )
        self.tax_rate = Decimal(settings.TAX_RATE if tax_rate is None else tax_rate)

    def shipping(self, cart, country: str, postal_code: str) -> Decimal:
        if to_money(cart.subtotal) >= self.free_shipping_threshold:
            return to_money(0)
        return self.flat_shipping

    def tax(self, cart, country: str, postal_code: str) -> Decimal:
        return to_money(to_money(cart.subtotal) * self.tax_rate)
