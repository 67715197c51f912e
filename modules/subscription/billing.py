"""
Subscription Module - Billing Calculations
===========================================
Pure, deterministic date and amount arithmetic for subscriptions.

Month-based frequencies add calendar months and clamp to the last day of
the target month:

    2024-01-31 + monthly   -> 2024-02-29
    2024-01-31 + bimonthly -> 2024-03-31
    2023-11-30 + quarterly -> 2024-02-29

An unrecognized frequency falls back to +1 month (logged as a warning).
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable

from common.helpers import add_months, to_money
from modules.subscription.models import SubscriptionFrequency

logger = logging.getLogger("storefront.subscription")

_DAY_OFFSETS = {
    SubscriptionFrequency.WEEKLY.value: 7,
    SubscriptionFrequency.BIWEEKLY.value: 14,
}

_MONTH_OFFSETS = {
    SubscriptionFrequency.MONTHLY.value: 1,
    SubscriptionFrequency.BIMONTHLY.value: 2,
    SubscriptionFrequency.QUARTERLY.value: 3,
}

FALLBACK_MONTHS = 1


def normalize_frequency(frequency) -> str:
    return str(getattr(frequency, "value", frequency) or "").strip().lower()


def is_known_frequency(frequency) -> bool:
    key = normalize_frequency(frequency)
    return key in _DAY_OFFSETS or key in _MONTH_OFFSETS


def calculate_next_order_date(last_order_date: datetime, frequency) -> datetime:
    key = normalize_frequency(frequency)
    if key in _DAY_OFFSETS:
        return last_order_date + timedelta(days=_DAY_OFFSETS[key])
    if key in _MONTH_OFFSETS:
        return add_months(last_order_date, _MONTH_OFFSETS[key])
    logger.warning(f"Unknown subscription frequency '{frequency}', defaulting to +{FALLBACK_MONTHS} month")
    return add_months(last_order_date, FALLBACK_MONTHS)


def calculate_total(items: Iterable, discount=0) -> Decimal:
    """max(0, Σ price * quantity - discount), rounded to cents."""
    gross = sum((to_money(i.price) * int(i.quantity) for i in items), Decimal("0"))
    return max(to_money(gross - to_money(discount)), Decimal("0.00"))
