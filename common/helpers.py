"""
Storefront Core - Shared Helpers
=================================
Pure utility functions with NO database or module dependencies.
"""

import calendar
import json
import re
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

CENT = Decimal("0.01")


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """
    Add calendar months, clamping the day to the end of the target month.
    2024-01-31 + 1 month -> 2024-02-29; 2024-03-31 + 1 month -> 2024-04-30.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def to_money(value) -> Decimal:
    """Coerce to Decimal and round half-up to cents."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def canonical_json(value: Optional[Dict[str, Any]]) -> str:
    """Order-independent JSON text used as an identity key for option maps."""
    return json.dumps(value or {}, sort_keys=True, separators=(",", ":"), default=str)


_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """'Home & Garden' -> 'home-garden'."""
    slug = _SLUG_STRIP.sub("-", (text or "").lower()).strip("-")
    return slug or "category"
