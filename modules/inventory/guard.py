"""
Stock Guard — Quantity checks against current stock.
=====================================================
Pure functions: no database access, never modifies stock.

Usage:
    from modules.inventory.guard import reserve, ensure_available

    # Decision object (for callers that branch on the outcome)
    decision = reserve(product.stock, existing_qty + qty)
    if not decision.accepted:
        ...

    # Raise InsufficientStockError if the quantity can't be covered
    ensure_available(product.stock, existing_qty + qty, product.name)
"""

from dataclasses import dataclass
from typing import Optional

from common.exceptions import InsufficientStockError, InvalidInputError

INSUFFICIENT_STOCK = "insufficient_stock"


@dataclass(frozen=True)
class StockDecision:
    accepted: bool
    reason: Optional[str] = None
    available: int = 0
    requested: int = 0


def validate_quantity(quantity) -> int:
    """Quantities must be positive ints (bools are rejected too)."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidInputError(f"Quantity must be a whole number, got {quantity!r}")
    if quantity < 1:
        raise InvalidInputError(f"Quantity must be at least 1, got {quantity}")
    return quantity


def reserve(current_stock: int, requested_qty: int) -> StockDecision:
    """Accept when the requested total line quantity fits in current stock.

    Args:
        current_stock: units the catalog currently reports
        requested_qty: total quantity the line would hold (existing + delta)
    Raises:
        InvalidInputError when requested_qty is not a positive int
    """
    validate_quantity(requested_qty)
    available = max(int(current_stock or 0), 0)
    if requested_qty > available:
        return StockDecision(False, INSUFFICIENT_STOCK, available, requested_qty)
    return StockDecision(True, None, available, requested_qty)


def ensure_available(current_stock: int, requested_qty: int, product_name: str = "") -> StockDecision:
    """Same as reserve() but raises InsufficientStockError on rejection."""
    decision = reserve(current_stock, requested_qty)
    if not decision.accepted:
        raise InsufficientStockError(product_name, decision.available, decision.requested)
    return decision


def clamp_to_stock(current_stock: int, requested_qty: int) -> int:
    """Largest quantity <= requested_qty that stock can cover (may be 0)."""
    return max(0, min(int(requested_qty), int(current_stock or 0)))
