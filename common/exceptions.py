"""
Storefront Core - Custom Exceptions
====================================
Business-level exceptions that can be caught and converted to HTTP responses.
"""

from fastapi import HTTPException, status


class CommerceError(Exception):
    """Base exception for all business logic errors."""
    def __init__(self, message: str = "An unexpected error occurred."):
        self.message = message
        super().__init__(self.message)


class NotFoundError(CommerceError):
    """Raised when a requested resource doesn't exist."""
    pass


class InvalidInputError(CommerceError):
    """Raised for malformed quantities, addresses, codes and similar input."""
    pass


class InvalidStateError(CommerceError):
    """Raised when an operation is not permitted in the entity's current lifecycle state."""
    pass


class AlreadyCancelledError(InvalidStateError):
    """Raised when cancelling a subscription that is already cancelled."""
    def __init__(self, subscription_id=None):
        msg = f"Subscription {subscription_id} is already cancelled" if subscription_id else "Subscription is already cancelled"
        super().__init__(msg)


class MustHaveAtLeastOneItemError(InvalidStateError):
    """Raised when a change would leave a subscription without items."""
    def __init__(self):
        super().__init__("Subscription must have at least one item")


class InsufficientStockError(CommerceError):
    """Raised when product stock cannot cover the requested quantity."""
    def __init__(self, product_name: str = "", available: int = None, requested: int = None):
        msg = f"Insufficient stock: {product_name}" if product_name else "Insufficient stock"
        if available is not None and requested is not None:
            msg += f" (requested {requested}, available {available})"
        self.available = available
        self.requested = requested
        super().__init__(msg)


class InvalidParentError(CommerceError):
    """Raised when a category's parent is itself or does not exist."""
    pass


class CycleDetectedError(CommerceError):
    """Raised when the category parent graph contains, or would contain, a cycle."""
    pass


class TransactionError(CommerceError):
    """Raised when a database transaction cannot begin or commit."""
    pass


class TransactionUnavailable(TransactionError):
    """The connection could not begin a transaction; the unit of work did not run."""
    def __init__(self, message: str = "Database transaction could not be started"):
        super().__init__(message)


class CommitFailed(TransactionError):
    """The unit of work succeeded but the commit failed and was rolled back."""
    def __init__(self, message: str = "Database transaction failed to commit"):
        super().__init__(message)


# ==========================================
# HTTP mapping
# ==========================================

_STATUS_MAP = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (InsufficientStockError, status.HTTP_409_CONFLICT),
    (TransactionUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (TransactionError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for(error: CommerceError) -> int:
    """Stable HTTP status for an error kind (400 unless listed)."""
    for error_type, code in _STATUS_MAP:
        if isinstance(error, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def raise_http(error: CommerceError, status_code: int = None):
    """Convert a business exception to an HTTP exception."""
    if status_code is None:
        status_code = status_for(error)
    raise HTTPException(status_code=status_code, detail=error.message)
