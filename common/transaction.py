"""
Storefront Core - Transaction Scope
====================================
Wraps a unit of work in one database transaction.

    with transaction_scope(db) as tx:
        cart = tx.find(Cart, cart_id, for_update=True)
        ...

- Normal exit commits; any exception rolls back and propagates.
- A scope opened while another is active on the same session reuses it:
  only the outermost scope commits or rolls back.
- If a transaction cannot be started, TransactionUnavailable is raised and
  the body never runs.
- If the commit fails, the transaction is rolled back and CommitFailed is raised.
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from common.exceptions import CommitFailed, TransactionUnavailable
from common.repository import Repository

logger = logging.getLogger("storefront.transaction")

_SCOPE_KEY = "storefront.transaction_scope"


class _ActiveScope:
    def __init__(self, repository: Repository):
        self.repository = repository
        self.rollback_only = False


class _RollbackRequested(Exception):
    """Carries a result whose outcome asked for rollback instead of commit."""
    def __init__(self, result):
        self.result = result
        super().__init__("rollback requested")


def is_success_status(status_code: int) -> bool:
    """HTTP outcomes in [200, 400) commit; everything else rolls back."""
    return 200 <= int(status_code) < 400


def commit_on_success_status(result) -> bool:
    """commit_if predicate for results carrying a status_code (or plain ints)."""
    return is_success_status(getattr(result, "status_code", result))


def active_repository(db: Session) -> Optional[Repository]:
    scope = db.info.get(_SCOPE_KEY)
    return scope.repository if scope else None


@contextmanager
def transaction_scope(db: Session) -> Iterator[Repository]:
    active = db.info.get(_SCOPE_KEY)
    if active is not None:
        yield active.repository
        return

    try:
        # Starts the session transaction and checks out a connection
        db.connection()
    except SQLAlchemyError as e:
        logger.error(f"Could not begin transaction: {e}")
        raise TransactionUnavailable() from e

    scope = _ActiveScope(Repository(db))
    db.info[_SCOPE_KEY] = scope
    try:
        try:
            yield scope.repository
        except BaseException:
            db.rollback()
            raise

        if scope.rollback_only:
            db.rollback()
            return

        try:
            db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Commit failed, rolling back: {e}")
            db.rollback()
            raise CommitFailed() from e
    finally:
        db.info.pop(_SCOPE_KEY, None)


def run_in_transaction(
    db: Session,
    fn: Callable[[Repository], Any],
    commit_if: Optional[Callable[[Any], bool]] = None,
):
    """
    Run fn(tx) inside a transaction_scope and return its result.

    commit_if lets an outcome (e.g. an HTTP-like status) veto the commit:
    when it returns False the writes are rolled back and the result is still
    returned. Inside an enclosing scope the veto marks that scope
    rollback-only instead.
    """
    try:
        with transaction_scope(db) as tx:
            result = fn(tx)
            if commit_if is not None and not commit_if(result):
                db.info[_SCOPE_KEY].rollback_only = True
                raise _RollbackRequested(result)
    except _RollbackRequested as r:
        logger.info("Unit of work outcome rejected, transaction rolled back")
        return r.result
    return result
