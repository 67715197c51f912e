"""
Storefront Core - Repository
=============================
Thin CRUD facade over a SQLAlchemy Session.

A Repository is bound to one session (and therefore to the transaction that
session is running), so every call made through it participates in the
enclosing transaction_scope.
"""

from typing import Any, List, Optional, Type

from sqlalchemy.orm import Session

from common.exceptions import NotFoundError


class Repository:

    def __init__(self, session: Session):
        self.session = session

    def find(self, model: Type, entity_id: Any, for_update: bool = False,
             options: tuple = (), label: Optional[str] = None):
        """
        Load one entity by primary key or raise NotFoundError.
        for_update=True issues SELECT ... FOR UPDATE and refreshes any
        already-loaded copy so the caller sees the locked row.
        """
        query = self.session.query(model).filter(model.id == entity_id)
        if options:
            query = query.options(*options)
        if for_update:
            query = query.with_for_update().populate_existing()
        entity = query.first()
        if entity is None:
            raise NotFoundError(f"{label or model.__name__} {entity_id} not found")
        return entity

    def find_many(self, model: Type, *criteria, order_by=None, for_update: bool = False,
                  **filters) -> List:
        query = self.session.query(model)
        if filters:
            query = query.filter_by(**filters)
        if criteria:
            query = query.filter(*criteria)
        if order_by is not None:
            query = query.order_by(*order_by) if isinstance(order_by, (list, tuple)) else query.order_by(order_by)
        if for_update:
            query = query.with_for_update()
        return query.all()

    def save(self, entity):
        """Add (if new) and flush so generated ids are available."""
        self.session.add(entity)
        self.session.flush()
        return entity

    def delete(self, model: Type, entity_id: Any) -> None:
        entity = self.find(model, entity_id)
        self.session.delete(entity)
        self.session.flush()
