"""
Catalog Module - Service Layer
================================
Category CRUD and hierarchy queries (tree, path, descendants).
Products are read through modules.catalog.product_catalog.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from common.exceptions import InvalidInputError, InvalidParentError, InvalidStateError, NotFoundError
from common.helpers import slugify
from common.transaction import transaction_scope
from modules.catalog.hierarchy import (
    CategoryNode, build_tree, descendants_of, parent_map, path_of, prune_inactive, validate_reparent,
)
from modules.catalog.models import Category, Product

logger = logging.getLogger("storefront.catalog")

_UPDATABLE_FIELDS = ("name", "slug", "description", "sort_order", "is_active")


class CategoryService:

    # ==========================================
    # Query
    # ==========================================

    def list_categories(
        self,
        db: Session,
        search: Optional[str] = None,
        parent_id: Optional[int] = None,
        roots_only: bool = False,
        is_active: Optional[bool] = True,
    ) -> List[Category]:
        q = db.query(Category)
        if is_active is not None:
            q = q.filter(Category.is_active == is_active)
        if roots_only:
            q = q.filter(Category.parent_id.is_(None))
        elif parent_id is not None:
            q = q.filter(Category.parent_id == parent_id)
        if search:
            q = q.filter(Category.name.ilike(f"%{search.strip()}%"))
        return q.order_by(Category.sort_order, Category.name).all()

    def get_category(self, db: Session, category_id: int) -> Category:
        category = db.query(Category).filter(Category.id == category_id).first()
        if not category:
            raise NotFoundError(f"Category {category_id} not found")
        return category

    def get_root_categories(self, db: Session) -> List[Category]:
        return self.list_categories(db, roots_only=True)

    def get_subcategories(self, db: Session, parent_id: int) -> List[Category]:
        self.get_category(db, parent_id)
        return self.list_categories(db, parent_id=parent_id)

    def get_tree(self, db: Session, active_only: bool = True) -> List[CategoryNode]:
        """Whole forest from a single query."""
        tree = build_tree(db.query(Category).all())
        return prune_inactive(tree) if active_only else tree

    def get_path(self, db: Session, category_id: int) -> List[Category]:
        """Breadcrumb: root first, requested category last."""
        ids = path_of(category_id, self._parents(db))
        by_id = {c.id: c for c in db.query(Category).filter(Category.id.in_(ids)).all()}
        return [by_id[i] for i in ids]

    def get_descendants(self, db: Session, category_id: int) -> List[Category]:
        parents = self._parents(db)
        if category_id not in parents:
            raise NotFoundError(f"Category {category_id} not found")
        ids = descendants_of(category_id, parents)
        if not ids:
            return []
        return (
            db.query(Category)
            .filter(Category.id.in_(ids))
            .order_by(Category.sort_order, Category.name)
            .all()
        )

    # ==========================================
    # Mutations
    # ==========================================

    def create_category(
        self,
        db: Session,
        name: str,
        parent_id: Optional[int] = None,
        description: Optional[str] = None,
        sort_order: int = 0,
        is_active: bool = True,
        slug: Optional[str] = None,
    ) -> Category:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Category name is required")

        with transaction_scope(db) as tx:
            if parent_id is not None:
                exists = tx.session.query(Category.id).filter(Category.id == parent_id).first()
                if not exists:
                    raise InvalidParentError("Invalid parent category")

            category = Category(
                name=name,
                slug=self._unique_slug(db, slug or name),
                description=description,
                sort_order=sort_order or 0,
                is_active=is_active,
                parent_id=parent_id,
            )
            tx.save(category)
            logger.info(f"Category created: {category.id} ({category.slug})")
        return category

    def update_category(self, db: Session, category_id: int, data: dict) -> Category:
        """
        Partial update. A "parent_id" key (even None) triggers reparent rules.
        """
        with transaction_scope(db) as tx:
            if "parent_id" in data:
                # Same lock order as reparent(): parent links first, then the row
                self._parents(tx.session, for_update=True)
            category = tx.find(Category, category_id, for_update=True, label="Category")

            if "parent_id" in data:
                self.reparent(db, category_id, data["parent_id"])

            for key in _UPDATABLE_FIELDS:
                if key not in data or data[key] is None:
                    continue
                value = data[key]
                if key == "name":
                    value = value.strip()
                    if not value:
                        raise InvalidInputError("Category name is required")
                elif key == "slug":
                    value = self._unique_slug(db, value, exclude_id=category_id)
                setattr(category, key, value)

            tx.save(category)
        return category

    def reparent(self, db: Session, category_id: int, new_parent_id: Optional[int]) -> Category:
        """Move a category under new_parent_id (None = make it a root)."""
        with transaction_scope(db) as tx:
            # Lock every parent link: concurrent opposite moves must see each other
            parents = self._parents(tx.session, for_update=True)
            category = tx.find(Category, category_id, for_update=True, label="Category")
            validate_reparent(category_id, new_parent_id, parents)
            category.parent_id = new_parent_id
            tx.save(category)
            logger.info(f"Category {category_id} moved under {new_parent_id}")
        return category

    def delete_category(self, db: Session, category_id: int) -> None:
        with transaction_scope(db) as tx:
            tx.find(Category, category_id, for_update=True, label="Category")

            has_children = db.query(Category.id).filter(Category.parent_id == category_id).first()
            if has_children:
                raise InvalidStateError("Cannot delete category with subcategories")

            has_products = db.query(Product.id).filter(Product.category_id == category_id).first()
            if has_products:
                raise InvalidStateError("Cannot delete category with associated products")

            tx.delete(Category, category_id)
            logger.info(f"Category deleted: {category_id}")

    # ==========================================
    # Private helpers
    # ==========================================

    def _parents(self, db: Session, for_update: bool = False) -> dict:
        q = db.query(Category.id, Category.parent_id)
        if for_update:
            q = q.with_for_update()
        return parent_map(q.all())

    def _unique_slug(self, db: Session, text: str, exclude_id: Optional[int] = None) -> str:
        base = slugify(text)
        slug, n = base, 2
        while True:
            q = db.query(Category.id).filter(Category.slug == slug)
            if exclude_id is not None:
                q = q.filter(Category.id != exclude_id)
            if not q.first():
                return slug
            slug = f"{base}-{n}"
            n += 1


# Singleton
category_service = CategoryService()
