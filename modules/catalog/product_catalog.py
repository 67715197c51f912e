"""
Catalog Module - Product Catalog
=================================
Read-only product view used by the cart and subscription aggregates.
"""

from dataclasses import dataclass
from decimal import Decimal

from common.exceptions import NotFoundError
from common.repository import Repository
from modules.catalog.models import Product


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    price: Decimal
    stock: int


class ProductCatalog:
    """Abstract catalog interface."""

    def get_by_id(self, tx: Repository, product_id: int) -> ProductSnapshot:
        raise NotImplementedError


class DatabaseProductCatalog(ProductCatalog):
    """Reads the products table; the row is locked so stock checks see a consistent value."""

    def get_by_id(self, tx: Repository, product_id: int) -> ProductSnapshot:
        product = tx.find(Product, product_id, for_update=True, label="Product")
        if not product.is_active:
            raise NotFoundError(f"Product {product_id} is not available")
        return ProductSnapshot(
            id=product.id,
            name=product.name,
            price=Decimal(product.price),
            stock=int(product.stock or 0),
        )


# Singleton
product_catalog = DatabaseProductCatalog()
