"""Django ORM implementation of the Product repository.

Satisfies ``IProductRepository`` using Django's QuerySet API.
Error handling follows the Null Object pattern: methods return ``None``
instead of raising HTTP-level exceptions; the inventory controller and
services decide how to translate a missing entity.

Locking methods must be called inside ``transaction.atomic``; the lock is
held until that transaction ends.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F

from modules.products.models import InventoryLog, Product
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        """Retrieve a live product by primary key.

        Returns ``None`` for non-existent, soft-deleted or invalid IDs.
        """
        try:
            return Product.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None):
        """List live products with optional Django ORM look-ups.

        Examples of valid filters::

            {"is_available": True}
            {"name__icontains": "milk"}
        """
        queryset = Product.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        """Persist (create or update) a product."""
        entity.save()
        logger.info("product.saved", product_id=str(entity.id), sku=entity.sku)
        return entity

    @transaction.atomic
    def delete(self, id: str) -> bool:
        """Soft-delete a product by ID."""
        product = self.get_by_id(id)
        if not product:
            return False
        product.delete()
        logger.info("product.soft_deleted", product_id=str(id))
        return True

    def get_by_sku(self, sku: str) -> Optional[Product]:
        return Product.objects.alive().filter(sku=sku.strip().upper()).first()

    # ------------------------------------------------------------------
    # Locked access (inventory controller only)
    # ------------------------------------------------------------------

    def get_for_update(self, id: Any) -> Optional[Product]:
        try:
            return Product.objects.alive().select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def lock_many(
        self, ids: Iterable[Any], include_deleted: bool = False
    ) -> Dict[Any, Product]:
        """Lock products in ascending primary-key order.

        A single ``ORDER BY id ... FOR UPDATE`` query acquires the row locks
        in a stable order so two carts sharing products cannot deadlock.
        """
        queryset = Product.objects.all() if include_deleted else Product.objects.alive()
        try:
            products = (
                queryset.select_for_update()
                .filter(id__in=list(ids))
                .order_by("id")
            )
            return {product.id: product for product in products}
        except (ValueError, ValidationError):
            return {}

    def update_stock(self, product: Product, new_stock: int) -> Product:
        product.stock_quantity = new_stock
        product.save(update_fields=["stock_quantity"])
        return product

    def add_inventory_log(self, **fields: Any) -> InventoryLog:
        return InventoryLog.objects.create(**fields)

    def low_stock(self) -> List[Product]:
        return list(
            Product.objects.alive()
            .filter(stock_quantity__lte=F("low_stock_threshold"))
            .order_by("stock_quantity", "name")
        )

    def list_inventory_logs(self, product_id: Any):
        return InventoryLog.objects.filter(product_id=product_id).order_by(
            "-created_at"
        )
