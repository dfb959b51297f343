"""Product repository interface.

Extends ``IRepository[Product]`` with the locked look-ups the inventory
controller needs and the inventory ledger writes.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from django.db import models

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import InventoryLog, Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate."""

    @abstractmethod
    def list(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> "models.QuerySet[Product]":
        """List live (not soft-deleted) products with optional filters."""

    @abstractmethod
    def get_by_sku(self, sku: str) -> Optional[Product]:
        """Retrieve a product by SKU."""

    @abstractmethod
    def lock_many(
        self, ids: Iterable[Any], include_deleted: bool = False
    ) -> Dict[Any, Product]:
        """Lock several products in ascending id order.

        Returns a mapping ``id -> Product``; missing ids are absent.
        Soft-deleted rows are only returned with ``include_deleted``.
        """

    @abstractmethod
    def update_stock(self, product: Product, new_stock: int) -> Product:
        """Write ``stock_quantity`` on an already locked product row."""

    @abstractmethod
    def add_inventory_log(self, **fields: Any) -> InventoryLog:
        """Append an inventory ledger row."""

    @abstractmethod
    def low_stock(self) -> List[Product]:
        """Products at or below their low-stock threshold, lowest first."""

    @abstractmethod
    def list_inventory_logs(self, product_id: Any) -> "models.QuerySet[InventoryLog]":
        """Inventory ledger of one product, newest first."""
