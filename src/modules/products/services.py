"""Product service layer (Use Cases).

Read access to the catalogue plus administrative stock adjustment.
Stock writes are delegated to ``StockReservationController``; this
service never touches ``stock_quantity`` itself.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog

from modules.products.exceptions import ProductNotFound
from modules.products.inventory import StockReservationController

if TYPE_CHECKING:
    from modules.products.dtos import StockAdjustmentDTO
    from modules.products.inventory import StockMovement
    from modules.products.models import Product
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductService:
    """Application service for Product use-cases.

    Receives an ``IProductRepository`` via constructor injection (DIP).
    """

    def __init__(
        self,
        repository: IProductRepository,
        inventory: Optional[StockReservationController] = None,
    ) -> None:
        self._repo = repository
        self._inventory = inventory or StockReservationController(repository)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def adjust_stock(
        self, product_id: str, dto: StockAdjustmentDTO, actor: Any = None
    ) -> StockMovement:
        """Apply an administrative stock change.

        Raises:
            ProductNotFound: the product does not exist.
            OutOfStock: the change would leave the stock negative.
            StockLockTimeout: the product row is locked by a long checkout.
        """
        movement = self._inventory.adjust(
            product_id,
            dto.quantity,
            dto.action,
            actor=actor,
            notes=dto.notes,
            reference=dto.reference,
        )
        logger.info(
            "product.stock_adjusted",
            product_id=str(product_id),
            action=dto.action,
            new_stock=movement.new_stock,
            actor_id=getattr(actor, "pk", None),
        )
        return movement

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_products(self, filters: Optional[Dict[str, Any]] = None):
        """Return live products, optionally filtered."""
        return self._repo.list(filters)

    def get_product(self, id: str) -> Product:
        """Retrieve a single product by ID.

        Raises:
            ProductNotFound: if the product does not exist.
        """
        product = self._repo.get_by_id(id)
        if not product:
            raise ProductNotFound(id)
        return product

    def low_stock(self) -> List[Product]:
        return self._repo.low_stock()

    def inventory_history(self, product_id: str):
        """Ledger of stock movements for one product, newest first."""
        product = self.get_product(product_id)
        return self._repo.list_inventory_logs(product.id)
