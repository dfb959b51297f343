"""Product / inventory domain exceptions.

Raised by the inventory controller and product service.  The API layer
renders them through the shared exception handler using ``code`` and
``status_code``.
"""

from __future__ import annotations

from typing import Any

from modules.core.exceptions import Conflict, DomainError, NotFound, RetryableError


class ProductNotFound(NotFound):
    """The requested product does not exist or has been soft-deleted."""

    code = "product_not_found"

    def __init__(self, product_id: Any) -> None:
        super().__init__(f"Product {product_id} not found.", product_id=product_id)
        self.product_id = product_id


class ProductUnavailable(DomainError):
    """The product is not currently available for sale."""

    code = "product_unavailable"

    def __init__(self, product_id: Any, name: str = "") -> None:
        label = name or str(product_id)
        super().__init__(
            f"Product {label} is not available.", product_id=product_id
        )
        self.product_id = product_id


class OutOfStock(Conflict):
    """Requested quantity exceeds the stock currently on hand."""

    code = "out_of_stock"
    status_code = 400

    def __init__(
        self,
        product_id: Any,
        available: int,
        requested: int,
        name: str = "",
    ) -> None:
        label = name or str(product_id)
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, "
            f"available {available}.",
            product_id=product_id,
            available=available,
            requested=requested,
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class StockLockTimeout(RetryableError):
    """Timed out waiting for a product row lock; nothing was reserved."""

    code = "stock_lock_timeout"
