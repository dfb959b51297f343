"""Cart domain exceptions."""

from __future__ import annotations

from typing import Any

from modules.core.exceptions import NotFound


class CartItemNotFound(NotFound):
    """The product is not in the caller's cart."""

    code = "cart_item_not_found"

    def __init__(self, product_id: Any) -> None:
        super().__init__(f"Product {product_id} is not in the cart.")
