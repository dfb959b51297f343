"""Cart service layer.

Stock checks here are advisory (unlocked reads) so shoppers get early
feedback; the authoritative check happens under row locks at checkout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Tuple

import structlog
from django.db import transaction

from modules.cart.exceptions import CartItemNotFound
from modules.cart.models import CartItem
from modules.cart.pricing import PriceBreakdown, price_line, price_lines
from modules.products.exceptions import OutOfStock, ProductNotFound, ProductUnavailable

if TYPE_CHECKING:
    from modules.cart.repositories.interfaces import ICartRepository
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class CartService:
    def __init__(
        self,
        cart_repository: ICartRepository,
        product_repository: IProductRepository,
    ) -> None:
        self._cart_repo = cart_repository
        self._product_repo = product_repository

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_cart(self, user_id: Any) -> Tuple[List[CartItem], PriceBreakdown]:
        """Cart lines with a price summary at current catalogue prices."""
        items = self._cart_repo.list_items(user_id)
        breakdown = price_lines(
            price_line(item.product, item.quantity) for item in items
        )
        return items, breakdown

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def add_item(self, user_id: Any, product_id: Any, quantity: int) -> CartItem:
        """Add ``quantity`` units, merging with an existing line.

        Raises:
            ProductNotFound: the product does not exist.
            ProductUnavailable: the product is not for sale.
            OutOfStock: the resulting quantity exceeds the stock on hand.
        """
        product = self._product_repo.get_by_id(product_id)
        if not product:
            raise ProductNotFound(product_id)
        if not product.is_available:
            raise ProductUnavailable(product_id, product.name)

        cart = self._cart_repo.get_or_create_for_user(user_id)
        item = self._cart_repo.get_item(cart, product.id)
        new_quantity = quantity + (item.quantity if item else 0)
        if new_quantity > product.stock_quantity:
            raise OutOfStock(
                product.id, product.stock_quantity, new_quantity, product.name
            )

        if item is None:
            item = CartItem(cart=cart, product=product, quantity=new_quantity)
        else:
            item.quantity = new_quantity
        self._cart_repo.save_item(item)

        logger.info(
            "cart.item_added",
            user_id=str(user_id),
            product_id=str(product.id),
            quantity=new_quantity,
        )
        return item

    @transaction.atomic
    def update_item(
        self, user_id: Any, product_id: Any, quantity: int
    ) -> CartItem | None:
        """Set the quantity of a line; ``0`` removes it.

        Raises:
            CartItemNotFound: the product is not in the cart.
            OutOfStock: the quantity exceeds the stock on hand.
        """
        cart = self._cart_repo.get_or_create_for_user(user_id)
        item = self._cart_repo.get_item(cart, product_id)
        if item is None:
            raise CartItemNotFound(product_id)

        if quantity == 0:
            self._cart_repo.delete_item(item)
            logger.info(
                "cart.item_removed", user_id=str(user_id), product_id=str(product_id)
            )
            return None

        if quantity > item.product.stock_quantity:
            raise OutOfStock(
                item.product_id,
                item.product.stock_quantity,
                quantity,
                item.product.name,
            )
        item.quantity = quantity
        self._cart_repo.save_item(item)
        logger.info(
            "cart.item_updated",
            user_id=str(user_id),
            product_id=str(product_id),
            quantity=quantity,
        )
        return item

    def remove_item(self, user_id: Any, product_id: Any) -> None:
        """Raises ``CartItemNotFound`` when the product is not in the cart."""
        self.update_item(user_id, product_id, 0)

    @transaction.atomic
    def sync_items(
        self, user_id: Any, lines: Iterable[Tuple[Any, int]]
    ) -> List[Any]:
        """Replace the cart with client-held ``(product_id, quantity)`` lines.

        Used when a guest cart is handed over at sign-in.  Repeated products
        are merged; lines for missing, unavailable or short-stocked products
        are dropped rather than rejected.  Returns the dropped product ids.
        """
        wanted: Dict[Any, int] = {}
        for product_id, quantity in lines:
            wanted[product_id] = wanted.get(product_id, 0) + quantity

        self._cart_repo.clear(user_id)
        cart = self._cart_repo.get_or_create_for_user(user_id)
        dropped = []
        for product_id, quantity in wanted.items():
            product = self._product_repo.get_by_id(product_id)
            if (
                product is None
                or not product.is_available
                or product.stock_quantity < quantity
            ):
                dropped.append(product_id)
                continue
            self._cart_repo.save_item(
                CartItem(cart=cart, product=product, quantity=quantity)
            )

        logger.info(
            "cart.synced",
            user_id=str(user_id),
            kept=len(wanted) - len(dropped),
            dropped=[str(product_id) for product_id in dropped],
        )
        return dropped

    def clear(self, user_id: Any) -> int:
        removed = self._cart_repo.clear(user_id)
        logger.info("cart.cleared", user_id=str(user_id), removed=removed)
        return removed
