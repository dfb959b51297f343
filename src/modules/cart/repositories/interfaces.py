"""Cart repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from modules.cart.models import Cart, CartItem


class ICartRepository(ABC):
    @abstractmethod
    def get_or_create_for_user(self, user_id: Any) -> Cart:
        """Return the user's cart, creating an empty one on first use."""

    @abstractmethod
    def list_items(self, user_id: Any) -> List[CartItem]:
        """Cart lines with their products, oldest first."""

    @abstractmethod
    def get_item(self, cart: Cart, product_id: Any) -> Optional[CartItem]:
        """Line for ``product_id`` or ``None``."""

    @abstractmethod
    def save_item(self, item: CartItem) -> CartItem:
        """Persist a cart line."""

    @abstractmethod
    def delete_item(self, item: CartItem) -> None:
        """Remove a cart line."""

    @abstractmethod
    def clear(self, user_id: Any) -> int:
        """Remove every line of the user's cart; returns the number removed."""
