"""Django ORM implementation of the Cart repository."""

from __future__ import annotations

from typing import Any, List, Optional

from django.core.exceptions import ValidationError

from modules.cart.models import Cart, CartItem
from modules.cart.repositories.interfaces import ICartRepository


class CartDjangoRepository(ICartRepository):
    def get_or_create_for_user(self, user_id: Any) -> Cart:
        cart, _ = Cart.objects.get_or_create(user_id=user_id)
        return cart

    def list_items(self, user_id: Any) -> List[CartItem]:
        return list(
            CartItem.objects.select_related("product")
            .filter(cart__user_id=user_id, product__deleted_at__isnull=True)
            .order_by("created_at")
        )

    def get_item(self, cart: Cart, product_id: Any) -> Optional[CartItem]:
        try:
            return (
                CartItem.objects.select_related("product")
                .filter(cart=cart, product_id=product_id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def save_item(self, item: CartItem) -> CartItem:
        item.save()
        return item

    def delete_item(self, item: CartItem) -> None:
        item.delete()

    def clear(self, user_id: Any) -> int:
        deleted, _ = CartItem.objects.filter(cart__user_id=user_id).delete()
        return deleted
